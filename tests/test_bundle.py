"""Tests for the per-key MIDI export bundle."""

import io

import mido
import pytest

from keygroove.errors import InvalidKeyError
from keygroove.midi.bundle import bundle_for, effective_bpm, sanitize_filename
from keygroove.midi.encoder import tempo_microseconds


def _tempo(data: bytes) -> int:
    assert data[22:26] == b"\x00\xff\x51\x03"
    return int.from_bytes(data[26:29], "big")


@pytest.mark.parametrize("bpm,expected", [
    (None, 120), (0, 120), (60, 120), (200, 120), (250, 120),
    (61, 61), (128.4, 128), (199, 199),
])
def test_effective_bpm(bpm, expected):
    assert effective_bpm(bpm) == expected


def test_sanitize_filename():
    assert sanitize_filename("Basic Triad Up (Root Position)") == "Basic_Triad_Up__Root_Position_"
    assert sanitize_filename("I-V-vi-IV") == "I_V_vi_IV"


def test_bundle_contents_c_major():
    bundle = bundle_for("c", "Major", bpm=100)

    assert (bundle.key, bundle.mode, bundle.bpm_used) == ("C", "major", 100)
    assert len(bundle.chord_midi) == 7
    assert len(bundle.progression_midi) == 4
    assert len(bundle.arpeggio_midi) == 24
    assert len(bundle.all_artifacts()) == 36


def test_c_major_at_120():
    bundle = bundle_for("C", "major", 120)

    assert len(bundle.chords) == 7
    assert len(bundle.progressions) == 4
    assert bundle.scale.notes[:7] == [60, 62, 64, 65, 67, 69, 71]
    assert bundle.bpm_used == 120


def test_filenames():
    bundle = bundle_for("A", "minor")

    assert bundle.scale_midi.filename == "A_minor_scale.mid"
    assert [a.filename for a in bundle.chord_midi] == [
        "A_minor_i.mid", "A_minor_ii.mid", "A_minor_III.mid", "A_minor_iv.mid",
        "A_minor_v.mid", "A_minor_VI.mid", "A_minor_VII.mid",
    ]
    assert bundle.progression_midi[0].filename == "A_minor_i_VII_VI_VII.mid"
    assert bundle.arpeggio_midi[0].filename == "A_minor_Basic_Triad_Up__Root_Position_.mid"


def test_every_file_carries_bpm_used():
    bundle = bundle_for("E", "minor", bpm=140)
    expected = tempo_microseconds(140)
    for artifact in bundle.all_artifacts():
        assert _tempo(artifact.data) == expected, artifact.name


def test_out_of_range_bpm_encodes_default_tempo():
    bundle = bundle_for("E", "minor", bpm=240)
    assert bundle.bpm_used == 120
    assert _tempo(bundle.scale_midi.data) == 500000


def test_note_lengths_per_kind():
    bundle = bundle_for("C", "major")

    def offs(artifact):
        midi = mido.MidiFile(file=io.BytesIO(artifact.data))
        return {m.time for m in midi.tracks[0] if m.type == "note_off"}

    assert offs(bundle.scale_midi) == {480}
    assert offs(bundle.chord_midi[0]) == {960}
    assert offs(bundle.progression_midi[0]) == {1920}


def test_artifact_notes_match_theory():
    bundle = bundle_for("C", "major")

    assert bundle.chord_midi[3].notes == [65, 69, 72]
    assert bundle.chord_midi[3].description == "major"
    assert bundle.scale_midi.notes == bundle.scale.notes
    assert bundle.arpeggio_midi[0].notes[:4] == [60, 64, 67, 64]


def test_artifacts_by_kind():
    bundle = bundle_for("G", "major")

    assert bundle.artifacts("scale") == [bundle.scale_midi]
    assert bundle.artifacts("arpeggios") is bundle.arpeggio_midi
    with pytest.raises(KeyError):
        bundle.artifacts("drums")


def test_write_all(tmp_path):
    paths = bundle_for("F", "major", bpm=90).write_all(tmp_path / "out")

    assert len(paths) == 36
    assert len({p.name for p in paths}) == 36
    for path in paths:
        data = path.read_bytes()
        assert data.startswith(b"MThd")
        assert _tempo(data) == 666666


def test_invalid_key_raises():
    with pytest.raises(InvalidKeyError):
        bundle_for("Z", "major")
