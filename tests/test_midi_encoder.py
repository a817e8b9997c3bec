"""Tests for the Standard MIDI File writer."""

import io

import mido
import pytest

from keygroove.midi.encoder import (
    decode_vlq,
    encode_midi,
    encode_timed_midi,
    encode_vlq,
    tempo_microseconds,
)
from keygroove.midi.theory import NoteEvent

HEADER = bytes.fromhex("4d546864 00000006 0000 0001 01e0")


def _track_length(data: bytes) -> int:
    return int.from_bytes(data[18:22], "big")


def _parse(data: bytes) -> mido.MidiFile:
    return mido.MidiFile(file=io.BytesIO(data))


@pytest.mark.parametrize("value,expected", [
    (0, "00"),
    (127, "7f"),
    (128, "8100"),
    (480, "8360"),
    (16383, "ff7f"),
    (16384, "818000"),
    (0x0FFFFFFF, "ffffff7f"),
])
def test_vlq_known_values(value, expected):
    encoded = encode_vlq(value)
    assert encoded.hex() == expected
    assert decode_vlq(encoded) == (value, len(encoded))


@pytest.mark.parametrize("value", [0, 1, 127, 128, 16383, 16384, 2097151])
def test_vlq_round_trip(value):
    assert decode_vlq(encode_vlq(value))[0] == value


@pytest.mark.parametrize("value", [-1, 0x10000000])
def test_vlq_out_of_range(value):
    with pytest.raises(ValueError):
        encode_vlq(value)


def test_decode_vlq_from_offset():
    assert decode_vlq(b"\x00\x83\x60\x05", 1) == (480, 3)


def test_decode_vlq_truncated():
    with pytest.raises(ValueError):
        decode_vlq(b"\x81\x80")


def test_single_note_exact_bytes():
    data = encode_midi([60], tempo_bpm=120)

    expected_body = bytes.fromhex(
        "00ff5103 07a120"  # tempo 500000 us
        "00 903c60"  # note on C4
        "8360 803c40"  # 480 ticks later, note off
        "00ff2f00"  # end of track
    )
    assert data[:14] == HEADER
    assert data[14:18] == b"MTrk"
    assert _track_length(data) == 0x14
    assert data[22:] == expected_body


def test_track_length_counts_end_of_track():
    for data in (
        encode_midi([60, 62, 64, 65, 67]),
        encode_midi([]),
        encode_timed_midi([NoteEvent(60, 0, 180), NoteEvent(64, 240, 180)]),
    ):
        assert _track_length(data) == len(data) - 22
        assert data.endswith(b"\x00\xff\x2f\x00")


def test_block_notes_are_back_to_back():
    midi = _parse(encode_midi([60, 64, 67], tempo_bpm=120, note_duration=960))
    messages = [m for m in midi.tracks[0] if m.type in ("note_on", "note_off")]

    assert [(m.type, m.note, m.time) for m in messages] == [
        ("note_on", 60, 0), ("note_off", 60, 960),
        ("note_on", 64, 0), ("note_off", 64, 960),
        ("note_on", 67, 0), ("note_off", 67, 960),
    ]


def test_parses_as_type_0_with_tempo():
    midi = _parse(encode_midi([60, 62], tempo_bpm=120))

    assert midi.type == 0
    assert midi.ticks_per_beat == 480
    assert len(midi.tracks) == 1
    tempos = [m.tempo for m in midi.tracks[0] if m.type == "set_tempo"]
    assert tempos == [500000]


@pytest.mark.parametrize("bpm,microseconds", [(120, 500000), (100, 600000), (90, 666666), (60, 1000000)])
def test_tempo_microseconds(bpm, microseconds):
    assert tempo_microseconds(bpm) == microseconds


def test_tempo_bytes_at_100_bpm():
    data = encode_midi([60], tempo_bpm=100)
    assert data[22:29] == bytes.fromhex("00ff5103 0927c0")


def test_tempo_rejects_non_positive():
    with pytest.raises(ValueError):
        tempo_microseconds(0)


def test_notes_are_clamped():
    midi = _parse(encode_midi([-5, 200]))
    notes = [m.note for m in midi.tracks[0] if m.type == "note_on"]
    assert notes == [0, 127]


def test_timed_events_note_off_before_note_on_at_same_time():
    events = [NoteEvent(60, 0, 240), NoteEvent(62, 240, 240)]
    midi = _parse(encode_timed_midi(events))
    messages = [(m.type, m.note, m.time) for m in midi.tracks[0] if m.type in ("note_on", "note_off")]

    assert messages == [
        ("note_on", 60, 0),
        ("note_off", 60, 240),
        ("note_on", 62, 0),
        ("note_off", 62, 240),
    ]


def test_timed_events_overlapping_voices():
    """Overlapping events are merged into one time-ordered stream."""
    events = [NoteEvent(60, 0, 1000), NoteEvent(64, 240, 180)]
    midi = _parse(encode_timed_midi(events))

    now = 0
    timeline = []
    for m in midi.tracks[0]:
        now += m.time
        if m.type in ("note_on", "note_off"):
            timeline.append((now, m.type, m.note))

    assert timeline == [
        (0, "note_on", 60),
        (240, "note_on", 64),
        (420, "note_off", 64),
        (1000, "note_off", 60),
    ]


def test_timed_velocities():
    data = encode_timed_midi([NoteEvent(60, 0, 180)])
    assert bytes.fromhex("903c50") in data
    assert bytes.fromhex("803c40") in data


def test_timed_rejects_negative_timing():
    with pytest.raises(ValueError):
        encode_timed_midi([NoteEvent(60, -10, 180)])


def test_output_is_deterministic():
    events = [NoteEvent(60 + i, i * 120, 180) for i in range(8)]
    assert encode_timed_midi(events, 128) == encode_timed_midi(list(events), 128)
    assert encode_midi([60, 64, 67], 90) == encode_midi((60, 64, 67), 90)
