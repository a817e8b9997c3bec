"""Complete MIDI export set for one detected key and tempo."""

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path

from keygroove.analysis.models import DEFAULT_BPM
from keygroove.midi.encoder import encode_midi, encode_timed_midi
from keygroove.midi.theory import (
    Arpeggio,
    Chord,
    Progression,
    Scale,
    arpeggios_for,
    chords_for,
    normalize_key,
    normalize_mode,
    progressions_for,
    scale_for,
)

logger = logging.getLogger(__name__)

SCALE_NOTE_TICKS = 480
CHORD_NOTE_TICKS = 960
PROGRESSION_NOTE_TICKS = 1920

# Exclusive bounds: tempos outside (60, 200) fall back to the default
_MIN_BPM = 60
_MAX_BPM = 200


def effective_bpm(bpm: float | None) -> int:
    """The tempo used for encoding: *bpm* when strictly inside (60, 200), else 120."""
    if bpm and _MIN_BPM < bpm < _MAX_BPM:
        return int(round(bpm))
    return DEFAULT_BPM


def sanitize_filename(name: str) -> str:
    """Replace every non-alphanumeric character with an underscore."""
    return re.sub(r"[^a-zA-Z0-9]", "_", name)


@dataclass(frozen=True)
class MidiArtifact:
    """One downloadable .mid file."""
    name: str
    filename: str
    data: bytes
    notes: list[int] = field(default_factory=list)
    description: str = ""


@dataclass
class MidiBundle:
    key: str
    mode: str
    bpm_used: int
    scale: Scale
    chords: list[Chord]
    progressions: list[Progression]
    arpeggios: list[Arpeggio]
    scale_midi: MidiArtifact
    chord_midi: list[MidiArtifact]
    progression_midi: list[MidiArtifact]
    arpeggio_midi: list[MidiArtifact]

    def artifacts(self, kind: str) -> list[MidiArtifact]:
        """Artifacts of one kind: scale, chords, progressions or arpeggios."""
        table = {
            "scale": [self.scale_midi],
            "chords": self.chord_midi,
            "progressions": self.progression_midi,
            "arpeggios": self.arpeggio_midi,
        }
        if kind not in table:
            raise KeyError(kind)
        return table[kind]

    def all_artifacts(self) -> list[MidiArtifact]:
        return [self.scale_midi, *self.chord_midi, *self.progression_midi, *self.arpeggio_midi]

    def write_all(self, directory: str | Path) -> list[Path]:
        """Write every artifact into *directory*; returns the written paths."""
        directory = Path(directory)
        directory.mkdir(parents=True, exist_ok=True)
        paths = [write_midi_file(a.data, directory / a.filename) for a in self.all_artifacts()]
        logger.info(f"Wrote {len(paths)} MIDI files to {directory}")
        return paths


def write_midi_file(data: bytes, path: str | Path) -> Path:
    path = Path(path)
    path.write_bytes(data)
    return path


def bundle_for(key: str, mode: str, bpm: float | None = None) -> MidiBundle:
    """Build scale, chords, progressions and arpeggios plus their MIDI files.

    Raises InvalidKeyError for an unknown key or mode.
    """
    key = normalize_key(key)
    mode = normalize_mode(mode)
    bpm_used = effective_bpm(bpm)
    prefix = f"{key}_{mode}"

    scale = scale_for(key, mode)
    chords = chords_for(key, mode)
    progressions = progressions_for(key, mode)
    arpeggios = arpeggios_for(key, mode, bpm_used)

    scale_midi = MidiArtifact(
        name=f"{key} {mode} scale",
        filename=f"{prefix}_scale.mid",
        data=encode_midi(scale.notes, bpm_used, SCALE_NOTE_TICKS),
        notes=scale.notes,
    )
    chord_midi = [
        MidiArtifact(
            name=chord.name,
            filename=f"{prefix}_{re.sub(r'[°#]', '', chord.name)}.mid",
            data=encode_midi(chord.notes, bpm_used, CHORD_NOTE_TICKS),
            notes=chord.notes,
            description=chord.quality,
        )
        for chord in chords
    ]
    progression_midi = [
        MidiArtifact(
            name=prog.name,
            filename=f"{prefix}_{sanitize_filename(prog.name)}.mid",
            data=encode_midi(prog.notes, bpm_used, PROGRESSION_NOTE_TICKS),
            notes=prog.notes,
        )
        for prog in progressions
    ]
    arpeggio_midi = [
        MidiArtifact(
            name=arp.name,
            filename=f"{prefix}_{sanitize_filename(arp.name)}.mid",
            data=encode_timed_midi(arp.events, bpm_used),
            notes=[e.note for e in arp.events],
            description=arp.description,
        )
        for arp in arpeggios
    ]

    return MidiBundle(
        key=key,
        mode=mode,
        bpm_used=bpm_used,
        scale=scale,
        chords=chords,
        progressions=progressions,
        arpeggios=arpeggios,
        scale_midi=scale_midi,
        chord_midi=chord_midi,
        progression_midi=progression_midi,
        arpeggio_midi=arpeggio_midi,
    )
