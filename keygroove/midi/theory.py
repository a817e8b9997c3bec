"""Music theory tables: scales, diatonic triads, progressions and arpeggios.

All functions are pure and deterministic. Note numbers are MIDI numbers
anchored at C4 = 60 and always clamped to 0-127.
"""

from dataclasses import dataclass, field

from keygroove.errors import InvalidKeyError

# Pitch-class names to MIDI numbers in octave 4 (C4 = 60)
NOTE_TO_MIDI = {
    "C": 60, "C#": 61, "Db": 61, "D": 62, "D#": 63, "Eb": 63,
    "E": 64, "F": 65, "F#": 66, "Gb": 66, "G": 67, "G#": 68, "Ab": 68,
    "A": 69, "A#": 70, "Bb": 70, "B": 71,
}

MAJOR_SCALE = [0, 2, 4, 5, 7, 9, 11]
MINOR_SCALE = [0, 2, 3, 5, 7, 8, 10]

# Roman-numeral names and qualities per scale degree
MAJOR_CHORDS = [
    ("I", "major"), ("ii", "minor"), ("iii", "minor"), ("IV", "major"),
    ("V", "major"), ("vi", "minor"), ("vii°", "diminished"),
]
MINOR_CHORDS = [
    ("i", "minor"), ("ii°", "diminished"), ("III", "major"), ("iv", "minor"),
    ("v", "minor"), ("VI", "major"), ("VII", "major"),
]

# Progression name -> chord degree indices
MAJOR_PROGRESSIONS = {
    "I-V-vi-IV": [0, 4, 5, 3],
    "I-vi-IV-V": [0, 5, 3, 4],
    "vi-IV-I-V": [5, 3, 0, 4],
    "I-IV-V-I": [0, 3, 4, 0],
}
MINOR_PROGRESSIONS = {
    "i-VII-VI-VII": [0, 6, 5, 6],
    # Named after the harmonic-minor cadence but built on the diatonic v chord
    "i-iv-V-i": [0, 3, 4, 0],
    "i-VI-VII-i": [0, 5, 6, 0],
    "i-v-iv-i": [0, 4, 3, 0],
}

TRIAD_OFFSETS = (0, 2, 4)

TICKS_PER_QUARTER = 480
ARPEGGIO_BAR_TICKS = 1920
ARPEGGIO_REPEATS = 4
ARPEGGIO_NOTE_TICKS = 180


@dataclass(frozen=True)
class ArpeggioTemplate:
    name: str
    pattern: tuple[int, ...]  # scale-degree indices
    timing: tuple[int, ...]  # tick offsets within one repeat
    description: str


def _even(step: int, count: int) -> tuple[int, ...]:
    return tuple(i * step for i in range(count))


ARPEGGIO_TEMPLATES = [
    ArpeggioTemplate("Basic Triad Up", (0, 2, 4, 2), _even(240, 4), "Simple ascending triad arpeggio"),
    ArpeggioTemplate("Basic Triad Down", (4, 2, 0, 2), _even(240, 4), "Simple descending triad arpeggio"),
    ArpeggioTemplate("Seventh Up", (0, 2, 4, 6), _even(240, 4), "Ascending seventh chord arpeggio"),
    ArpeggioTemplate("Scale Run", (0, 1, 2, 3, 4, 5, 6, 7), _even(120, 8), "Fast scale run"),
    ArpeggioTemplate("Alberti Bass", (0, 4, 2, 4), _even(240, 4), "Classical Alberti bass pattern"),
    ArpeggioTemplate("Broken Chord", (0, 2, 4, 0, 2, 4, 0, 4), _even(240, 8), "Extended broken chord pattern"),
    ArpeggioTemplate("Ambient Cascade", (0, 2, 4, 6, 4, 2), _even(480, 6), "Slow, ambient cascade"),
    ArpeggioTemplate("Jazz Walking", (0, 2, 4, 1, 3, 5, 6, 4), _even(240, 8), "Jazz walking bass style"),
]

# Voicing variations: (label, octave shift, raise the root degree by an octave)
VARIATIONS = [
    ("Root Position", 0, False),
    ("First Inversion", 0, True),
    ("Higher Octave", 1, False),
]


@dataclass(frozen=True)
class Scale:
    key: str
    mode: str
    notes: list[int]


@dataclass(frozen=True)
class Chord:
    name: str
    quality: str
    notes: list[int]


@dataclass(frozen=True)
class Progression:
    name: str
    chords: list[Chord]

    @property
    def notes(self) -> list[int]:
        return [n for chord in self.chords for n in chord.notes]


@dataclass(frozen=True)
class NoteEvent:
    note: int
    start_time: int  # ticks
    duration: int  # ticks


@dataclass(frozen=True)
class Arpeggio:
    name: str
    description: str
    events: list[NoteEvent] = field(default_factory=list)
    bpm: int = 120  # tempo the events are meant to be played at


def clamp_note(note: int) -> int:
    return max(0, min(127, int(note)))


def normalize_mode(mode: str) -> str:
    """Lower-case a mode name; anything but major/minor raises InvalidKeyError."""
    normalized = str(mode).strip().lower()
    if normalized not in ("major", "minor"):
        raise InvalidKeyError(f"Unknown mode: {mode!r} (expected 'major' or 'minor')")
    return normalized


def normalize_key(key: str) -> str:
    """Canonical spelling of a pitch-class name ("db" -> "Db", "c#" -> "C#")."""
    key = str(key).strip()
    return key[:1].upper() + key[1:].lower()


def root_note(key: str) -> int:
    """MIDI number of *key* in octave 4. Raises InvalidKeyError."""
    try:
        return NOTE_TO_MIDI[normalize_key(key)]
    except KeyError:
        raise InvalidKeyError(f"Unknown key: {key!r}") from None


def _intervals(mode: str) -> list[int]:
    return MAJOR_SCALE if mode == "major" else MINOR_SCALE


def degree_note(root: int, intervals: list[int], degree: int) -> int:
    """Note for a scale-degree index, carrying whole octaves past the 7th degree."""
    octave, step = divmod(degree, len(intervals))
    return root + intervals[step] + octave * 12


def scale_for(key: str, mode: str, octaves: int = 2) -> Scale:
    """Scale notes ascending over *octaves* consecutive octaves."""
    mode = normalize_mode(mode)
    root = root_note(key)
    intervals = _intervals(mode)
    notes = [
        clamp_note(root + interval + octave * 12)
        for octave in range(octaves)
        for interval in intervals
    ]
    return Scale(key=normalize_key(key), mode=mode, notes=notes)


def chords_for(key: str, mode: str) -> list[Chord]:
    """The 7 diatonic triads of the key, tonic first."""
    mode = normalize_mode(mode)
    root = root_note(key)
    intervals = _intervals(mode)
    names = MAJOR_CHORDS if mode == "major" else MINOR_CHORDS
    return [
        Chord(
            name=name,
            quality=quality,
            notes=[clamp_note(degree_note(root, intervals, degree + offset)) for offset in TRIAD_OFFSETS],
        )
        for degree, (name, quality) in enumerate(names)
    ]


def progressions_for(key: str, mode: str) -> list[Progression]:
    """Four common progressions built from the diatonic triads."""
    mode = normalize_mode(mode)
    chords = chords_for(key, mode)
    table = MAJOR_PROGRESSIONS if mode == "major" else MINOR_PROGRESSIONS
    return [
        Progression(name=name, chords=[chords[i] for i in degrees])
        for name, degrees in table.items()
    ]


def arpeggios_for(key: str, mode: str, bpm: int = 120) -> list[Arpeggio]:
    """Every template in every voicing variation, repeated into a 4-bar groove.

    Event timing is in ticks (480 per quarter); *bpm* is carried along for
    playback and encoding.
    """
    mode = normalize_mode(mode)
    root = root_note(key)
    intervals = _intervals(mode)

    arpeggios = []
    for template in ARPEGGIO_TEMPLATES:
        for label, octave, raise_root in VARIATIONS:
            events = []
            for repeat in range(ARPEGGIO_REPEATS):
                for degree, offset in zip(template.pattern, template.timing):
                    if raise_root and degree == 0:
                        degree += len(intervals)
                    note = degree_note(root, intervals, degree) + octave * 12
                    events.append(NoteEvent(
                        note=clamp_note(note),
                        start_time=repeat * ARPEGGIO_BAR_TICKS + offset,
                        duration=ARPEGGIO_NOTE_TICKS,
                    ))
            arpeggios.append(Arpeggio(
                name=f"{template.name} ({label})",
                description=template.description,
                events=events,
                bpm=bpm,
            ))
    return arpeggios
