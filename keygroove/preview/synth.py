"""Preview synthesizer: plays scales, chords, progressions and arpeggios.

Every note is one oscillator voice with a fixed envelope::

    0 -> 0.3 over 0.1 s, -> 0.2 over the next 0.1 s, hold, -> 0 over the last 0.1 s

All ``play_*`` calls stop whatever is playing first, so at most one pattern
sounds at a time and the newest request wins.
"""

import logging
import threading
from collections.abc import Sequence

import numpy as np

from keygroove.config import settings
from keygroove.errors import PlaybackError
from keygroove.midi.theory import TICKS_PER_QUARTER, Arpeggio, Chord, NoteEvent
from keygroove.preview.output import AudioContext, SoundDeviceContext
from keygroove.preview.waveforms import Waveform, get_waveform

logger = logging.getLogger(__name__)

PEAK_GAIN = 0.3
SUSTAIN_GAIN = 0.2
ENVELOPE_SEGMENT = 0.1  # attack, decay and release length in seconds
SCALE_PREVIEW_NOTES = 8
SCALE_OVERLAP = 0.8


def midi_to_frequency(note: float) -> float:
    """Equal-tempered frequency in Hz, A4 (69) = 440 Hz."""
    return 440.0 * 2 ** ((note - 69) / 12)


class Voice:
    """One scheduled oscillator note (times in context seconds)."""

    def __init__(self, note: int, start: float, duration: float, waveform: Waveform):
        self.note = note
        self.frequency = midi_to_frequency(note)
        self.start = start
        self.duration = max(0.0, duration)
        self.end = start + self.duration
        self.waveform = waveform
        self.stopped = False

        # Segments shrink proportionally for notes shorter than 3 segments
        seg = ENVELOPE_SEGMENT * min(1.0, self.duration / (3 * ENVELOPE_SEGMENT)) if self.duration else 0.0
        self._env_t = [0.0, seg, 2 * seg, self.duration - seg, self.duration]
        self._env_g = [0.0, PEAK_GAIN, SUSTAIN_GAIN, SUSTAIN_GAIN, 0.0]

    def envelope(self, t: np.ndarray) -> np.ndarray:
        """Gain at times *t* relative to the note start."""
        gain = np.interp(t, self._env_t, self._env_g, left=0.0, right=0.0)
        gain[(t < 0) | (t >= self.duration)] = 0.0
        return gain

    def render(self, t: np.ndarray) -> np.ndarray:
        """Samples at absolute context times *t*."""
        local = t - self.start
        gain = self.envelope(local)
        if not gain.any():
            return gain
        return gain * self.waveform(self.frequency * np.maximum(local, 0.0))

    def finished(self, now: float) -> bool:
        return now >= self.end

    def stop(self, now: float) -> None:
        """Silence the voice from *now* on. Safe to call repeatedly."""
        if self.stopped:
            return
        self.stopped = True
        if now < self.end:
            self.end = max(self.start, now)
            self.duration = self.end - self.start
            # Hard stop: keep the envelope shape but cut it off at the new end
            self._env_t = [min(x, self.duration) for x in self._env_t]


class PreviewSynthesizer:
    """Plays note data through one audio output context."""

    def __init__(
        self,
        context: AudioContext | None = None,
        waveform: str | Waveform | None = None,
        master_gain: float | None = None,
    ):
        self._context = context
        self.master_gain = settings.preview_master_gain if master_gain is None else master_gain
        self._waveform: Waveform = get_waveform(settings.preview_waveform)
        if waveform is not None:
            self.set_waveform(waveform)
        self._active: list[Voice] = []
        self._lock = threading.Lock()
        self.initialized = False

    @property
    def context(self) -> AudioContext | None:
        return self._context

    def initialize(self) -> None:
        """Open the output context. Raises PlaybackError."""
        if self.initialized:
            return
        if self._context is None:
            self._context = SoundDeviceContext(master_gain=self.master_gain)
        self._context.master_gain = self.master_gain
        self._context.start()
        self.initialized = True

    def set_waveform(self, waveform: str | Waveform, duty: float | None = None) -> None:
        if callable(waveform):
            self._waveform = waveform
        else:
            self._waveform = get_waveform(waveform, duty=duty)

    def _require(self) -> AudioContext:
        if not self.initialized or self._context is None:
            raise PlaybackError("Synthesizer not initialized")
        return self._context

    @property
    def active_voices(self) -> list[Voice]:
        with self._lock:
            return list(self._active)

    def play_note(self, note: int, duration: float = 1.0, start: float = 0.0) -> Voice:
        """Schedule one note *start* seconds from now. Does not stop other voices."""
        context = self._require()
        voice = Voice(note, context.current_time + start, duration, self._waveform)
        context.add_voice(voice)
        with self._lock:
            self._active.append(voice)
        return voice

    def _play(self, schedule: list[tuple[int, float, float]]) -> list[Voice]:
        """Stop everything, then schedule (note, start, duration) triples."""
        self._require()
        self.stop_all()
        return [self.play_note(note, duration, start) for note, start, duration in schedule]

    def play_scale(self, notes: Sequence[int], note_duration: float = 0.5) -> list[Voice]:
        """First 8 notes, each starting at i x duration x 0.8 (slight overlap)."""
        return self._play([
            (note, i * note_duration * SCALE_OVERLAP, note_duration)
            for i, note in enumerate(list(notes)[:SCALE_PREVIEW_NOTES])
        ])

    def play_chord(self, notes: Sequence[int], duration: float = 2.0) -> list[Voice]:
        return self._play([(note, 0.0, duration) for note in notes])

    def play_progression(self, chords: Sequence[Chord | Sequence[int]], chord_duration: float = 1.5) -> list[Voice]:
        schedule = []
        for i, chord in enumerate(chords):
            notes = chord.notes if isinstance(chord, Chord) else chord
            schedule.extend((note, i * chord_duration, chord_duration) for note in notes)
        return self._play(schedule)

    def play_arpeggio(
        self,
        arpeggio: Arpeggio | Sequence[NoteEvent | int],
        bpm: float | None = None,
    ) -> list[Voice]:
        """Play timed events (ticks -> seconds at *bpm*); plain ints are spaced
        a sixteenth apart. Notes <= 0 are rests."""
        if isinstance(arpeggio, Arpeggio):
            events = arpeggio.events
            bpm = bpm or arpeggio.bpm
        else:
            events = list(arpeggio)
        bpm = bpm or settings.default_bpm
        beat = 60.0 / bpm
        note_length = beat / 4

        schedule = []
        for i, event in enumerate(events):
            if isinstance(event, NoteEvent):
                note, start = event.note, (event.start_time / TICKS_PER_QUARTER) * beat
            else:
                note, start = int(event), i * note_length
            if note > 0:
                schedule.append((note, start, note_length))
        return self._play(schedule)

    def stop_all(self) -> None:
        """Immediately silence every active voice. Idempotent."""
        with self._lock:
            voices, self._active = self._active, []
        if not voices or self._context is None:
            return
        now = self._context.current_time
        for voice in voices:
            voice.stop(now)

    def dispose(self) -> None:
        self.stop_all()
        if self._context is not None:
            self._context.close()
        self.initialized = False
