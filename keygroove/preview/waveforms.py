"""Oscillator waveforms.

A waveform maps phase (in cycles, i.e. time x frequency) to samples in
[-1, 1]. Voices only ever call ``waveform(phase)``, so timbres can be
swapped without touching note scheduling.
"""

from collections.abc import Callable, Sequence
from functools import partial

import numpy as np
from scipy import signal

Waveform = Callable[[np.ndarray], np.ndarray]

TWO_PI = 2 * np.pi


def sine(phase: np.ndarray) -> np.ndarray:
    return np.sin(TWO_PI * phase)


def square(phase: np.ndarray) -> np.ndarray:
    return signal.square(TWO_PI * phase)


def sawtooth(phase: np.ndarray) -> np.ndarray:
    return signal.sawtooth(TWO_PI * phase)


def triangle(phase: np.ndarray) -> np.ndarray:
    return signal.sawtooth(TWO_PI * phase, width=0.5)


def pulse(phase: np.ndarray, duty: float = 0.25) -> np.ndarray:
    """Rectangular wave that is high for *duty* of each cycle."""
    if not 0.0 < duty < 1.0:
        raise ValueError(f"Duty cycle must be in (0, 1), got {duty}")
    return signal.square(TWO_PI * phase, duty=duty)


def harmonic(phase: np.ndarray, amplitudes: Sequence[float]) -> np.ndarray:
    """Additive wave: amplitudes[k] weights harmonic k+1, normalized to peak <= 1."""
    amplitudes = np.asarray(amplitudes, dtype=np.float64)
    total = np.sum(np.abs(amplitudes))
    if total == 0:
        return np.zeros_like(phase, dtype=np.float64)
    out = np.zeros_like(phase, dtype=np.float64)
    for k, amp in enumerate(amplitudes, start=1):
        if amp:
            out += amp * np.sin(TWO_PI * k * phase)
    return out / total


# Harmonic amplitude presets
HARMONIC_PRESETS = {
    "organ": (1.0, 0.8, 0.6, 0.0, 0.4, 0.0, 0.0, 0.3),
    "bell": (1.0, 0.0, 0.5, 0.0, 0.35, 0.0, 0.0, 0.0, 0.25, 0.0, 0.0, 0.2),
    "metallic": (1.0, 0.6, 0.0, 0.5, 0.0, 0.45, 0.0, 0.4, 0.0, 0.35, 0.3, 0.3),
}

WAVEFORMS: dict[str, Waveform] = {
    "sine": sine,
    "square": square,
    "sawtooth": sawtooth,
    "triangle": triangle,
    "pulse": pulse,
}


def get_waveform(name: str, duty: float | None = None) -> Waveform:
    """Look up a waveform by name (including the harmonic presets)."""
    if name == "pulse" and duty is not None:
        if not 0.0 < duty < 1.0:
            raise ValueError(f"Duty cycle must be in (0, 1), got {duty}")
        return partial(pulse, duty=duty)
    if name in WAVEFORMS:
        return WAVEFORMS[name]
    if name in HARMONIC_PRESETS:
        return partial(harmonic, amplitudes=HARMONIC_PRESETS[name])
    available = sorted([*WAVEFORMS, *HARMONIC_PRESETS])
    raise ValueError(f"Unknown waveform {name!r}. Available: {', '.join(available)}")
