"""Signal conditioning shared by the tempo estimators.

Everything here returns new arrays and leaves its input alone.
"""

from __future__ import annotations

import numpy as np
from scipy.signal import decimate, lfilter

ANALYSIS_SR = 22050


def normalize(audio: np.ndarray) -> np.ndarray:
    """Scale so the largest absolute sample is 1 (silence passes through)."""
    audio = np.asarray(audio, dtype=np.float64)
    peak = np.max(np.abs(audio)) if len(audio) else 0.0
    return audio / peak if peak > 0 else audio.copy()


def high_pass_filter(audio: np.ndarray, sr: int, cutoff: float = 20.0) -> np.ndarray:
    """First-order RC high-pass: y[n] = a * (y[n-1] + x[n] - x[n-1]).

    Removes DC offset and sub-audio rumble before onset analysis.
    """
    rc = 1.0 / (2.0 * np.pi * cutoff)
    a = rc / (rc + 1.0 / sr)
    return lfilter([a, -a], [1.0, -a], np.asarray(audio, dtype=np.float64))


def to_analysis_rate(
    audio: np.ndarray,
    sr: int,
    target_sr: int = ANALYSIS_SR,
) -> tuple[np.ndarray, int]:
    """Decimate by an integer factor so the rate is at most ~target_sr.

    Always returns a new float64 array; the input is never modified.
    """
    factor = int(sr // target_sr)
    audio = np.asarray(audio, dtype=np.float64)
    if factor <= 1 or len(audio) < factor * 64:
        return audio.copy(), sr
    return decimate(audio, factor), sr // factor


def frame_signal(audio: np.ndarray, frame_length: int, hop_length: int) -> np.ndarray:
    """Split audio into overlapping frames (n_frames, frame_length).

    Returns an empty (0, frame_length) array when the audio is shorter
    than one frame.
    """
    if len(audio) < frame_length:
        return np.zeros((0, frame_length), dtype=np.float64)
    n_frames = 1 + (len(audio) - frame_length) // hop_length
    idx = np.arange(frame_length)[None, :] + hop_length * np.arange(n_frames)[:, None]
    return np.asarray(audio, dtype=np.float64)[idx]
