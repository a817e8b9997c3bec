"""Key/rhythm extraction capability and its librosa binding.

The engine only talks to the ``KeyRhythmExtractor`` protocol, so any
music-analysis library can be plugged in as long as it reports a key,
a mode and a strength (and, optionally, a tempo).
"""

import logging
from typing import Protocol, runtime_checkable

import numpy as np

from keygroove.analysis.models import KeyEstimate, RhythmEstimate
from keygroove.audio.preprocessing import to_analysis_rate
from keygroove.errors import ExtractorUnavailableError

logger = logging.getLogger(__name__)

PITCH_NAMES = ["C", "C#", "D", "D#", "E", "F", "F#", "G", "G#", "A", "A#", "B"]

# Krumhansl-Schmuckler key profiles
KRUMHANSL_MAJOR = np.array(
    [6.35, 2.23, 3.48, 2.33, 4.38, 4.09, 2.52, 5.19, 2.39, 3.66, 2.29, 2.88]
)
KRUMHANSL_MINOR = np.array(
    [6.33, 2.68, 3.52, 5.38, 2.60, 3.53, 2.54, 4.75, 3.98, 2.69, 3.34, 3.17]
)


@runtime_checkable
class KeyRhythmExtractor(Protocol):
    """Black-box key (and optionally rhythm) extractor."""

    name: str

    def load(self) -> None:
        """Load the backing library. Raises ExtractorUnavailableError."""

    def extract_key(self, samples: np.ndarray, sr: int) -> KeyEstimate:
        ...


def supports_rhythm(extractor) -> bool:
    """True if the extractor also offers tempo extraction."""
    return callable(getattr(extractor, "extract_rhythm", None))


def estimate_key_from_chroma(chroma_mean: np.ndarray) -> KeyEstimate:
    """Correlate a 12-bin pitch-class profile against all 24 key profiles."""
    chroma_mean = np.asarray(chroma_mean, dtype=np.float64)
    if chroma_mean.shape != (12,) or not np.all(np.isfinite(chroma_mean)) or chroma_mean.std() == 0:
        return KeyEstimate(key="C", mode="major", strength=0.0)

    best = ("C", "major", -np.inf)
    for root in range(12):
        rotated = np.roll(chroma_mean, -root)
        for mode, profile in (("major", KRUMHANSL_MAJOR), ("minor", KRUMHANSL_MINOR)):
            corr = float(np.corrcoef(rotated, profile)[0, 1])
            if corr > best[2]:
                best = (PITCH_NAMES[root], mode, corr)

    key, mode, corr = best
    return KeyEstimate(key=key, mode=mode, strength=float(np.clip(corr, 0.0, 1.0)))


class LibrosaExtractor:
    """Key from a CQT chromagram, tempo from librosa's tempo estimator."""

    name = "librosa"

    def __init__(self):
        self._librosa = None

    def load(self) -> None:
        if self._librosa is not None:
            return
        try:
            import librosa
        except ImportError as e:
            raise ExtractorUnavailableError(
                "librosa not found; install it to enable key extraction"
            ) from e
        self._librosa = librosa
        logger.info(f"Loaded librosa {librosa.__version__} extractor")

    def _require(self):
        if self._librosa is None:
            raise ExtractorUnavailableError("Extractor not initialized")
        return self._librosa

    def extract_key(self, samples: np.ndarray, sr: int) -> KeyEstimate:
        librosa = self._require()
        audio, sr = to_analysis_rate(samples, sr)
        chroma = librosa.feature.chroma_cqt(y=audio.astype(np.float32), sr=sr)
        return estimate_key_from_chroma(np.mean(chroma, axis=1))

    def extract_rhythm(self, samples: np.ndarray, sr: int) -> RhythmEstimate:
        librosa = self._require()
        audio, sr = to_analysis_rate(samples, sr)
        tempo = librosa.feature.rhythm.tempo(y=audio.astype(np.float32), sr=sr)
        bpm = float(np.atleast_1d(tempo)[0])
        # librosa does not report a confidence
        return RhythmEstimate(bpm=bpm)
