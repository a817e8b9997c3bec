"""Core data models for key and tempo analysis."""

from dataclasses import dataclass, field

import numpy as np

DEFAULT_BPM = 120

_TEMPO_LABELS = [
    (60, "Largo"),
    (72, "Adagio"),
    (108, "Andante"),
    (120, "Moderato"),
    (168, "Allegro"),
    (200, "Presto"),
]


def tempo_label(bpm: float) -> str:
    """Italian tempo marking for a BPM value."""
    for upper, label in _TEMPO_LABELS:
        if bpm < upper:
            return label
    return "Prestissimo"


@dataclass(frozen=True)
class Signal:
    """Mono PCM samples plus their sample rate.

    The samples are stored as a read-only float32 view so analysis code
    cannot mutate the caller's buffer.
    """
    samples: np.ndarray
    sample_rate: int

    def __post_init__(self):
        samples = np.asarray(self.samples, dtype=np.float32)
        if samples.ndim != 1:
            raise ValueError(f"Signal must be mono (1-D), got shape {samples.shape}")
        if samples.size == 0:
            raise ValueError("Signal is empty")
        if not np.all(np.isfinite(samples)):
            raise ValueError("Signal contains NaN or infinite samples")
        if int(self.sample_rate) <= 0:
            raise ValueError(f"Sample rate must be positive, got {self.sample_rate}")
        view = samples.view()
        view.flags.writeable = False
        object.__setattr__(self, "samples", view)
        object.__setattr__(self, "sample_rate", int(self.sample_rate))

    @property
    def duration(self) -> float:
        return len(self.samples) / self.sample_rate


@dataclass(frozen=True)
class KeyEstimate:
    """Key reported by the extractor."""
    key: str  # pitch-class name, e.g. "F#"
    mode: str  # "major" | "minor"
    strength: float  # 0.0-1.0


@dataclass(frozen=True)
class RhythmEstimate:
    """Tempo reported by the extractor."""
    bpm: float
    confidence: float | None = None


@dataclass
class BpmCandidate:
    """A single BPM observation fed to clustering."""
    bpm: float
    support: float = 1.0


@dataclass
class BpmCluster:
    """A group of BPM candidates within the clustering tolerance."""
    bpm: float  # mean of member BPMs
    members: list[BpmCandidate] = field(default_factory=list)
    support: float = 0.0

    @property
    def size(self) -> int:
        return len(self.members)


@dataclass
class TempoEstimate:
    """Tempo produced by one method of the fallback chain."""
    bpm: float
    confidence: float  # 0.0-1.0
    method: str  # e.g. "extractor", "autocorrelation", "onset", "raw_autocorrelation"


@dataclass(frozen=True)
class AnalysisResult:
    """Complete key/tempo analysis result."""
    key: str
    mode: str
    key_confidence: float
    bpm: int | None
    bpm_confidence: float
    bpm_method: str | None = None
    duration: float = 0.0

    @property
    def effective_bpm(self) -> int:
        """BPM for downstream MIDI timing; the default when tempo is unknown."""
        return self.bpm if self.bpm else DEFAULT_BPM

    @property
    def tempo_label(self) -> str | None:
        if not self.bpm:
            return None
        return tempo_label(self.bpm)

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "mode": self.mode,
            "key_confidence": self.key_confidence,
            "bpm": self.bpm,
            "bpm_confidence": self.bpm_confidence,
            "bpm_method": self.bpm_method,
            "duration": self.duration,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AnalysisResult":
        return cls(
            key=data["key"],
            mode=data["mode"],
            key_confidence=float(data["key_confidence"]),
            bpm=data.get("bpm"),
            bpm_confidence=float(data.get("bpm_confidence", 0.0)),
            bpm_method=data.get("bpm_method"),
            duration=float(data.get("duration", 0.0)),
        )
