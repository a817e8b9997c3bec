"""Exception hierarchy shared by the analysis, MIDI and preview layers."""


class KeygrooveError(Exception):
    """Base class for all keygroove errors."""


class AnalysisError(KeygrooveError):
    """An analysis run cannot produce a result."""


class ExtractorUnavailableError(AnalysisError):
    """The key extraction capability is missing or failed to load."""


class EstimationError(KeygrooveError):
    """A single tempo estimation method failed; the next one is tried."""


class DecodeError(KeygrooveError):
    """Audio input could not be decoded to PCM."""


class WorkerError(KeygrooveError):
    """Transport-level failure around the analysis worker."""


class PlaybackError(KeygrooveError):
    """The preview synthesizer could not play."""


class InvalidKeyError(KeygrooveError, ValueError):
    """Unknown pitch-class name or mode."""
