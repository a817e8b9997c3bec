"""Audio file decoding utilities."""

from __future__ import annotations

import logging
from io import BytesIO
from pathlib import Path
from typing import Union

import librosa
import numpy as np

from keygroove.analysis.models import Signal
from keygroove.config import settings
from keygroove.errors import DecodeError

logger = logging.getLogger(__name__)

SUPPORTED_FORMATS = {".mp3", ".wav", ".m4a", ".flac", ".aac", ".ogg"}


def decode_to_mono_pcm(
    file_path_or_buffer: Union[str, Path, BytesIO],
    sr: int | None = None,
    max_seconds: float | None = None,
) -> Signal:
    """Decode an audio file or buffer to a mono Signal.

    Parameters
    ----------
    file_path_or_buffer:
        Path to an audio file or a BytesIO buffer containing audio data.
    sr:
        Target sample rate. Defaults to ``settings.sample_rate`` (44.1 kHz).
    max_seconds:
        Only the first *max_seconds* are decoded. Defaults to
        ``settings.max_analysis_seconds``.

    Raises
    ------
    DecodeError
        If the input cannot be read or decodes to silence-length zero.
    """
    sr = sr or settings.sample_rate
    max_seconds = settings.max_analysis_seconds if max_seconds is None else max_seconds

    if isinstance(file_path_or_buffer, (str, Path)):
        path = Path(file_path_or_buffer)
        if not path.exists():
            raise DecodeError(f"Audio file not found: {path}")
        if path.suffix.lower() not in SUPPORTED_FORMATS:
            raise DecodeError(
                f"Unsupported format: {path.suffix}. "
                f"Supported: {', '.join(sorted(SUPPORTED_FORMATS))}"
            )
        source = str(path)
    else:
        source = file_path_or_buffer

    try:
        audio, sample_rate = librosa.load(source, sr=sr, mono=True, duration=max_seconds)
    except Exception as e:
        raise DecodeError(f"Audio decode error: {e}") from e

    if len(audio) == 0:
        raise DecodeError("Audio decode error: no samples decoded")

    logger.info(f"Decoded {len(audio) / sample_rate:.1f}s of audio at {sample_rate}Hz")
    return Signal(samples=np.asarray(audio, dtype=np.float32), sample_rate=int(sample_rate))
