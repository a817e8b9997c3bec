"""Audio output contexts for the preview synthesizer.

A context owns a clock (seconds since ``start()``), a master gain and the
set of voices it is mixing. ``OfflineContext`` advances its clock only
when rendered, which makes scheduling testable; ``SoundDeviceContext``
pulls blocks from a sounddevice callback stream.
"""

import logging
import threading

import numpy as np

from keygroove.errors import PlaybackError

logger = logging.getLogger(__name__)


class AudioContext:
    """Mixes scheduled voices into mono float32 blocks."""

    def __init__(self, sample_rate: int = 44100, master_gain: float = 0.3):
        self.sample_rate = sample_rate
        self.master_gain = master_gain
        self._voices: list = []
        self._frames = 0
        self._mix_lock = threading.Lock()
        self.running = False

    @property
    def current_time(self) -> float:
        return self._frames / self.sample_rate

    def start(self) -> None:
        self.running = True

    def close(self) -> None:
        self.running = False
        with self._mix_lock:
            self._voices = []

    def add_voice(self, voice) -> None:
        with self._mix_lock:
            self._voices.append(voice)

    @property
    def voice_count(self) -> int:
        return len(self._voices)

    def _mix(self, frames: int) -> np.ndarray:
        """Render the next *frames* samples and advance the clock."""
        t = (self._frames + np.arange(frames)) / self.sample_rate
        out = np.zeros(frames, dtype=np.float64)
        with self._mix_lock:
            for voice in self._voices:
                out += voice.render(t)
            end = t[-1] if frames else self.current_time
            self._voices = [v for v in self._voices if not v.finished(end)]
            self._frames += frames
        return (out * self.master_gain).astype(np.float32)


class OfflineContext(AudioContext):
    """Context with a manual clock; renders into numpy arrays."""

    def render(self, seconds: float) -> np.ndarray:
        if not self.running:
            raise PlaybackError("Offline context is not running")
        return self._mix(int(round(seconds * self.sample_rate)))

    def advance(self, seconds: float) -> None:
        """Move the clock forward, discarding the audio."""
        self.render(seconds)


class SoundDeviceContext(AudioContext):
    """Real-time output through a sounddevice OutputStream."""

    def __init__(self, sample_rate: int = 44100, master_gain: float = 0.3, blocksize: int = 1024):
        super().__init__(sample_rate, master_gain)
        self.blocksize = blocksize
        self._stream = None

    def _callback(self, outdata, frames, time_info, status):
        if status:
            logger.warning(f"Audio output status: {status}")
        outdata[:, 0] = self._mix(frames)

    def start(self) -> None:
        if self._stream is not None:
            return
        try:
            import sounddevice as sd
        except ImportError as e:
            raise PlaybackError("sounddevice not installed; audio preview unavailable") from e
        try:
            self._stream = sd.OutputStream(
                samplerate=self.sample_rate,
                channels=1,
                dtype="float32",
                callback=self._callback,
                blocksize=self.blocksize,
            )
            self._stream.start()
        except Exception as e:
            self._stream = None
            raise PlaybackError(f"Failed to open audio output: {e}") from e
        super().start()
        logger.info(f"Audio output started at {self.sample_rate}Hz")

    def close(self) -> None:
        if self._stream is not None:
            self._stream.stop()
            self._stream.close()
            self._stream = None
        super().close()
