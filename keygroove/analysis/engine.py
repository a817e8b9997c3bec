"""Analysis orchestrator - key extraction plus the tempo fallback chain."""

import asyncio
import logging
from collections.abc import Callable, Iterator

from keygroove.analysis.extractor import KeyRhythmExtractor, LibrosaExtractor
from keygroove.analysis.models import AnalysisResult, Signal
from keygroove.analysis.tempo import detect_tempo
from keygroove.config import settings
from keygroove.errors import AnalysisError, ExtractorUnavailableError

logger = logging.getLogger(__name__)

# Share of the progress bar covered by the streaming pre-pass
PRE_PASS_PERCENT = 80

ProgressCallback = Callable[[int], None]


def _emit(on_progress: ProgressCallback | None, percent: int) -> None:
    if on_progress is None:
        return
    try:
        on_progress(percent)
    except Exception as e:
        # Progress is advisory; a broken listener must not fail the analysis.
        logger.warning(f"Progress callback failed at {percent}%: {e}")


class AnalysisEngine:
    """Owns one extractor instance and runs analyses for a single caller.

    The extractor is loaded once by ``initialize()`` and reused for every
    ``analyze`` call. An optional ``AnalysisCache`` short-circuits repeated
    analyses of identical samples.
    """

    def __init__(self, extractor: KeyRhythmExtractor | None = None, cache=None):
        self.extractor = extractor if extractor is not None else LibrosaExtractor()
        self.cache = cache  # AnalysisCache | None
        self._ready = False

    @property
    def ready(self) -> bool:
        return self._ready

    def initialize(self) -> None:
        """Load the extractor. Raises ExtractorUnavailableError."""
        if self._ready:
            return
        name = getattr(self.extractor, "name", type(self.extractor).__name__)
        try:
            self.extractor.load()
        except ExtractorUnavailableError:
            raise
        except Exception as e:
            raise ExtractorUnavailableError(f"Failed to load {name} extractor: {e}") from e
        if not callable(getattr(self.extractor, "extract_key", None)):
            raise ExtractorUnavailableError(f"Key extraction not found in {name} extractor")
        self._ready = True
        logger.info(f"Extractor {name} ready")

    def progress_steps(self, signal: Signal) -> Iterator[int]:
        """Stream through the samples in fixed chunks, yielding 0-80 percent.

        Only changed values are yielded.
        """
        total = len(signal.samples)
        chunk = max(1, int(signal.sample_rate * settings.progress_chunk_seconds))
        processed = 0
        last = -1
        while processed < total:
            processed = min(processed + chunk, total)
            percent = (processed * PRE_PASS_PERCENT) // total
            if percent != last:
                last = percent
                yield percent

    def analyze(self, signal: Signal, on_progress: ProgressCallback | None = None) -> AnalysisResult:
        """Analyze a signal synchronously, reporting progress to *on_progress*."""
        for percent in self.progress_steps(signal):
            _emit(on_progress, percent)
        result = self.run_analysis(signal)
        _emit(on_progress, 100)
        return result

    async def analyze_async(
        self,
        signal: Signal,
        on_progress: ProgressCallback | None = None,
    ) -> AnalysisResult:
        """Analyze a signal without blocking the event loop.

        The progress pre-pass yields to the loop after every chunk so queued
        messages flush; the heavy analysis runs in the default executor.
        """
        for percent in self.progress_steps(signal):
            _emit(on_progress, percent)
            await asyncio.sleep(0)
        loop = asyncio.get_running_loop()
        result = await loop.run_in_executor(None, self.run_analysis, signal)
        _emit(on_progress, 100)
        return result

    def run_analysis(self, signal: Signal) -> AnalysisResult:
        """Key detection followed by tempo estimation (no progress reporting)."""
        if not self._ready:
            raise AnalysisError("Extractor not initialized")

        samples, sr = signal.samples, signal.sample_rate
        logger.info(f"Analyzing {signal.duration:.1f}s of audio at {sr}Hz")

        audio_hash = None
        if self.cache:
            audio_hash = self.cache.audio_hash(samples, sr)
            cached = self.cache.load_result(audio_hash, self.extractor.name)
            if cached is not None:
                logger.info("  Result loaded from cache")
                return AnalysisResult.from_dict(cached)

        # Step 1: Key detection (no fallback)
        logger.info("Step 1: Key detection")
        try:
            key_estimate = self.extractor.extract_key(samples, sr)
        except Exception as e:
            raise AnalysisError(f"Key extraction failed: {e}") from e
        key = key_estimate.key or "C"
        mode = "minor" if str(key_estimate.mode).lower() == "minor" else "major"
        logger.info(f"  Key: {key} {mode} (strength: {key_estimate.strength:.2f})")

        # Step 2: Tempo estimation (fallback chain, never fatal)
        logger.info("Step 2: Tempo estimation")
        tempo = detect_tempo(
            samples,
            sr,
            extractor=self.extractor,
            min_bpm=settings.min_bpm,
            max_bpm=settings.max_bpm,
            tolerance=settings.cluster_tolerance,
            window_seconds=settings.autocorr_window_seconds,
            hop_seconds=settings.autocorr_hop_seconds,
            crossval_seconds=settings.crossval_window_seconds,
        )
        if tempo is not None:
            logger.info(f"  Tempo: {tempo.bpm:.1f} BPM via {tempo.method} (confidence: {tempo.confidence:.2f})")
        else:
            logger.info("  Tempo: not detected")

        result = AnalysisResult(
            key=key,
            mode=mode,
            key_confidence=float(key_estimate.strength),
            bpm=int(round(tempo.bpm)) if tempo else None,
            bpm_confidence=round(tempo.confidence, 2) if tempo else 0.0,
            bpm_method=tempo.method if tempo else None,
            duration=round(signal.duration, 2),
        )

        if self.cache and audio_hash:
            self.cache.save_result(audio_hash, self.extractor.name, result.to_dict())
        return result
