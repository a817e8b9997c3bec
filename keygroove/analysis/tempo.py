"""Tempo estimation with a fallback chain and energy cross-validation."""

import logging

import numpy as np

from keygroove.analysis.clustering import dominant_cluster
from keygroove.analysis.extractor import supports_rhythm
from keygroove.analysis.models import BpmCandidate, TempoEstimate
from keygroove.audio.preprocessing import frame_signal, high_pass_filter, normalize, to_analysis_rate
from keygroove.errors import EstimationError

logger = logging.getLogger(__name__)

# Heuristic confidences per method (calibration placeholders)
EXTRACTOR_DEFAULT_CONFIDENCE = 0.9
AUTOCORRELATION_CONFIDENCE = 0.75
ONSET_CONFIDENCE = 0.6
RAW_AUTOCORRELATION_CONFIDENCE = 0.4

CROSS_VALIDATION_THRESHOLD = 0.8
CONFIDENCE_BOOST = 0.1
AGREE_CONFIDENCE_CAP = 0.9
SWITCH_CONFIDENCE_CAP = 0.85

# Largest rise of a novelty curve, relative to its loudest frame, below
# which the signal counts as steady (tones, noise beds)
NOVELTY_FLOOR = 0.1
# Energy periodicity: mean autocorrelation over the beat multiples must
# reach the floor and stand this far above the median over the BPM grid
ENERGY_MULTIPLES = 4
PERIODICITY_FLOOR = 0.3
PERIODICITY_MARGIN = 0.2


def is_plausible(bpm: float | None, min_bpm: float = 60, max_bpm: float = 200) -> bool:
    return bpm is not None and np.isfinite(bpm) and min_bpm <= bpm <= max_bpm


def _normalized_autocorrelation(x: np.ndarray) -> np.ndarray | None:
    """Autocorrelation for non-negative lags, scaled so lag 0 == 1."""
    x = np.asarray(x, dtype=np.float64)
    x = x - x.mean()
    ac = np.correlate(x, x, mode="full")[len(x) - 1:]
    if len(ac) == 0 or ac[0] <= 0:
        return None
    return ac / ac[0]


def _ac_at(ac: np.ndarray, lag: float) -> float | None:
    """Linearly interpolated autocorrelation at a fractional lag."""
    if lag < 1 or lag > len(ac) - 1:
        return None
    return float(np.interp(lag, np.arange(len(ac)), ac))


def onset_strength_curve(
    audio: np.ndarray,
    sr: int,
    frame_length: int = 1024,
    hop_length: int = 256,
) -> tuple[np.ndarray, float]:
    """Frame-wise onset strength from high-frequency-weighted spectral content.

    Each frame's magnitude spectrum is weighted by normalized bin frequency
    (a centroid-like measure that emphasises percussive energy); the
    half-wave rectified first difference of that curve is the onset strength,
    expressed as a fraction of the loudest frame's content.

    Returns (strength_curve, frame_rate_hz).
    """
    frames = frame_signal(audio, frame_length, hop_length)
    frame_rate = sr / hop_length
    if len(frames) < 2:
        return np.zeros(0), frame_rate
    mags = np.abs(np.fft.rfft(frames * np.hanning(frame_length), axis=1))
    weights = np.arange(mags.shape[1]) / mags.shape[1]
    content = mags @ weights
    peak = content.max()
    if peak <= 0:
        return np.zeros(len(content)), frame_rate
    return np.maximum(0.0, np.diff(content, prepend=content[0])) / peak, frame_rate


def periodicity_scores(
    ac: np.ndarray,
    frame_rate: float,
    bpm_grid: np.ndarray,
    multiples: int = 4,
) -> np.ndarray:
    """Summed autocorrelation at the first *multiples* beat periods of each BPM."""
    scores = np.zeros(len(bpm_grid))
    for i, bpm in enumerate(bpm_grid):
        period = 60.0 * frame_rate / bpm
        for m in range(1, multiples + 1):
            value = _ac_at(ac, m * period)
            if value is not None:
                scores[i] += value
    return scores


def best_periodicity(
    curve: np.ndarray,
    frame_rate: float,
    bpm_grid: np.ndarray,
    multiples: int = 4,
) -> float | None:
    """BPM from *bpm_grid* whose beat-period multiples correlate best."""
    ac = _normalized_autocorrelation(curve)
    if ac is None:
        return None
    scores = periodicity_scores(ac, frame_rate, bpm_grid, multiples)
    best = int(np.argmax(scores))
    if scores[best] <= 0:
        return None
    return float(bpm_grid[best])


def estimate_from_extractor(extractor, samples: np.ndarray, sr: int) -> TempoEstimate | None:
    """Tempo from the primary rhythm extractor."""
    if extractor is None or not supports_rhythm(extractor):
        raise EstimationError("rhythm extractor not available")
    rhythm = extractor.extract_rhythm(samples, sr)
    if rhythm is None or not rhythm.bpm:
        return None
    if not np.isfinite(rhythm.bpm):
        raise EstimationError(f"rhythm extractor returned {rhythm.bpm}")
    confidence = rhythm.confidence if rhythm.confidence is not None else EXTRACTOR_DEFAULT_CONFIDENCE
    return TempoEstimate(bpm=float(rhythm.bpm), confidence=float(confidence), method="extractor")


def estimate_from_autocorrelation(
    samples: np.ndarray,
    sr: int,
    min_bpm: float = 60,
    max_bpm: float = 200,
    window_seconds: float = 6.0,
    hop_seconds: float = 3.0,
    tolerance: float = 3.0,
) -> TempoEstimate | None:
    """Windowed onset-strength autocorrelation with per-window voting."""
    audio, sr = to_analysis_rate(samples, sr)
    window = int(window_seconds * sr)
    hop = max(1, int(hop_seconds * sr))
    if len(audio) <= window:
        starts = [0]
        window = len(audio)
    else:
        starts = range(0, len(audio) - window + 1, hop)

    bpm_grid = np.arange(min_bpm, max_bpm + 0.25, 0.5)
    window_bpms = []
    for start in starts:
        filtered = high_pass_filter(audio[start:start + window], sr)
        curve, frame_rate = onset_strength_curve(filtered, sr)
        if len(curve) == 0 or curve.max() < NOVELTY_FLOOR:
            continue
        bpm = best_periodicity(curve, frame_rate, bpm_grid)
        if bpm is not None:
            window_bpms.append(bpm)

    logger.info(f"  autocorrelation: {len(window_bpms)}/{len(starts)} windows voted")
    cluster = dominant_cluster(window_bpms, tolerance, min_share=0.3, min_count=2)
    if cluster is None:
        return None
    return TempoEstimate(bpm=cluster.bpm, confidence=AUTOCORRELATION_CONFIDENCE, method="autocorrelation")


def detect_onsets(
    audio: np.ndarray,
    sr: int,
    frame_length: int = 2048,
    hop_length: int = 512,
    threshold_ratio: float = 1.5,
    history: int = 10,
    floor: float = 0.1,
    min_gap: float = 0.1,
) -> np.ndarray:
    """Spectral-flux onset detection with an adaptive median threshold.

    Magnitudes are scaled by the window sum so a full-scale sinusoid peaks
    near 0.5, which keeps the absolute *floor* meaningful at any frame size.
    A frame is an onset when its flux is a local maximum that exceeds both
    *threshold_ratio* times the median of the previous *history* frames and
    the *floor*. Peaks within *min_gap* seconds of the previous onset are
    dropped. Onset times are refined by fitting a parabola through the peak
    and its neighbours, so intervals are not quantized to the hop size.

    Returns onset times in seconds.
    """
    frames = frame_signal(audio, frame_length, hop_length)
    if len(frames) < 2:
        return np.zeros(0)
    window = np.hanning(frame_length)
    mags = np.abs(np.fft.rfft(frames * window, axis=1)) / window.sum()
    flux = np.zeros(len(mags))
    flux[1:] = np.maximum(0.0, np.diff(mags, axis=0)).sum(axis=1)

    onsets = []
    last = -np.inf
    for i in range(1, len(flux)):
        before = flux[i - 1]
        after = flux[i + 1] if i + 1 < len(flux) else 0.0
        if flux[i] < before or flux[i] <= after:
            continue
        recent = flux[max(0, i - history):i]
        threshold = threshold_ratio * float(np.median(recent))
        if flux[i] <= threshold or flux[i] <= floor:
            continue
        curvature = before - 2 * flux[i] + after
        offset = 0.5 * (before - after) / curvature if curvature < 0 else 0.0
        time = (i + offset) * hop_length / sr
        if time - last < min_gap:
            continue
        onsets.append(time)
        last = time
    return np.array(onsets)


def estimate_from_onsets(
    samples: np.ndarray,
    sr: int,
    min_ioi: float = 0.25,
    max_ioi: float = 2.0,
    tolerance: float = 3.0,
) -> TempoEstimate | None:
    """Tempo from clustered inter-onset intervals."""
    audio, sr = to_analysis_rate(samples, sr)
    onset_times = detect_onsets(normalize(audio), sr)
    logger.info(f"  onsets: {len(onset_times)} detected")
    if len(onset_times) < 2:
        return None

    iois = np.diff(onset_times)
    valid = iois[(iois >= min_ioi) & (iois <= max_ioi)]
    lowest, highest = 60.0 / max_ioi, 60.0 / min_ioi

    candidates = []
    for ioi in valid:
        bpm = 60.0 / float(ioi)
        candidates.append(BpmCandidate(bpm=bpm, support=1.0))
        for variant in (bpm / 2, bpm * 2):
            if lowest <= variant <= highest:
                candidates.append(BpmCandidate(bpm=variant, support=0.5))

    cluster = dominant_cluster(candidates, tolerance, min_share=0.25, min_count=3)
    if cluster is None:
        return None
    return TempoEstimate(bpm=cluster.bpm, confidence=ONSET_CONFIDENCE, method="onset")


def estimate_from_raw_autocorrelation(
    samples: np.ndarray,
    sr: int,
    min_bpm: float = 60,
    max_bpm: float = 200,
    downsample: int = 4,
    step: float = 2,
) -> TempoEstimate | None:
    """Last resort: lagged-product correlation of decimated raw PCM."""
    x = np.asarray(samples, dtype=np.float64)[::downsample]
    rate = sr / downsample

    best_bpm = None
    best_corr = 0.0
    for bpm in np.arange(min_bpm, max_bpm + step / 2, step):
        lag = int(rate * 60.0 / bpm)
        if lag <= 0 or lag >= len(x) / 4:
            continue
        corr = float(np.dot(x[:-lag], x[lag:])) / (len(x) - lag)
        if corr > best_corr:
            best_corr = corr
            best_bpm = float(bpm)

    if best_bpm is None:
        return None
    return TempoEstimate(bpm=best_bpm, confidence=RAW_AUTOCORRELATION_CONFIDENCE, method="raw_autocorrelation")


def energy_periodicity(
    samples: np.ndarray,
    sr: int,
    min_bpm: float = 60,
    max_bpm: float = 200,
    window_seconds: float = 8.0,
) -> float | None:
    """BPM with the clearest RMS-energy periodicity, or None if there is none.

    Every BPM of a 0.5-step grid is scored by the mean autocorrelation of the
    RMS novelty curve at its first four beat periods. The best BPM counts only
    when its score reaches PERIODICITY_FLOOR and beats the grid's median score
    by PERIODICITY_MARGIN. Steady signals whose RMS barely rises are rejected
    before scoring.
    """
    audio, sr = to_analysis_rate(samples, sr)
    audio = audio[: int(window_seconds * sr)]
    hop_length = 256
    frames = frame_signal(audio, 1024, hop_length)
    if len(frames) < 4:
        return None
    rms = np.sqrt(np.mean(frames ** 2, axis=1))
    novelty = np.maximum(0.0, np.diff(rms))
    if rms.max() <= 0 or novelty.max() < NOVELTY_FLOOR * rms.max():
        return None
    ac = _normalized_autocorrelation(novelty)
    if ac is None:
        return None

    bpm_grid = np.arange(min_bpm, max_bpm + 0.25, 0.5)
    scores = periodicity_scores(ac, sr / hop_length, bpm_grid, ENERGY_MULTIPLES) / ENERGY_MULTIPLES
    best = int(np.argmax(scores))
    if scores[best] < PERIODICITY_FLOOR or scores[best] - np.median(scores) < PERIODICITY_MARGIN:
        return None
    return float(bpm_grid[best])


def cross_validate(
    samples: np.ndarray,
    sr: int,
    estimate: TempoEstimate,
    min_bpm: float = 60,
    max_bpm: float = 200,
    window_seconds: float = 8.0,
    tolerance: float = 3.0,
) -> TempoEstimate:
    """Check a low-confidence tempo against RMS energy periodicity.

    Agreement within +/- tolerance raises confidence (capped at 0.9). When the
    energy instead matches the half- or double-time variant, that variant is
    taken and confidence raised (capped at 0.85). Otherwise, including when
    the energy shows no clear periodicity, the estimate is returned as is.
    """
    if estimate.confidence >= CROSS_VALIDATION_THRESHOLD:
        return estimate

    energy_bpm = energy_periodicity(samples, sr, min_bpm, max_bpm, window_seconds)
    if energy_bpm is None:
        logger.info("  cross-validation: no clear energy periodicity")
        return estimate

    if abs(energy_bpm - estimate.bpm) <= tolerance:
        logger.info(f"  cross-validation: energy agrees with {estimate.bpm:.1f} BPM")
        return TempoEstimate(
            bpm=estimate.bpm,
            confidence=min(AGREE_CONFIDENCE_CAP, estimate.confidence + CONFIDENCE_BOOST),
            method=estimate.method,
        )

    for variant in (estimate.bpm / 2, estimate.bpm * 2):
        if is_plausible(variant, min_bpm, max_bpm) and abs(energy_bpm - variant) <= tolerance:
            logger.info(f"  cross-validation: switching {estimate.bpm:.1f} -> {variant:.1f} BPM")
            return TempoEstimate(
                bpm=variant,
                confidence=min(SWITCH_CONFIDENCE_CAP, estimate.confidence + CONFIDENCE_BOOST),
                method=estimate.method,
            )

    logger.info(f"  cross-validation: energy peaks at {energy_bpm:.1f} BPM, keeping {estimate.bpm:.1f}")
    return estimate


def detect_tempo(
    samples: np.ndarray,
    sr: int,
    extractor=None,
    min_bpm: float = 60,
    max_bpm: float = 200,
    tolerance: float = 3.0,
    window_seconds: float = 6.0,
    hop_seconds: float = 3.0,
    crossval_seconds: float = 8.0,
) -> TempoEstimate | None:
    """Run the tempo fallback chain and cross-validate the first plausible result.

    Methods are tried in order: rhythm extractor, windowed autocorrelation,
    onset intervals, raw autocorrelation. A method that raises or returns an
    implausible BPM is logged and skipped. Returns None when all fail.
    """
    methods = [
        ("extractor", lambda: estimate_from_extractor(extractor, samples, sr)),
        ("autocorrelation", lambda: estimate_from_autocorrelation(
            samples, sr, min_bpm, max_bpm, window_seconds, hop_seconds, tolerance)),
        ("onset", lambda: estimate_from_onsets(samples, sr, tolerance=tolerance)),
        ("raw_autocorrelation", lambda: estimate_from_raw_autocorrelation(
            samples, sr, min_bpm, max_bpm)),
    ]

    for name, method in methods:
        try:
            estimate = method()
        except Exception as e:
            logger.warning(f"  {name} tempo estimation failed: {e}")
            continue
        if estimate is None:
            logger.info(f"  {name}: no tempo")
            continue
        if not is_plausible(estimate.bpm, min_bpm, max_bpm):
            logger.info(f"  {name}: implausible {estimate.bpm:.1f} BPM, trying next method")
            continue
        logger.info(f"  {name}: {estimate.bpm:.1f} BPM (confidence {estimate.confidence})")
        try:
            return cross_validate(samples, sr, estimate, min_bpm, max_bpm, crossval_seconds, tolerance)
        except Exception as e:
            logger.warning(f"  cross-validation failed: {e}")
            return estimate

    logger.info("  No tempo method produced a plausible BPM")
    return None
