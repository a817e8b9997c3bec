"""Shared test fixtures for key/tempo analyzer tests."""

import numpy as np
import pytest
from fastapi.testclient import TestClient

from keygroove.analysis.engine import AnalysisEngine
from keygroove.analysis.models import KeyEstimate, RhythmEstimate
from keygroove.api.deps import get_engine
from keygroove.errors import ExtractorUnavailableError
from keygroove.main import app


class StubExtractor:
    """Key-only extractor with canned answers."""

    name = "stub"

    def __init__(self, key="A", mode="minor", strength=0.8, fail_load=False, fail_key=False):
        self.key = key
        self.mode = mode
        self.strength = strength
        self.fail_load = fail_load
        self.fail_key = fail_key
        self.load_calls = 0
        self.key_calls = 0

    def load(self):
        self.load_calls += 1
        if self.fail_load:
            raise ExtractorUnavailableError("stub extractor missing")

    def extract_key(self, samples, sr):
        self.key_calls += 1
        if self.fail_key:
            raise RuntimeError("key extraction exploded")
        return KeyEstimate(key=self.key, mode=self.mode, strength=self.strength)


class StubRhythmExtractor(StubExtractor):
    """Stub that also reports a tempo."""

    def __init__(self, bpm=128.0, confidence=None, **kwargs):
        super().__init__(**kwargs)
        self.bpm = bpm
        self.confidence = confidence

    def extract_rhythm(self, samples, sr):
        return RhythmEstimate(bpm=self.bpm, confidence=self.confidence)


@pytest.fixture
def stub_engine():
    """Engine bound to a stub reporting A minor at 128 BPM."""
    return AnalysisEngine(extractor=StubRhythmExtractor(bpm=128.0))


@pytest.fixture
def client(stub_engine):
    """FastAPI test client with the stub engine injected."""
    app.dependency_overrides[get_engine] = lambda: stub_engine
    yield TestClient(app)
    app.dependency_overrides.clear()


def generate_click_track(
    bpm: float,
    duration_seconds: float = 10.0,
    sr: int = 22050,
) -> np.ndarray:
    """Generate a synthetic click track (short decaying 1 kHz bursts on each beat).

    Returns mono float32 audio at the given sample rate.
    """
    n_samples = int(duration_seconds * sr)
    audio = np.zeros(n_samples, dtype=np.float32)

    beat_interval = 60.0 / bpm
    click_samples = int(0.02 * sr)
    t_click = np.arange(click_samples) / sr
    click = np.sin(2 * np.pi * 1000 * t_click) * np.exp(-t_click * 100)

    time = 0.0
    while time < duration_seconds:
        start = int(time * sr)
        end = min(start + click_samples, n_samples)
        if end > start:
            audio[start:end] += click[: end - start]
        time += beat_interval

    peak = np.max(np.abs(audio))
    if peak > 0:
        audio = audio / peak
    return audio.astype(np.float32)


def generate_sine(
    freq: float = 440.0,
    duration_seconds: float = 5.0,
    sr: int = 44100,
    amplitude: float = 0.5,
) -> np.ndarray:
    """Pure sine tone as mono float32."""
    t = np.arange(int(duration_seconds * sr)) / sr
    return (amplitude * np.sin(2 * np.pi * freq * t)).astype(np.float32)


def generate_noise_bursts(
    times: list[float],
    duration_seconds: float,
    sr: int = 22050,
    burst_seconds: float = 0.05,
) -> np.ndarray:
    """Silence with short white-noise bursts starting at *times*."""
    rng = np.random.default_rng(0)
    audio = np.zeros(int(duration_seconds * sr), dtype=np.float32)
    n = int(burst_seconds * sr)
    for t in times:
        start = int(t * sr)
        end = min(start + n, len(audio))
        audio[start:end] = rng.uniform(-0.5, 0.5, end - start)
    return audio
