"""Tests for the analysis worker message protocol."""

import asyncio

import numpy as np
import pytest
from pydantic import ValidationError

from keygroove.analysis.engine import AnalysisEngine
from keygroove.analysis.worker import (
    AnalysisWorker,
    AnalyzeRequest,
    ErrorMessage,
    InitRequest,
    ProgressMessage,
    ReadyMessage,
    ResultMessage,
    parse_request,
)
from tests.conftest import StubExtractor, StubRhythmExtractor, generate_sine

TERMINAL = (ReadyMessage, ResultMessage, ErrorMessage)


async def _collect(worker, request, samples=None):
    return [m async for m in worker.handle(request, samples=samples)]


def _worker(extractor=None) -> AnalysisWorker:
    return AnalysisWorker(AnalysisEngine(extractor=extractor or StubRhythmExtractor(bpm=128.0)))


def test_init_replies_ready():
    messages = asyncio.run(_collect(_worker(), InitRequest()))
    assert [type(m) for m in messages] == [ReadyMessage]


def test_init_failure_replies_error():
    messages = asyncio.run(_collect(_worker(StubExtractor(fail_load=True)), InitRequest()))

    assert len(messages) == 1
    assert isinstance(messages[0], ErrorMessage)
    assert messages[0].message.startswith("Analysis failed:")


def test_analyze_streams_progress_then_one_result():
    samples = generate_sine(duration_seconds=2.0)
    request = AnalyzeRequest(sample_rate=44100)

    messages = asyncio.run(_collect(_worker(), request, samples=samples))

    terminal = [m for m in messages if isinstance(m, TERMINAL)]
    assert len(terminal) == 1
    assert messages[-1] is terminal[0]
    assert isinstance(terminal[0], ResultMessage)
    assert terminal[0].key == "A"
    assert terminal[0].bpm == 128

    percents = [m.percent for m in messages if isinstance(m, ProgressMessage)]
    assert percents == sorted(percents)
    assert percents[-1] == 100


def test_analyze_with_inline_samples():
    request = parse_request({
        "type": "analyze",
        "sample_rate": 8000,
        "samples": [0.0, 0.25, 0.5, 0.25] * 2000,
    })
    messages = asyncio.run(_collect(_worker(), request))
    assert isinstance(messages[-1], ResultMessage)


def test_analyze_without_samples_errors():
    messages = asyncio.run(_collect(_worker(), AnalyzeRequest(sample_rate=44100)))

    assert len(messages) == 1
    assert isinstance(messages[0], ErrorMessage)
    assert "no samples" in messages[0].message


def test_analyze_key_failure_is_single_error():
    samples = generate_sine(duration_seconds=1.0)
    worker = _worker(StubExtractor(fail_key=True))

    messages = asyncio.run(_collect(worker, AnalyzeRequest(sample_rate=44100), samples=samples))

    terminal = [m for m in messages if isinstance(m, TERMINAL)]
    assert len(terminal) == 1
    assert isinstance(messages[-1], ErrorMessage)
    assert messages[-1].message.startswith("Analysis failed:")


def test_overlapping_request_is_rejected():
    samples = generate_sine(duration_seconds=2.0)
    worker = _worker()

    async def scenario():
        first = worker.handle(AnalyzeRequest(sample_rate=44100), samples=samples)
        head = await first.__anext__()
        assert worker.busy
        rejected = await _collect(worker, AnalyzeRequest(sample_rate=44100), samples=samples)
        rest = [m async for m in first]
        return [head, *rest], rejected

    messages, rejected = asyncio.run(scenario())

    assert len(rejected) == 1
    assert isinstance(rejected[0], ErrorMessage)
    assert isinstance(messages[-1], ResultMessage)
    assert not worker.busy


def test_parse_request_discriminates_on_type():
    assert isinstance(parse_request({"type": "init"}), InitRequest)
    request = parse_request({"type": "analyze", "sample_rate": 22050})
    assert isinstance(request, AnalyzeRequest)
    assert request.samples is None


def test_parse_request_rejects_unknown_type():
    with pytest.raises(ValidationError):
        parse_request({"type": "shutdown"})


def test_result_message_serializes_absent_bpm():
    message = ResultMessage(key="C", mode="major", key_confidence=0.5, bpm=None, bpm_confidence=0.0)
    assert message.model_dump() == {
        "type": "result",
        "key": "C",
        "mode": "major",
        "key_confidence": 0.5,
        "bpm": None,
        "bpm_confidence": 0.0,
    }


def test_samples_override_is_not_copied_into_request():
    samples = np.zeros(4410, dtype=np.float32)
    request = AnalyzeRequest(sample_rate=44100)
    asyncio.run(_collect(_worker(), request, samples=samples))
    assert request.samples is None
