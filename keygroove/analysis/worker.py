"""Message-passing front end for the analysis engine.

Requests and responses are tagged pydantic models::

    init                      -> ready | error
    analyze{samples, rate}    -> progress* then result | error

``AnalysisWorker.handle`` is an async generator that yields the responses
for one request. Every request ends with exactly one terminal message
(``ready``, ``result`` or ``error``); progress messages are advisory.
"""

import asyncio
import logging
from typing import Annotated, AsyncIterator, Literal, Union

import numpy as np
from pydantic import BaseModel, Field, TypeAdapter

from keygroove.analysis.engine import AnalysisEngine
from keygroove.analysis.models import AnalysisResult, Signal
from keygroove.errors import KeygrooveError

logger = logging.getLogger(__name__)


# Requests

class InitRequest(BaseModel):
    type: Literal["init"] = "init"


class AnalyzeRequest(BaseModel):
    type: Literal["analyze"] = "analyze"
    sample_rate: int
    # None when the PCM travels separately (e.g. a binary WebSocket frame)
    samples: list[float] | None = None


Request = Annotated[Union[InitRequest, AnalyzeRequest], Field(discriminator="type")]

_request_adapter = TypeAdapter(Request)


def parse_request(data: dict) -> InitRequest | AnalyzeRequest:
    """Validate a raw JSON object into a request model."""
    return _request_adapter.validate_python(data)


# Responses

class ReadyMessage(BaseModel):
    type: str = "ready"


class ProgressMessage(BaseModel):
    type: str = "progress"
    percent: int


class ResultMessage(BaseModel):
    type: str = "result"
    key: str
    mode: str
    key_confidence: float
    bpm: int | None
    bpm_confidence: float

    @classmethod
    def from_result(cls, result: AnalysisResult) -> "ResultMessage":
        return cls(
            key=result.key,
            mode=result.mode,
            key_confidence=result.key_confidence,
            bpm=result.bpm,
            bpm_confidence=result.bpm_confidence,
        )


class ErrorMessage(BaseModel):
    type: str = "error"
    message: str


Response = ReadyMessage | ProgressMessage | ResultMessage | ErrorMessage


class AnalysisWorker:
    """Serializes requests onto one AnalysisEngine.

    Only one request runs at a time; a request arriving while another is in
    flight is answered with a single error message and never reaches the
    engine. An analyze request on an uninitialized worker initializes it
    first.
    """

    def __init__(self, engine: AnalysisEngine | None = None):
        self.engine = engine if engine is not None else AnalysisEngine()
        self._lock = asyncio.Lock()

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    async def handle(
        self,
        request: InitRequest | AnalyzeRequest,
        samples: np.ndarray | None = None,
    ) -> AsyncIterator[Response]:
        """Yield the responses for *request*.

        *samples* overrides ``request.samples`` so callers holding a numpy
        buffer need not round-trip it through a list.
        """
        if self._lock.locked():
            yield ErrorMessage(message="Analysis failed: another request is in progress")
            return

        async with self._lock:
            if isinstance(request, InitRequest):
                yield await self._initialize()
                return

            if not self.engine.ready:
                init_reply = await self._initialize()
                if isinstance(init_reply, ErrorMessage):
                    yield init_reply
                    return

            pcm = samples if samples is not None else request.samples
            try:
                if pcm is None:
                    raise ValueError("no samples provided")
                signal = Signal(samples=np.asarray(pcm, dtype=np.float32), sample_rate=request.sample_rate)
            except ValueError as e:
                yield ErrorMessage(message=f"Analysis failed: {e}")
                return

            async for message in self._analyze(signal):
                yield message

    async def _initialize(self) -> ReadyMessage | ErrorMessage:
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self.engine.initialize)
        except KeygrooveError as e:
            logger.error(f"Extractor initialization failed: {e}")
            return ErrorMessage(message=f"Analysis failed: {e}")
        return ReadyMessage()

    async def _analyze(self, signal: Signal) -> AsyncIterator[Response]:
        queue: asyncio.Queue[int | None] = asyncio.Queue()

        async def run() -> AnalysisResult:
            try:
                return await self.engine.analyze_async(signal, on_progress=queue.put_nowait)
            finally:
                queue.put_nowait(None)

        task = asyncio.create_task(run())
        while True:
            percent = await queue.get()
            if percent is None:
                break
            yield ProgressMessage(percent=percent)

        try:
            result = await task
        except Exception as e:
            logger.error(f"Analysis failed: {e}")
            yield ErrorMessage(message=f"Analysis failed: {e}")
            return
        yield ResultMessage.from_result(result)
