"""WebSocket endpoint speaking the analysis worker protocol."""

import logging

import numpy as np
from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from keygroove.analysis.engine import AnalysisEngine
from keygroove.analysis.worker import AnalysisWorker, AnalyzeRequest, ErrorMessage, parse_request
from keygroove.api.deps import get_engine
from keygroove.errors import WorkerError

logger = logging.getLogger(__name__)

router = APIRouter()


def _decode_pcm(payload: bytes) -> np.ndarray:
    """Little-endian float32 PCM from a binary frame."""
    if len(payload) % 4:
        raise WorkerError(f"binary frame of {len(payload)} bytes is not float32 PCM")
    return np.frombuffer(payload, dtype="<f4")


@router.websocket("/ws/analyze")
async def analyze_socket(websocket: WebSocket, engine: AnalysisEngine = Depends(get_engine)):
    """Analysis over WebSocket.

    Protocol:
    - Client sends {"type": "init"} -> {"type": "ready"} | {"type": "error", ...}
    - Client sends {"type": "analyze", "sample_rate": N, "samples": [...]}, or
      the same without "samples" followed by one binary frame of float32 PCM
    - Server replies {"type": "progress", "percent": P}* then
      {"type": "result", ...} | {"type": "error", "message": ...}
    """
    await websocket.accept()
    worker = AnalysisWorker(engine)

    try:
        while True:
            data = await websocket.receive_json()
            try:
                request = parse_request(data)
                samples = None
                if isinstance(request, AnalyzeRequest) and request.samples is None:
                    samples = _decode_pcm(await websocket.receive_bytes())
            except (ValidationError, WorkerError) as e:
                await websocket.send_json(ErrorMessage(message=f"Worker error: {e}").model_dump())
                continue

            async for message in worker.handle(request, samples=samples):
                await websocket.send_json(message.model_dump())

    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.warning(f"WebSocket analysis aborted: {e}")
        try:
            await websocket.send_json({"type": "error", "message": f"Worker error: {e}"})
        except Exception:
            pass
