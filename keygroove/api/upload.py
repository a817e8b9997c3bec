"""File upload endpoint for audio analysis."""

import asyncio
import logging
import os
import tempfile

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile

from keygroove.analysis.engine import AnalysisEngine
from keygroove.api.deps import get_engine
from keygroove.api.schemas import AnalysisResponse, result_to_response
from keygroove.audio.loader import SUPPORTED_FORMATS, decode_to_mono_pcm
from keygroove.config import settings
from keygroove.errors import AnalysisError, DecodeError
from keygroove.midi.bundle import bundle_for

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/analyze", response_model=AnalysisResponse)
async def analyze_file(
    file: UploadFile = File(...),
    engine: AnalysisEngine = Depends(get_engine),
):
    """Analyze an uploaded audio file for key and tempo, with its MIDI bundle."""
    suffix = ""
    if file.filename and "." in file.filename:
        suffix = "." + file.filename.rsplit(".", 1)[-1].lower()
    if suffix not in SUPPORTED_FORMATS:
        raise HTTPException(400, f"Unsupported format. Use: {', '.join(sorted(SUPPORTED_FORMATS))}")

    content = await file.read()
    if len(content) > settings.max_upload_mb * 1024 * 1024:
        raise HTTPException(400, f"File too large (max {settings.max_upload_mb} MB)")

    # Write to temp file (librosa needs file path for some formats)
    try:
        with tempfile.NamedTemporaryFile(suffix=suffix, delete=False) as tmp:
            tmp.write(content)
            tmp_path = tmp.name
    except Exception as e:
        logger.error(f"Could not stage upload {file.filename}: {e}")
        raise HTTPException(500, "Analysis failed")

    loop = asyncio.get_running_loop()
    try:
        signal = await loop.run_in_executor(None, decode_to_mono_pcm, tmp_path)
        await loop.run_in_executor(None, engine.initialize)
        result = await engine.analyze_async(signal)
    except DecodeError as e:
        raise HTTPException(400, str(e))
    except AnalysisError as e:
        logger.error(f"Analysis failed for {file.filename}: {e}")
        raise HTTPException(500, f"Analysis failed: {e}")
    finally:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass

    bundle = bundle_for(result.key, result.mode, result.bpm)
    return result_to_response(result, bundle)
