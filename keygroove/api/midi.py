"""MIDI bundle metadata and .mid downloads for a key."""

from urllib.parse import quote

from fastapi import APIRouter, HTTPException, Response

from keygroove.api.schemas import MidiBundleResponse, bundle_to_response
from keygroove.errors import InvalidKeyError
from keygroove.midi.bundle import MidiBundle, bundle_for

router = APIRouter()

KINDS = ("scale", "chords", "progressions", "arpeggios")


def _bundle(key: str, mode: str, bpm: float | None) -> MidiBundle:
    try:
        return bundle_for(key, mode, bpm)
    except InvalidKeyError as e:
        raise HTTPException(400, str(e))


@router.get("/midi/{key}/{mode}", response_model=MidiBundleResponse)
async def midi_bundle(key: str, mode: str, bpm: float | None = None):
    """Scale, chords, progressions and arpeggios for a key, with download URLs."""
    return bundle_to_response(_bundle(key, mode, bpm))


@router.get("/midi/{key}/{mode}/{kind}/{index}.mid")
async def midi_file(key: str, mode: str, kind: str, index: int, bpm: float | None = None):
    """Download one Standard MIDI File from the bundle."""
    if kind not in KINDS:
        raise HTTPException(404, f"Unknown MIDI kind {kind!r}. Use: {', '.join(KINDS)}")
    artifacts = _bundle(key, mode, bpm).artifacts(kind)
    if not 0 <= index < len(artifacts):
        raise HTTPException(404, f"No {kind} entry at index {index}")
    artifact = artifacts[index]
    return Response(
        content=artifact.data,
        media_type="audio/midi",
        headers={"Content-Disposition": f"attachment; filename*=UTF-8''{quote(artifact.filename)}"},
    )
