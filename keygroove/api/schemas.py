"""Pydantic response models for API."""

from urllib.parse import quote

from pydantic import BaseModel

from keygroove.analysis.models import AnalysisResult
from keygroove.midi.bundle import MidiArtifact, MidiBundle


class MidiArtifactResponse(BaseModel):
    name: str
    filename: str
    description: str = ""
    notes: list[int] = []
    url: str


class MidiBundleResponse(BaseModel):
    key: str
    mode: str
    bpm_used: int
    scale: MidiArtifactResponse
    chords: list[MidiArtifactResponse]
    progressions: list[MidiArtifactResponse]
    arpeggios: list[MidiArtifactResponse]


class AnalysisResponse(BaseModel):
    key: str
    mode: str
    key_confidence: float
    bpm: int | None = None
    bpm_confidence: float = 0.0
    bpm_method: str | None = None
    tempo_label: str | None = None
    duration: float = 0.0
    midi: MidiBundleResponse | None = None


def artifact_url(bundle: MidiBundle, kind: str, index: int) -> str:
    return f"/api/midi/{quote(bundle.key, safe='')}/{bundle.mode}/{kind}/{index}.mid?bpm={bundle.bpm_used}"


def bundle_to_response(bundle: MidiBundle) -> MidiBundleResponse:
    def artifacts(kind: str) -> list[MidiArtifactResponse]:
        return [
            _artifact_response(a, artifact_url(bundle, kind, i))
            for i, a in enumerate(bundle.artifacts(kind))
        ]

    return MidiBundleResponse(
        key=bundle.key,
        mode=bundle.mode,
        bpm_used=bundle.bpm_used,
        scale=artifacts("scale")[0],
        chords=artifacts("chords"),
        progressions=artifacts("progressions"),
        arpeggios=artifacts("arpeggios"),
    )


def _artifact_response(artifact: MidiArtifact, url: str) -> MidiArtifactResponse:
    return MidiArtifactResponse(
        name=artifact.name,
        filename=artifact.filename,
        description=artifact.description,
        notes=artifact.notes,
        url=url,
    )


def result_to_response(result: AnalysisResult, bundle: MidiBundle | None = None) -> AnalysisResponse:
    return AnalysisResponse(
        key=result.key,
        mode=result.mode,
        key_confidence=result.key_confidence,
        bpm=result.bpm,
        bpm_confidence=result.bpm_confidence,
        bpm_method=result.bpm_method,
        tempo_label=result.tempo_label,
        duration=result.duration,
        midi=bundle_to_response(bundle) if bundle is not None else None,
    )
