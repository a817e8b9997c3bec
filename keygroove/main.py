"""FastAPI application - key/tempo analysis and MIDI export API."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from keygroove.api.midi import router as midi_router
from keygroove.api.upload import router as upload_router
from keygroove.api.websocket import router as ws_router

app = FastAPI(title="Keygroove", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(upload_router, prefix="/api")
app.include_router(midi_router, prefix="/api")
app.include_router(ws_router, prefix="/api")


@app.get("/api/health")
async def health():
    return {"status": "ok"}


def run(host: str | None = None, port: int | None = None, reload: bool = False):
    import uvicorn
    from keygroove.config import settings
    uvicorn.run(
        "keygroove.main:app",
        host=host or settings.host,
        port=port or settings.port,
        reload=reload,
    )
