"""Shared request dependencies."""

from starlette.requests import HTTPConnection

from keygroove.analysis.cache import AnalysisCache
from keygroove.analysis.engine import AnalysisEngine
from keygroove.config import settings


def get_engine(conn: HTTPConnection) -> AnalysisEngine:
    """The application's analysis engine, created on first use."""
    engine = getattr(conn.app.state, "engine", None)
    if engine is None:
        cache = AnalysisCache(settings.cache_dir) if settings.cache_enabled else None
        engine = AnalysisEngine(cache=cache)
        conn.app.state.engine = engine
    return engine
