"""Application configuration."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """App settings with env var overrides."""

    # Decoding
    sample_rate: int = 44100
    max_analysis_seconds: float = 30.0

    # Analysis
    min_bpm: float = 60.0
    max_bpm: float = 200.0
    default_bpm: int = 120
    cluster_tolerance: float = 3.0
    autocorr_window_seconds: float = 6.0
    autocorr_hop_seconds: float = 3.0
    crossval_window_seconds: float = 8.0
    progress_chunk_seconds: float = 0.5

    # Cache
    cache_enabled: bool = False
    cache_dir: str = ".cache"

    # Preview
    preview_master_gain: float = 0.3
    preview_waveform: str = "sine"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    max_upload_mb: int = 50

    model_config = {"env_prefix": "KEYGROOVE_"}


settings = Settings()
