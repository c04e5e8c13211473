"""Application configuration."""

import os
from pathlib import Path
from typing import List

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings."""

    # App info
    VERSION: str = "1.0.0"
    APP_NAME: str = "Trim Engine"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Server
    HOST: str = "127.0.0.1"
    PORT: int = 8080
    CORS_ORIGINS: List[str] = ["http://localhost:5173", "http://localhost:3000"]

    # Paths
    STORAGE_PATH: Path = Path.home() / "TRIM_STORAGE"
    DATABASE_PATH: Path = Path.home() / "TRIM_STORAGE" / "trim.db"

    # External tools
    FFMPEG_PATH: str = "ffmpeg"
    FFPROBE_PATH: str = "ffprobe"
    YTDLP_PATH: str = "yt-dlp"
    FFMPEG_TIMEOUT: int = 7200  # 2 hours
    PROBE_TIMEOUT: int = 60

    # Uploads
    MAX_UPLOAD_SIZE: int = 10 * 1024 * 1024 * 1024  # 10 GB

    # Operation queue
    MAX_CONCURRENT_OPERATIONS: int = 2
    MAX_PENDING_OPERATIONS: int = 32

    # Downloads
    MAX_CONCURRENT_DOWNLOADS: int = 2
    DOWNLOAD_CHUNK_SIZE: int = 256 * 1024
    DOWNLOAD_TIMEOUT: int = 1800  # 30 minutes
    YTDLP_FORMAT: str = "bestvideo[ext=mp4]+bestaudio[ext=m4a]/best[ext=mp4]/best"

    # Cutting
    DEFAULT_SEGMENT_LENGTH: float = 60.0
    KEYFRAME_TOLERANCE: float = 0.1
    SMART_CUT_VIDEO_CODEC: str = "libx264"
    SMART_CUT_CRF: int = 18
    SMART_CUT_PRESET: str = "fast"
    SMART_CUT_AUDIO_CODEC: str = "copy"
    SMART_CUT_AUDIO_BITRATE: str = "192k"

    # Streaming
    STREAM_MAX_CHUNK: int = 10 * 1024 * 1024  # open-ended ranges are capped to this
    STREAM_BUFFER_SIZE: int = 64 * 1024

    class Config:
        env_prefix = "TRIM_"
        env_file = ".env"
        case_sensitive = True

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.STORAGE_PATH.mkdir(parents=True, exist_ok=True)

        # Keep the database next to the storage it indexes
        if "STORAGE_PATH" in kwargs and "DATABASE_PATH" not in kwargs:
            self.DATABASE_PATH = self.STORAGE_PATH / "trim.db"


# Override paths from environment
if os.environ.get("TRIM_STORAGE_PATH"):
    _storage_path = Path(os.environ["TRIM_STORAGE_PATH"])
    settings = Settings(
        STORAGE_PATH=_storage_path,
        DATABASE_PATH=_storage_path / "trim.db",
    )
else:
    settings = Settings()
