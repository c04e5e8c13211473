"""SQLAlchemy models for Trim Engine."""

from trim_engine.models.media import MediaFile
from trim_engine.models.project import Project
from trim_engine.models.download import Download, DownloadStatus
from trim_engine.models.segment import Segment

__all__ = [
    "MediaFile",
    "Project",
    "Download",
    "DownloadStatus",
    "Segment",
]
