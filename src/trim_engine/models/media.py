"""Media file model."""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import String, Integer, BigInteger, Float, Text, DateTime, JSON
from sqlalchemy.orm import Mapped, mapped_column

from trim_engine.core.database import Base


class MediaFile(Base):
    """An uploaded or downloaded media file and its probe results."""

    __tablename__ = "videos"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    file_path: Mapped[str] = mapped_column(Text, nullable=False)
    file_size: Mapped[int] = mapped_column(BigInteger, default=0)
    original_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Probe results
    duration: Mapped[float] = mapped_column(Float, default=0.0)
    format: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    codec: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    width: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    height: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    media_meta: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    def to_dict(self) -> dict:
        """Convert to dictionary for API response."""
        return {
            "id": self.id,
            "fileName": self.file_name,
            "filePath": self.file_path,
            "fileSize": self.file_size,
            "originalUrl": self.original_url,
            "duration": self.duration,
            "format": self.format,
            "codec": self.codec,
            "width": self.width,
            "height": self.height,
            "metadata": self.media_meta,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }
