"""Project model."""

import uuid
from datetime import datetime
from typing import List, Optional

from sqlalchemy import String, Text, DateTime, JSON
from sqlalchemy.orm import Mapped, mapped_column

from trim_engine.core.database import Base
from trim_engine.models.segment import Segment


class Project(Base):
    """Project model - a media file reference plus an ordered segment list."""

    __tablename__ = "projects"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Plain reference; deleting the video leaves the project dangling
    video_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    media_file_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Ordered list of serialized segments; list order is export order
    segments_data: Mapped[list] = mapped_column("segments", JSON, default=list)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow
    )

    @property
    def segments(self) -> List[Segment]:
        return [Segment(**data) for data in (self.segments_data or [])]

    @segments.setter
    def segments(self, segments: List[Segment]) -> None:
        # Reassign the whole list so the JSON column is marked dirty
        self.segments_data = [s.to_dict() for s in segments]

    def to_dict(self) -> dict:
        """Convert to dictionary for API response."""
        return {
            "id": self.id,
            "name": self.name,
            "videoId": self.video_id,
            "mediaFileName": self.media_file_name,
            "segments": [s.to_dict() for s in self.segments],
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }
