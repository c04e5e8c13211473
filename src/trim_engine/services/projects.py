"""Project records and their embedded segment lists."""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import select

from trim_engine.core.database import async_session_maker
from trim_engine.core.errors import NotFoundError
from trim_engine.models import MediaFile, Project, Segment

logger = logging.getLogger(__name__)


class ProjectService:
    """CRUD for projects. Every mutation rewrites the whole record."""

    async def create(self, name: str, video_id: Optional[str] = None) -> Project:
        async with async_session_maker() as db:
            media_file_name = None
            if video_id:
                media = await db.get(MediaFile, video_id)
                if media is None:
                    raise NotFoundError("video not found")
                media_file_name = media.file_name

            project = Project(
                name=name,
                video_id=video_id,
                media_file_name=media_file_name,
                segments_data=[],
            )
            db.add(project)
            await db.commit()
            await db.refresh(project)

        logger.info("Created project %s (%s)", project.id, name)
        return project

    async def get(self, project_id: str) -> Project:
        async with async_session_maker() as db:
            project = await db.get(Project, project_id)
        if project is None:
            raise NotFoundError("project not found")
        return project

    async def list(self) -> List[Project]:
        async with async_session_maker() as db:
            result = await db.execute(select(Project).order_by(Project.updated_at.desc()))
            return list(result.scalars().all())

    async def update(self, project_id: str, **changes: Any) -> Project:
        """Apply name, video_id and/or a full replacement segment list."""
        async with async_session_maker() as db:
            project = await db.get(Project, project_id)
            if project is None:
                raise NotFoundError("project not found")

            if changes.get("name") is not None:
                project.name = changes["name"]
            if changes.get("video_id") is not None:
                media = await db.get(MediaFile, changes["video_id"])
                if media is None:
                    raise NotFoundError("video not found")
                project.video_id = media.id
                project.media_file_name = media.file_name
            if changes.get("segments") is not None:
                project.segments = [
                    s if isinstance(s, Segment) else Segment(**s) for s in changes["segments"]
                ]

            project.updated_at = datetime.utcnow()
            await db.commit()
            await db.refresh(project)
        return project

    async def delete(self, project_id: str) -> None:
        async with async_session_maker() as db:
            project = await db.get(Project, project_id)
            if project is None:
                raise NotFoundError("project not found")
            await db.delete(project)
            await db.commit()
        logger.info("Deleted project %s", project_id)

    async def add_segment(self, project_id: str, segment: Segment) -> Project:
        project = await self.get(project_id)
        segments = project.segments
        segments.append(segment)
        return await self.update(project_id, segments=segments)

    async def update_segment(self, project_id: str, segment_id: str, changes: Dict[str, Any]) -> Project:
        project = await self.get(project_id)
        segments = project.segments
        for i, segment in enumerate(segments):
            if segment.id == segment_id:
                data = segment.to_dict()
                data.update({k: v for k, v in changes.items() if k != "id"})
                # Re-validate the merged range
                segments[i] = Segment(**data)
                break
        else:
            raise NotFoundError("segment not found")
        return await self.update(project_id, segments=segments)

    async def delete_segment(self, project_id: str, segment_id: str) -> Project:
        project = await self.get(project_id)
        segments = [s for s in project.segments if s.id != segment_id]
        if len(segments) == len(project.segments):
            raise NotFoundError("segment not found")
        return await self.update(project_id, segments=segments)
