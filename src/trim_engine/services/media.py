"""Media library: ingest, lookup and derived images."""

import logging
from pathlib import Path
from typing import List, Optional

from sqlalchemy import select

from trim_engine.core.database import async_session_maker
from trim_engine.core.errors import FFmpegError, InvalidInputError, NotFoundError
from trim_engine.core.storage import StorageManager
from trim_engine.models import MediaFile
from trim_engine.services.ffmpeg import FFmpegService

logger = logging.getLogger(__name__)


class MediaService:
    """Service for the media file library."""

    def __init__(
        self,
        ffmpeg: Optional[FFmpegService] = None,
        storage: Optional[StorageManager] = None,
    ):
        self.ffmpeg = ffmpeg or FFmpegService.get_instance()
        self.storage = storage or StorageManager.get_instance()

    async def create_from_file(
        self,
        file_name: str,
        file_path: Path,
        original_url: Optional[str] = None,
    ) -> MediaFile:
        """Register a file already in storage.

        A failed probe leaves the record without metadata instead of
        rejecting the file.
        """
        media = MediaFile(
            file_name=file_name,
            file_path=str(file_path),
            file_size=self.storage.file_size(file_path),
            original_url=original_url,
        )

        try:
            info = await self.ffmpeg.get_media_info(file_path)
        except FFmpegError as e:
            logger.warning("Failed to extract metadata for %s: %s", file_path, e.message)
        else:
            media.duration = info["duration"]
            media.format = info["format"]
            media.codec = info["codec"]
            media.width = info["width"]
            media.height = info["height"]
            media.media_meta = info["metadata"]

        async with async_session_maker() as db:
            db.add(media)
            await db.commit()
            await db.refresh(media)

        logger.info("Registered media %s (%s, %.2fs, %s)",
                    media.id, file_name, media.duration or 0.0, media.format)
        return media

    async def get(self, media_id: str) -> MediaFile:
        async with async_session_maker() as db:
            media = await db.get(MediaFile, media_id)
        if media is None:
            raise NotFoundError("video not found")
        return media

    async def list(self) -> List[MediaFile]:
        async with async_session_maker() as db:
            result = await db.execute(select(MediaFile).order_by(MediaFile.created_at.desc()))
            return list(result.scalars().all())

    async def delete(self, media_id: str) -> None:
        """Delete the record and its backing file."""
        async with async_session_maker() as db:
            media = await db.get(MediaFile, media_id)
            if media is None:
                raise NotFoundError("video not found")
            file_path = media.file_path
            await db.delete(media)
            await db.commit()

        self.storage.delete_file(file_path)
        self.storage.delete_file(self.storage.waveform_path(f"{media_id}.png"))
        logger.info("Deleted media %s", media_id)

    async def capture_snapshot(self, media_id: str, time: float, quality: int = 2) -> Path:
        media = await self.get(media_id)
        if media.duration and time > media.duration:
            raise InvalidInputError("time is beyond the end of the media")
        output = self.storage.screenshot_path(f"{media_id}_{time:.3f}.jpg")
        await self.ffmpeg.capture_snapshot(media.file_path, output, time, quality)
        return output

    async def get_waveform(self, media_id: str) -> Path:
        """Return the cached waveform image, rendering it on first use."""
        media = await self.get(media_id)
        output = self.storage.waveform_path(f"{media_id}.png")
        if not self.storage.file_exists(output):
            await self.ffmpeg.generate_waveform(media.file_path, output)
        return output
