"""Export service: turns a project's segments into output files."""

import asyncio
import logging
import os
import shutil
import time
import uuid
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple

from sqlalchemy import select

from trim_engine.core.config import settings
from trim_engine.core.database import async_session_maker
from trim_engine.core.errors import InvalidInputError, NotFoundError, OperationCancelledError
from trim_engine.core.operations import Operation, ProgressReporter
from trim_engine.core.storage import StorageManager
from trim_engine.models import MediaFile, Project, Segment
from trim_engine.services.chapters import CHAPTER_FORMATS, write_chapters
from trim_engine.services.cutter import SegmentCutter
from trim_engine.services.ffmpeg import FFmpegService
from trim_engine.services.merge import Concatenator

logger = logging.getLogger(__name__)

# Branch names in the order their outputs are produced
SINGLE = "single"
MERGE = "merge"
DEFAULT_MERGE = "default_merge"
SEPARATE = "separate"
CHAPTERS = "chapters"


def select_segments(segments: Sequence[Segment], segment_ids: Optional[Sequence[str]]) -> List[Segment]:
    """Keep the requested segments in project order, ignoring request order."""
    if not segment_ids:
        return list(segments)
    wanted = set(segment_ids)
    return [s for s in segments if s.id in wanted]


def plan_branches(
    segment_count: int,
    merge_segments: bool,
    export_separate: bool,
    export_chapters: bool,
) -> List[str]:
    if segment_count == 1:
        return [SINGLE]
    branches = []
    if merge_segments:
        branches.append(MERGE)
    if export_separate:
        branches.append(SEPARATE)
    if export_chapters:
        branches.append(CHAPTERS)
    return branches or [DEFAULT_MERGE]


def segment_range(segment: Segment) -> Tuple[float, float]:
    return segment.start, segment.effective_end(settings.DEFAULT_SEGMENT_LENGTH)


class ExportService:
    """Service for exporting project segments."""

    def __init__(
        self,
        ffmpeg: Optional[FFmpegService] = None,
        storage: Optional[StorageManager] = None,
    ):
        ffmpeg = ffmpeg or FFmpegService.get_instance()
        self.storage = storage or StorageManager.get_instance()
        self.cutter = SegmentCutter(ffmpeg)
        self.concatenator = Concatenator(ffmpeg)

    async def load_sources(self, project_id: str) -> Tuple[Project, MediaFile]:
        """Fetch the project and its media, or raise NotFoundError."""
        async with async_session_maker() as db:
            result = await db.execute(select(Project).where(Project.id == project_id))
            project = result.scalar_one_or_none()
            if not project:
                raise NotFoundError("project not found")

            video = await db.get(MediaFile, project.video_id) if project.video_id else None

        if video is None or not self.storage.file_exists(video.file_path):
            raise NotFoundError("video not found")
        return project, video

    async def run_export(
        self,
        operation: Operation,
        progress: ProgressReporter,
        project_id: str,
        format: str = "mp4",
        output_name: Optional[str] = None,
        segment_ids: Optional[List[str]] = None,
        merge_segments: bool = False,
        export_separate: bool = False,
        export_chapters: bool = False,
        chapters_format: str = "txt",
        cut_mode: str = "fast",
    ) -> List[str]:
        """Run the export pipeline and return the published output paths.

        Everything is built in a per-operation staging directory and only
        moved to the outputs directory once every requested file exists.
        """
        project, video = await self.load_sources(project_id)

        segments = select_segments(project.segments, segment_ids)
        if not segments:
            raise InvalidInputError("no segments to export")

        fmt = (format or "mp4").lstrip(".")
        base_name = output_name or f"{project.name}_export_{int(time.time())}"
        if os.path.basename(base_name) != base_name:
            raise InvalidInputError("invalid output name")
        if export_chapters and chapters_format not in CHAPTER_FORMATS:
            raise InvalidInputError(f"unsupported chapters format: {chapters_format}")

        branches = plan_branches(len(segments), merge_segments, export_separate, export_chapters)
        logger.info(
            "Export %s: %d segments from %s, branches=%s, mode=%s",
            operation.id, len(segments), video.file_path, branches, cut_mode,
        )

        staging = self.storage.staging_dir(operation.id)
        try:
            staged = await self._produce(
                operation, progress, branches, video, segments,
                staging, base_name, fmt, chapters_format, cut_mode,
            )
            published = [str(self.storage.publish(path)) for path in staged]
        finally:
            shutil.rmtree(staging, ignore_errors=True)

        logger.info("Export %s published %s", operation.id, published)
        return published

    async def _produce(
        self,
        operation: Operation,
        progress: ProgressReporter,
        branches: List[str],
        video: MediaFile,
        segments: List[Segment],
        staging: Path,
        base_name: str,
        fmt: str,
        chapters_format: str,
        cut_mode: str,
    ) -> List[Path]:
        cancel_event = operation.cancel_event
        window = 100.0 / len(branches)
        outputs: List[Path] = []

        for index, branch in enumerate(branches):
            if cancel_event.is_set():
                raise OperationCancelledError()
            report = self._window(progress, index * window, window)

            if branch == SINGLE:
                start, end = segment_range(segments[0])
                path = staging / f"{base_name}.{fmt}"
                await self.cutter.cut(
                    video.file_path, path, start, end, mode=cut_mode,
                    progress_callback=report, cancel_event=cancel_event,
                )
                outputs.append(path)

            elif branch in (MERGE, DEFAULT_MERGE):
                suffix = "_merged" if branch == MERGE else ""
                path = staging / f"{base_name}{suffix}.{fmt}"
                await self._merge(video, segments, path, fmt, cut_mode, report, cancel_event)
                outputs.append(path)

            elif branch == SEPARATE:
                count = len(segments)
                for i, segment in enumerate(segments):
                    start, end = segment_range(segment)
                    path = staging / f"{base_name}_segment_{i + 1}.{fmt}"
                    await self.cutter.cut(
                        video.file_path, path, start, end, mode=cut_mode,
                        progress_callback=lambda p, i=i: report((i + p) / count),
                        cancel_event=cancel_event,
                    )
                    outputs.append(path)

            elif branch == CHAPTERS:
                path = staging / f"{base_name}_chapters.{chapters_format}"
                write_chapters(segments, path, chapters_format)
                report(1.0)
                outputs.append(path)

        return outputs

    async def _merge(
        self,
        video: MediaFile,
        segments: List[Segment],
        output_path: Path,
        fmt: str,
        cut_mode: str,
        report: Callable[[float], None],
        cancel_event: asyncio.Event,
    ) -> None:
        """Cut every segment to a temporary fragment, then concatenate once."""
        fragments: List[Path] = []
        total_duration = 0.0
        try:
            for i, segment in enumerate(segments):
                start, end = segment_range(segment)
                if video.duration:
                    total_duration += max(min(end, video.duration) - start, 0.0)
                else:
                    total_duration += end - start
                fragment = self.storage.temp_path(f"segment_{i}_{uuid.uuid4().hex}.{fmt}")
                fragments.append(fragment)
                await self.cutter.cut(
                    video.file_path, fragment, start, end, mode=cut_mode,
                    cancel_event=cancel_event,
                )

            await self.concatenator.merge(
                fragments, output_path, total_duration,
                progress_callback=report, cancel_event=cancel_event,
            )
        finally:
            for fragment in fragments:
                self.storage.delete_file(fragment)

    @staticmethod
    def _window(progress: ProgressReporter, offset: float, width: float) -> Callable[[float], None]:
        """Map a branch-local fraction in [0, 1] onto its share of 0-100."""
        def report(fraction: float) -> None:
            progress(offset + max(0.0, min(fraction, 1.0)) * width)
        return report
