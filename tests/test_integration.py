"""End-to-end tests against a real ffmpeg installation."""

import asyncio

import pytest

from conftest import requires_ffmpeg
from trim_engine.core.database import async_session_maker
from trim_engine.core.operations import Operation, OperationType
from trim_engine.core.storage import StorageManager
from trim_engine.models import MediaFile, Project, Segment
from trim_engine.services.cutter import SegmentCutter
from trim_engine.services.export import ExportService
from trim_engine.services.ffmpeg import FFmpegService

pytestmark = requires_ffmpeg


@pytest.fixture
def ffmpeg():
    return FFmpegService()


class TestProbing:

    def test_media_info(self, ffmpeg, sample_video):
        info = asyncio.run(ffmpeg.get_media_info(sample_video))
        assert info["duration"] == pytest.approx(30.0, abs=0.2)
        assert info["codec"] == "mpeg4"
        assert (info["width"], info["height"]) == (320, 240)

    def test_every_frame_is_a_keyframe(self, ffmpeg, sample_video):
        keyframes = asyncio.run(ffmpeg.get_keyframes(sample_video))
        assert len(keyframes) >= 700
        assert keyframes[0] == pytest.approx(0.0, abs=0.05)


class TestCutting:

    def test_fast_cut_duration(self, ffmpeg, sample_video, tmp_path):
        out = tmp_path / "cut.mp4"
        progress = []

        asyncio.run(SegmentCutter(ffmpeg).cut(sample_video, out, 5.0, 8.0, progress_callback=progress.append))

        assert asyncio.run(ffmpeg.get_duration(out)) == pytest.approx(3.0, abs=0.2)
        assert all(0.0 <= p <= 1.0 for p in progress)

    def test_accurate_cut_duration(self, ffmpeg, sample_video, tmp_path):
        out = tmp_path / "accurate.mp4"

        asyncio.run(SegmentCutter(ffmpeg).cut(sample_video, out, 5.3, 8.1, mode="accurate"))

        probe = asyncio.run(ffmpeg.probe(out))
        video = next(s for s in probe["streams"] if s["codec_type"] == "video")
        assert float(video["duration"]) == pytest.approx(2.8, abs=0.05)

    def test_smart_cut_stays_lossless_on_keyframes(self, ffmpeg, sample_video, tmp_path):
        cutter = SegmentCutter(ffmpeg)
        assert asyncio.run(cutter.can_cut_losslessly(sample_video, 2.0, 4.0))

        out = tmp_path / "smart.mp4"
        asyncio.run(cutter.cut(sample_video, out, 2.0, 4.0, mode="smart"))
        assert asyncio.run(ffmpeg.get_media_info(out))["codec"] == "mpeg4"

    def test_snapshot(self, ffmpeg, sample_video, tmp_path):
        out = tmp_path / "frame.jpg"
        asyncio.run(ffmpeg.capture_snapshot(sample_video, out, 3.0))
        assert out.stat().st_size > 0


class TestMergedExport:

    def test_three_segments_merge(self, ffmpeg, sample_video, db, run_async, tmp_path):
        storage = StorageManager(base_path=tmp_path / "storage")

        async def scenario():
            async with async_session_maker() as session:
                video = MediaFile(
                    file_name="sample.mp4",
                    file_path=str(sample_video),
                    duration=30.0,
                )
                session.add(video)
                await session.flush()
                project = Project(name="sample", video_id=video.id)
                project.segments = [
                    Segment(start=0.0, end=5.0),
                    Segment(start=10.0, end=12.0),
                    Segment(start=20.0, end=20.1),
                ]
                session.add(project)
                await session.commit()
                project_id = project.id

            service = ExportService(ffmpeg=ffmpeg, storage=storage)
            operation = Operation(id="op-merge", type=OperationType.EXPORT, project_id=project_id)
            return await service.run_export(operation, lambda value: None, project_id, output_name="merged")

        outputs = run_async(scenario())

        assert len(outputs) == 1
        duration = asyncio.run(ffmpeg.get_duration(outputs[0]))
        assert duration == pytest.approx(7.1, abs=0.3)
        assert list(storage.temp_dir.iterdir()) == []
