"""Tests for the ffmpeg process runner."""

import asyncio

import pytest

from trim_engine.core.errors import FFmpegError, InvalidInputError, OperationCancelledError
from trim_engine.services.ffmpeg import FFmpegService


PROGRESS_STDERR = (
    "Input #0, mov,mp4,m4a,3gp,3g2,mj2, from 'in.mp4':\n"
    "frame=   10 fps=0.0 q=-1.0 size=     256kB time=00:00:02.00 bitrate=1048.6kbits/s speed=4x\r"
    "frame=   20 fps=0.0 q=-1.0 size=     512kB time=00:00:05.00 bitrate=1048.6kbits/s speed=5x\r"
    "frame=   40 fps=0.0 q=-1.0 Lsize=    1024kB time=00:00:10.00 bitrate=1048.6kbits/s speed=5x\n"
)


class TestProcessRunner:
    """Tests for FFmpegService.execute."""

    def test_progress_from_carriage_return_lines(self, fake_ffmpeg):
        fake_ffmpeg.configure(stderr=PROGRESS_STDERR)
        service = FFmpegService(ffmpeg_path=str(fake_ffmpeg.path))
        seen = []

        stderr = asyncio.run(service.execute(["-i", "in.mp4", "out.mp4"], duration=10.0,
                                             progress_callback=seen.append))

        assert seen == pytest.approx([0.2, 0.5, 1.0])
        assert "Input #0" in stderr
        assert fake_ffmpeg.calls() == ["-i in.mp4 out.mp4"]

    def test_failure_raises_extracted_message(self, fake_ffmpeg):
        fake_ffmpeg.configure(
            stderr="Input #0\nin.mp4: No such file or directory\n",
            exit_code=1,
        )
        service = FFmpegService(ffmpeg_path=str(fake_ffmpeg.path))

        with pytest.raises(FFmpegError) as exc_info:
            asyncio.run(service.execute(["-i", "in.mp4", "out.mp4"]))

        assert exc_info.value.message == "in.mp4: No such file or directory"
        assert exc_info.value.returncode == 1

    def test_multibyte_character_across_read_boundary(self, fake_ffmpeg):
        # The accented character spans bytes 4095-4096 of the stream
        fake_ffmpeg.configure(
            stderr="x" * 4084 + "\n/media/vidéo.mp4: No such file or directory\n",
            exit_code=1,
        )
        service = FFmpegService(ffmpeg_path=str(fake_ffmpeg.path))

        with pytest.raises(FFmpegError) as exc_info:
            asyncio.run(service.execute(["-i", "/media/vidéo.mp4", "out.mp4"]))

        assert exc_info.value.message == "/media/vidéo.mp4: No such file or directory"

    def test_failure_without_output(self, fake_ffmpeg):
        fake_ffmpeg.configure(stderr="", exit_code=69)
        service = FFmpegService(ffmpeg_path=str(fake_ffmpeg.path))

        with pytest.raises(FFmpegError) as exc_info:
            asyncio.run(service.execute(["out.mp4"]))

        assert exc_info.value.message == "Unknown FFmpeg error"

    def test_missing_binary(self, tmp_path):
        service = FFmpegService(ffmpeg_path=str(tmp_path / "no-such-ffmpeg"))

        with pytest.raises(FFmpegError) as exc_info:
            asyncio.run(service.execute(["-version"]))

        assert "not found" in exc_info.value.message

    def test_callback_errors_do_not_abort_the_run(self, fake_ffmpeg):
        fake_ffmpeg.configure(stderr=PROGRESS_STDERR)
        service = FFmpegService(ffmpeg_path=str(fake_ffmpeg.path))

        def broken(value):
            raise RuntimeError("boom")

        asyncio.run(service.execute(["out.mp4"], duration=10.0, progress_callback=broken))

    def test_stdin_is_delivered_and_closed(self, fake_ffmpeg):
        fake_ffmpeg.configure(consume_stdin=True)
        service = FFmpegService(ffmpeg_path=str(fake_ffmpeg.path))

        asyncio.run(service.execute(["-i", "pipe:0", "out.mp4"], stdin_data=b"x" * 200_000))

        assert len(fake_ffmpeg.calls()) == 1

    def test_cancel_kills_the_process(self, fake_ffmpeg):
        fake_ffmpeg.configure(sleep=30)
        service = FFmpegService(ffmpeg_path=str(fake_ffmpeg.path))

        async def scenario():
            cancel = asyncio.Event()
            loop = asyncio.get_running_loop()
            loop.call_later(0.2, cancel.set)
            started = loop.time()
            with pytest.raises(OperationCancelledError):
                await service.execute(["out.mp4"], cancel_event=cancel)
            return loop.time() - started

        assert asyncio.run(scenario()) < 10

    def test_already_cancelled_never_spawns(self, fake_ffmpeg):
        service = FFmpegService(ffmpeg_path=str(fake_ffmpeg.path))

        async def scenario():
            cancel = asyncio.Event()
            cancel.set()
            await service.execute(["out.mp4"], cancel_event=cancel)

        with pytest.raises(OperationCancelledError):
            asyncio.run(scenario())
        assert fake_ffmpeg.calls() == []

    def test_timeout(self, fake_ffmpeg):
        fake_ffmpeg.configure(sleep=30)
        service = FFmpegService(ffmpeg_path=str(fake_ffmpeg.path))

        with pytest.raises(FFmpegError) as exc_info:
            asyncio.run(service.execute(["out.mp4"], timeout=0.3))

        assert "timed out" in exc_info.value.message


class TestSnapshotArguments:
    """Tests for single-frame capture."""

    def test_snapshot_arguments(self, fake_ffmpeg, tmp_path):
        service = FFmpegService(ffmpeg_path=str(fake_ffmpeg.path))
        out = tmp_path / "frame.jpg"

        asyncio.run(service.capture_snapshot("in.mp4", out, 12.3456, quality=4))

        assert fake_ffmpeg.calls() == [f"-hide_banner -ss 12.346 -i in.mp4 -vframes 1 -q:v 4 -y {out}"]
        assert out.exists()

    @pytest.mark.parametrize("quality", [0, 32])
    def test_snapshot_quality_range(self, fake_ffmpeg, quality):
        service = FFmpegService(ffmpeg_path=str(fake_ffmpeg.path))

        with pytest.raises(InvalidInputError):
            asyncio.run(service.capture_snapshot("in.mp4", "out.jpg", 1.0, quality=quality))
        assert fake_ffmpeg.calls() == []

    def test_waveform_arguments(self, fake_ffmpeg, tmp_path):
        service = FFmpegService(ffmpeg_path=str(fake_ffmpeg.path))
        out = tmp_path / "wave.png"

        asyncio.run(service.generate_waveform("in.mp4", out))

        call = fake_ffmpeg.calls()[0]
        assert "-filter_complex showwavespic=s=1920x120:colors=#667eea|#667eea:scale=sqrt:split_channels=0" in call
        assert call.endswith(f"-frames:v 1 -y {out}")


class TestProbeSummary:
    """Tests for reducing ffprobe JSON."""

    def test_summary_uses_first_video_stream(self):
        data = {
            "format": {"format_name": "mov,mp4,m4a,3gp,3g2,mj2", "duration": "12.5"},
            "streams": [
                {"codec_type": "audio", "codec_name": "aac"},
                {"codec_type": "video", "codec_name": "h264", "width": 1920, "height": 1080},
                {"codec_type": "video", "codec_name": "mjpeg", "width": 320, "height": 240},
            ],
        }
        summary = FFmpegService.summarize_probe(data)
        assert summary == {
            "duration": 12.5,
            "format": "mov,mp4,m4a,3gp,3g2,mj2",
            "codec": "h264",
            "width": 1920,
            "height": 1080,
        }

    def test_summary_audio_only(self):
        data = {"format": {"format_name": "mp3", "duration": "3.0"},
                "streams": [{"codec_type": "audio", "codec_name": "mp3"}]}
        summary = FFmpegService.summarize_probe(data)
        assert summary["duration"] == 3.0
        assert summary["codec"] is None

    def test_probe_failure_without_ffprobe(self, tmp_path):
        service = FFmpegService(ffprobe_path=str(tmp_path / "no-such-ffprobe"))
        with pytest.raises(FFmpegError):
            asyncio.run(service.probe(tmp_path / "x.mp4"))
