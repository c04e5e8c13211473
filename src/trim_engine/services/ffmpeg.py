"""FFmpeg service: process runner and probing helpers."""

import asyncio
import codecs
import json
import logging
import re
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from trim_engine.core.config import settings
from trim_engine.core.errors import FFmpegError, InvalidInputError, OperationCancelledError
from trim_engine.services.progress import ProgressParser, extract_error_message

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float], None]
PathLike = Union[str, Path]

LINE_SPLIT_RE = re.compile(r"[\r\n]")
READ_SIZE = 4096

WAVEFORM_FILTER = "showwavespic=s=1920x120:colors=#667eea|#667eea:scale=sqrt:split_channels=0"


class FFmpegService:
    """Service for FFmpeg operations."""

    _instance: Optional["FFmpegService"] = None

    def __init__(self, ffmpeg_path: Optional[str] = None, ffprobe_path: Optional[str] = None):
        self.ffmpeg_path = ffmpeg_path or settings.FFMPEG_PATH
        self.ffprobe_path = ffprobe_path or settings.FFPROBE_PATH
        self.version: Optional[str] = None
        self.available_encoders: List[str] = []
        self._initialized = False

    @classmethod
    def get_instance(cls) -> "FFmpegService":
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    async def check_availability(self) -> bool:
        """Check if FFmpeg is available and collect its video encoders."""
        if self._initialized:
            return self.version is not None

        try:
            proc = await asyncio.create_subprocess_exec(
                self.ffmpeg_path, "-hide_banner", "-version",
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE
            )
            stdout, _ = await proc.communicate()
            if proc.returncode != 0:
                return False

            match = re.search(r"ffmpeg version (\S+)", stdout.decode(errors="replace"))
            self.version = match.group(1) if match else "unknown"

            proc = await asyncio.create_subprocess_exec(
                self.ffmpeg_path, "-hide_banner", "-encoders",
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE
            )
            stdout, _ = await proc.communicate()
            self.available_encoders = []
            for line in stdout.decode(errors="replace").split("\n"):
                if line.strip().startswith("V"):
                    parts = line.split()
                    if len(parts) >= 2:
                        self.available_encoders.append(parts[1])

            self._initialized = True
            logger.info("FFmpeg %s initialized with %d video encoders",
                        self.version, len(self.available_encoders))
            return True

        except OSError as e:
            logger.error("FFmpeg check failed: %s", e)
            return False

    async def execute(
        self,
        args: Sequence[str],
        duration: Optional[float] = None,
        progress_callback: Optional[ProgressCallback] = None,
        stdin_data: Optional[bytes] = None,
        cancel_event: Optional[asyncio.Event] = None,
        timeout: Optional[float] = None,
    ) -> str:
        """Run ffmpeg with ``args`` and return its diagnostic output.

        The diagnostic stream is read while the process runs so that stats
        lines can be turned into progress callbacks (values in [0, 1]).
        A non-zero exit raises FFmpegError carrying the most relevant
        diagnostic line. Setting ``cancel_event`` kills the process and
        raises OperationCancelledError.
        """
        if cancel_event is not None and cancel_event.is_set():
            raise OperationCancelledError()

        timeout = settings.FFMPEG_TIMEOUT if timeout is None else timeout
        cmd = [self.ffmpeg_path, *args]
        logger.info("Running FFmpeg: %s", " ".join(cmd))

        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.PIPE if stdin_data is not None else asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE
            )
        except FileNotFoundError as e:
            raise FFmpegError(f"ffmpeg not found: {self.ffmpeg_path}") from e

        parser = ProgressParser(duration)
        captured: List[str] = []

        io_tasks = [asyncio.create_task(
            self._read_diagnostics(proc, parser, captured, progress_callback)
        )]
        if stdin_data is not None:
            io_tasks.append(asyncio.create_task(self._write_input(proc, stdin_data)))

        finished = asyncio.ensure_future(asyncio.gather(proc.wait(), *io_tasks))
        waiters = {finished}
        cancel_waiter = None
        if cancel_event is not None:
            cancel_waiter = asyncio.create_task(cancel_event.wait())
            waiters.add(cancel_waiter)

        try:
            done, _ = await asyncio.wait(
                waiters,
                timeout=timeout or None,
                return_when=asyncio.FIRST_COMPLETED,
            )
        except asyncio.CancelledError:
            await self._kill(proc, finished)
            raise
        finally:
            if cancel_waiter is not None:
                cancel_waiter.cancel()

        if finished not in done:
            await self._kill(proc, finished)
            if cancel_event is not None and cancel_event.is_set():
                logger.info("FFmpeg cancelled (pid %s)", proc.pid)
                raise OperationCancelledError()
            logger.error("FFmpeg timeout after %ss, killed process", timeout)
            raise FFmpegError(f"ffmpeg timed out after {timeout}s")

        # Surface reader failures
        finished.result()
        stderr_text = "".join(captured)

        if proc.returncode != 0:
            message = extract_error_message(stderr_text)
            logger.error("FFmpeg failed with exit code %d: %s", proc.returncode, message)
            raise FFmpegError(message, returncode=proc.returncode)

        return stderr_text

    async def _read_diagnostics(
        self,
        proc: asyncio.subprocess.Process,
        parser: ProgressParser,
        captured: List[str],
        progress_callback: Optional[ProgressCallback],
    ) -> None:
        # Characters may straddle read boundaries
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        pending = ""
        while True:
            data = await proc.stderr.read(READ_SIZE)
            text = decoder.decode(data, final=not data)
            captured.append(text)
            pending += text
            lines = LINE_SPLIT_RE.split(pending)
            pending = lines.pop()
            for line in lines:
                self._handle_line(line, parser, progress_callback)
            if not data:
                break
        if pending:
            self._handle_line(pending, parser, progress_callback)

    @staticmethod
    def _handle_line(
        line: str,
        parser: ProgressParser,
        progress_callback: Optional[ProgressCallback],
    ) -> None:
        value = parser.parse_line(line)
        if value is None or progress_callback is None:
            return
        logger.debug("FFmpeg progress %.3f", value)
        try:
            progress_callback(value)
        except Exception as e:
            logger.exception("Progress callback error: %s", e)

    @staticmethod
    async def _write_input(proc: asyncio.subprocess.Process, data: bytes) -> None:
        try:
            proc.stdin.write(data)
            await proc.stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as e:
            logger.debug("FFmpeg closed its input early: %s", e)
        finally:
            proc.stdin.close()

    @staticmethod
    async def _kill(proc: asyncio.subprocess.Process, finished: "asyncio.Future") -> None:
        if proc.returncode is None:
            try:
                proc.kill()
            except ProcessLookupError:
                pass
        await asyncio.gather(finished, return_exceptions=True)

    async def run_probe(self, args: Sequence[str], timeout: Optional[float] = None) -> str:
        """Run ffprobe and return its stdout."""
        cmd = [self.ffprobe_path, *args]
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE
            )
        except FileNotFoundError as e:
            raise FFmpegError(f"ffprobe not found: {self.ffprobe_path}") from e

        try:
            stdout, stderr = await asyncio.wait_for(
                proc.communicate(), timeout=timeout or settings.PROBE_TIMEOUT
            )
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            raise FFmpegError("ffprobe timed out")

        if proc.returncode != 0:
            raise FFmpegError(
                f"ffprobe failed: {extract_error_message(stderr.decode(errors='replace'))}",
                returncode=proc.returncode,
            )
        return stdout.decode(errors="replace")

    async def probe(self, file_path: PathLike) -> Dict[str, Any]:
        """Get media file information using ffprobe."""
        output = await self.run_probe([
            "-v", "quiet",
            "-print_format", "json",
            "-show_format",
            "-show_streams",
            "-show_chapters",
            str(file_path),
        ])
        try:
            return json.loads(output)
        except json.JSONDecodeError as e:
            raise FFmpegError(f"ffprobe returned invalid JSON: {e}") from e

    @staticmethod
    def summarize_probe(probe_data: Dict[str, Any]) -> Dict[str, Any]:
        """Pull duration, container and primary video stream details."""
        fmt = probe_data.get("format", {})
        video_stream = next(
            (s for s in probe_data.get("streams", []) if s.get("codec_type") == "video"),
            None,
        )

        try:
            duration = float(fmt.get("duration") or 0)
        except (TypeError, ValueError):
            duration = 0.0
        if duration == 0 and video_stream and video_stream.get("duration"):
            duration = float(video_stream["duration"])

        return {
            "duration": duration,
            "format": fmt.get("format_name"),
            "codec": video_stream.get("codec_name") if video_stream else None,
            "width": video_stream.get("width") if video_stream else None,
            "height": video_stream.get("height") if video_stream else None,
        }

    async def get_media_info(self, file_path: PathLike) -> Dict[str, Any]:
        probe_data = await self.probe(file_path)
        info = self.summarize_probe(probe_data)
        info["metadata"] = probe_data
        return info

    async def get_duration(self, file_path: PathLike) -> float:
        info = await self.get_media_info(file_path)
        return info["duration"]

    async def get_keyframes(self, file_path: PathLike) -> List[float]:
        """List keyframe timestamps of the first video stream."""
        output = await self.run_probe([
            "-v", "error",
            "-select_streams", "v:0",
            "-show_entries", "packet=pts_time,flags",
            "-of", "csv=p=0",
            str(file_path),
        ])
        keyframes = []
        for line in output.splitlines():
            parts = line.strip().split(",")
            if len(parts) < 2 or "K" not in parts[1]:
                continue
            try:
                keyframes.append(float(parts[0]))
            except ValueError:
                continue
        return keyframes

    async def capture_snapshot(
        self,
        input_path: PathLike,
        output_path: PathLike,
        time: float,
        quality: int = 2,
    ) -> Path:
        """Extract a single frame as an image."""
        if not 1 <= quality <= 31:
            raise InvalidInputError("quality must be between 1 and 31")
        if time < 0:
            raise InvalidInputError("time must be non-negative")

        await self.execute([
            "-hide_banner",
            "-ss", f"{time:.3f}",
            "-i", str(input_path),
            "-vframes", "1",
            "-q:v", str(quality),
            "-y", str(output_path),
        ])
        return Path(output_path)

    async def generate_waveform(self, input_path: PathLike, output_path: PathLike) -> Path:
        """Render the audio waveform as a single image."""
        await self.execute([
            "-hide_banner",
            "-i", str(input_path),
            "-filter_complex", WAVEFORM_FILTER,
            "-frames:v", "1",
            "-y", str(output_path),
        ])
        return Path(output_path)
