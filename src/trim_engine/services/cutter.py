"""Segment cutting: stream-copy cuts with a keyframe-aware re-encode fallback."""

import asyncio
import logging
import os
from pathlib import Path
from typing import List, Optional, Sequence, Union

from trim_engine.core.config import settings
from trim_engine.core.errors import CutError, FFmpegError, OperationCancelledError
from trim_engine.services.ffmpeg import FFmpegService, ProgressCallback

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

CUT_MODES = ("fast", "accurate", "smart")

COPY_TAIL = ["-map", "0", "-c", "copy", "-avoid_negative_ts", "make_zero", "-movflags", "+faststart"]


def build_cut_args(
    input_path: PathLike,
    output_path: PathLike,
    start: float,
    duration: float,
    accurate: bool = False,
) -> List[str]:
    """Arguments for a stream-copy cut.

    Fast mode seeks on the input (lands on the preceding keyframe);
    accurate mode decodes up to ``start`` and seeks on the output.
    """
    seek = ["-ss", f"{start:.6f}"]
    source = ["-i", str(input_path)]
    args = ["-hide_banner"]
    args += source + seek if accurate else seek + source
    args += ["-t", f"{duration:.6f}", *COPY_TAIL, "-y", str(output_path)]
    return args


def build_reencode_args(
    input_path: PathLike,
    output_path: PathLike,
    start: float,
    duration: float,
) -> List[str]:
    """Arguments for a frame-accurate re-encoded cut."""
    args = [
        "-hide_banner",
        "-ss", f"{start:.6f}",
        "-i", str(input_path),
        "-t", f"{duration:.6f}",
        "-c:v", settings.SMART_CUT_VIDEO_CODEC,
        "-crf", str(settings.SMART_CUT_CRF),
        "-preset", settings.SMART_CUT_PRESET,
        "-pix_fmt", "yuv420p",
        "-c:a", settings.SMART_CUT_AUDIO_CODEC,
    ]
    if settings.SMART_CUT_AUDIO_CODEC != "copy":
        args += ["-b:a", settings.SMART_CUT_AUDIO_BITRATE]
    args += ["-avoid_negative_ts", "make_zero", "-movflags", "+faststart", "-y", str(output_path)]
    return args


def is_keyframe_aligned(keyframes: Sequence[float], t: float, tolerance: float) -> bool:
    return any(abs(k - t) <= tolerance for k in keyframes)


def is_lossless_feasible(
    keyframes: Sequence[float],
    start: float,
    end: float,
    tolerance: Optional[float] = None,
) -> bool:
    """Both boundaries must sit within ``tolerance`` of a keyframe."""
    tolerance = settings.KEYFRAME_TOLERANCE if tolerance is None else tolerance
    return (
        is_keyframe_aligned(keyframes, start, tolerance)
        and is_keyframe_aligned(keyframes, end, tolerance)
    )


class SegmentCutter:
    """Cuts a single time range out of a media file."""

    def __init__(self, ffmpeg: Optional[FFmpegService] = None):
        self.ffmpeg = ffmpeg or FFmpegService.get_instance()

    async def cut(
        self,
        input_path: PathLike,
        output_path: PathLike,
        start: float,
        end: float,
        mode: str = "fast",
        progress_callback: Optional[ProgressCallback] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> Path:
        """Write ``[start, end)`` of ``input_path`` to ``output_path``."""
        if mode not in CUT_MODES:
            raise CutError(f"cut failed: unknown cut mode {mode!r}")
        duration = end - start
        if duration <= 0:
            raise CutError(f"cut failed: invalid range {start:.3f}-{end:.3f}")
        if not os.path.isfile(input_path):
            raise CutError(f"cut failed: input not found: {input_path}")

        if mode == "smart":
            return await self.smart_cut(
                input_path, output_path, start, end,
                progress_callback=progress_callback,
                cancel_event=cancel_event,
            )

        args = build_cut_args(input_path, output_path, start, duration, accurate=(mode == "accurate"))
        await self._run(args, duration, progress_callback, cancel_event)
        return Path(output_path)

    async def can_cut_losslessly(self, input_path: PathLike, start: float, end: float) -> bool:
        """True when both boundaries are keyframe aligned; False if probing fails."""
        try:
            keyframes = await self.ffmpeg.get_keyframes(input_path)
        except (FFmpegError, OSError) as e:
            logger.warning("Keyframe probe failed for %s, assuming re-encode: %s", input_path, e)
            return False
        return is_lossless_feasible(keyframes, start, end)

    async def smart_cut(
        self,
        input_path: PathLike,
        output_path: PathLike,
        start: float,
        end: float,
        progress_callback: Optional[ProgressCallback] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> Path:
        """Stream-copy when keyframes allow it, otherwise re-encode the range."""
        duration = end - start
        if await self.can_cut_losslessly(input_path, start, end):
            logger.info("Lossless cut %.3f-%.3f of %s", start, end, input_path)
            args = build_cut_args(input_path, output_path, start, duration)
        else:
            logger.info("Re-encoding %.3f-%.3f of %s", start, end, input_path)
            args = build_reencode_args(input_path, output_path, start, duration)
        await self._run(args, duration, progress_callback, cancel_event)
        return Path(output_path)

    async def _run(
        self,
        args: List[str],
        duration: float,
        progress_callback: Optional[ProgressCallback],
        cancel_event: Optional[asyncio.Event],
    ) -> None:
        try:
            await self.ffmpeg.execute(
                args,
                duration=duration,
                progress_callback=progress_callback,
                cancel_event=cancel_event,
            )
        except OperationCancelledError:
            raise
        except FFmpegError as e:
            raise CutError(f"cut failed: {e.message}", returncode=e.returncode) from e
