"""Concatenation of cut fragments."""

import asyncio
import logging
import os
from pathlib import Path
from typing import List, Optional, Sequence, Union

from trim_engine.core.errors import FFmpegError, MergeError, OperationCancelledError
from trim_engine.services.ffmpeg import FFmpegService, ProgressCallback

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def concat_list_path(output_path: PathLike) -> Path:
    return Path(f"{output_path}.concat.txt")


def build_concat_list(inputs: Sequence[PathLike]) -> str:
    """Body of an ffmpeg concat demuxer list, one entry per input, in order.

    Entries are absolute: the demuxer resolves relative ones against the
    directory of the list file, not the working directory.
    """
    lines = []
    for path in inputs:
        escaped = os.path.abspath(path).replace("'", "'\\''")
        lines.append(f"file '{escaped}'")
    return "\n".join(lines) + "\n"


def build_merge_args(list_path: PathLike, output_path: PathLike) -> List[str]:
    return [
        "-hide_banner",
        "-f", "concat",
        "-safe", "0",
        "-i", str(list_path),
        "-map", "0",
        "-c", "copy",
        "-avoid_negative_ts", "make_zero",
        "-movflags", "+faststart",
        "-y", str(output_path),
    ]


class Concatenator:
    """Joins same-codec fragments without re-encoding."""

    def __init__(self, ffmpeg: Optional[FFmpegService] = None):
        self.ffmpeg = ffmpeg or FFmpegService.get_instance()

    async def merge(
        self,
        inputs: Sequence[PathLike],
        output_path: PathLike,
        total_duration: Optional[float] = None,
        progress_callback: Optional[ProgressCallback] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> Path:
        if not inputs:
            raise MergeError("no segments to merge")

        list_path = concat_list_path(output_path)
        list_path.write_text(build_concat_list(inputs), encoding="utf-8")
        logger.info("Merging %d fragments into %s", len(inputs), output_path)

        try:
            await self.ffmpeg.execute(
                build_merge_args(list_path, output_path),
                duration=total_duration,
                progress_callback=progress_callback,
                cancel_event=cancel_event,
            )
        except OperationCancelledError:
            raise
        except FFmpegError as e:
            raise MergeError(f"merge failed: {e.message}", returncode=e.returncode) from e
        finally:
            try:
                os.remove(list_path)
            except FileNotFoundError:
                pass

        return Path(output_path)
