"""HTTP range serving for large media files."""

import logging
import os
import re
from pathlib import Path
from typing import Iterator, Optional, Tuple, Union

from fastapi.responses import Response, StreamingResponse

from trim_engine.core.config import settings
from trim_engine.core.errors import TrimEngineError

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

CONTENT_TYPES = {
    ".mp4": "video/mp4",
    ".m4v": "video/x-m4v",
    ".mov": "video/quicktime",
    ".mkv": "video/x-matroska",
    ".webm": "video/webm",
    ".avi": "video/x-msvideo",
    ".wmv": "video/x-ms-wmv",
    ".flv": "video/x-flv",
    ".ts": "video/mp2t",
    ".m2ts": "video/mp2t",
    ".3gp": "video/3gpp",
    ".mp3": "audio/mpeg",
    ".m4a": "audio/mp4",
    ".aac": "audio/aac",
    ".wav": "audio/wav",
    ".flac": "audio/flac",
    ".ogg": "audio/ogg",
    ".opus": "audio/opus",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
}
DEFAULT_CONTENT_TYPE = "application/octet-stream"

RANGE_RE = re.compile(r"^bytes=(\d*)-(\d*)$")


class RangeNotSatisfiableError(TrimEngineError):
    status_code = 416

    def __init__(self, file_size: int):
        super().__init__("requested range not satisfiable")
        self.file_size = file_size


def content_type_for(path: PathLike) -> str:
    return CONTENT_TYPES.get(Path(path).suffix.lower(), DEFAULT_CONTENT_TYPE)


def parse_range_header(
    header: Optional[str],
    file_size: int,
    max_chunk: Optional[int] = None,
) -> Optional[Tuple[int, int]]:
    """Resolve a ``Range`` header to inclusive byte offsets.

    Returns None when the whole file should be served (no header, or a
    form this server does not handle such as multiple ranges). Raises
    RangeNotSatisfiableError when the range falls outside the file.
    Open-ended and suffix ranges are capped at ``max_chunk`` bytes.
    """
    if not header:
        return None
    match = RANGE_RE.match(header.strip())
    if not match:
        return None

    max_chunk = max_chunk or settings.STREAM_MAX_CHUNK
    first, last = match.groups()

    if first == "" and last == "":
        return None

    if first == "":
        # Suffix range: the last N bytes
        length = min(int(last), max_chunk)
        if length <= 0 or file_size == 0:
            raise RangeNotSatisfiableError(file_size)
        return max(file_size - length, 0), file_size - 1

    start = int(first)
    if start >= file_size:
        raise RangeNotSatisfiableError(file_size)

    if last == "":
        return start, min(start + max_chunk - 1, file_size - 1)

    end = int(last)
    if end < start or end >= file_size:
        raise RangeNotSatisfiableError(file_size)
    return start, end


def iter_file_range(
    path: PathLike,
    start: int,
    length: int,
    buffer_size: Optional[int] = None,
) -> Iterator[bytes]:
    """Yield exactly ``length`` bytes starting at ``start``."""
    buffer_size = buffer_size or settings.STREAM_BUFFER_SIZE
    remaining = length
    with open(path, "rb") as f:
        f.seek(start)
        while remaining > 0:
            chunk = f.read(min(buffer_size, remaining))
            if not chunk:
                break
            remaining -= len(chunk)
            yield chunk
    if remaining:
        logger.warning("File %s shrank while streaming, %d bytes short", path, remaining)


def build_stream_response(path: PathLike, range_header: Optional[str]) -> Response:
    """Serve ``path`` honouring a single byte range."""
    file_size = os.path.getsize(path)
    content_type = content_type_for(path)

    try:
        byte_range = parse_range_header(range_header, file_size)
    except RangeNotSatisfiableError:
        return Response(
            status_code=416,
            headers={"Content-Range": f"bytes */{file_size}", "Accept-Ranges": "bytes"},
        )

    if byte_range is None:
        return StreamingResponse(
            iter_file_range(path, 0, file_size),
            status_code=200,
            media_type=content_type,
            headers={"Accept-Ranges": "bytes", "Content-Length": str(file_size)},
        )

    start, end = byte_range
    length = end - start + 1
    return StreamingResponse(
        iter_file_range(path, start, length),
        status_code=206,
        media_type=content_type,
        headers={
            "Accept-Ranges": "bytes",
            "Content-Range": f"bytes {start}-{end}/{file_size}",
            "Content-Length": str(length),
        },
    )
