"""Parsing of ffmpeg diagnostic output."""

import re
from typing import Optional

VIDEO_PROGRESS_RE = re.compile(
    r"frame=\s*\S+\s+fps=\s*\S+\s+q=\s*\S+\s+(?:size|Lsize)=\s*\S+\s+time=\s*(\S+)\s+"
)
AUDIO_PROGRESS_RE = re.compile(r"(?:size|Lsize)=\s*\S+\s+time=\s*(\S+)\s+")
TIME_RE = re.compile(r"^(-?)(\d{2}):(\d{2}):(\d{2})\.(\d{2})$")
ERROR_LINE_RE = re.compile(r"error|invalid|failed|no such", re.IGNORECASE)

UNKNOWN_ERROR = "Unknown FFmpeg error"


def parse_ffmpeg_time(text: str) -> Optional[float]:
    """Parse ``[-]HH:MM:SS.CC`` into seconds, or None when malformed."""
    match = TIME_RE.match(text.strip())
    if not match:
        return None
    sign, hours, minutes, seconds, centis = match.groups()
    total = int(hours) * 3600 + int(minutes) * 60 + int(seconds) + int(centis) / 100.0
    return -total if sign == "-" else total


def format_ffmpeg_time(seconds: float) -> str:
    """Format seconds as ``[-]HH:MM:SS.CC``."""
    sign = "-" if seconds < 0 else ""
    centis = int(round(abs(seconds) * 100))
    hours, rem = divmod(centis, 360000)
    minutes, rem = divmod(rem, 6000)
    secs, centis = divmod(rem, 100)
    return f"{sign}{hours:02d}:{minutes:02d}:{secs:02d}.{centis:02d}"


def parse_progress_line(line: str, duration: float) -> Optional[float]:
    """Return completion in [0, 1] for a stats line, or None for no progress.

    Negative timestamps show up briefly near stream start and are treated
    as no progress rather than as zero.
    """
    match = VIDEO_PROGRESS_RE.search(line) or AUDIO_PROGRESS_RE.search(line)
    if not match:
        return None

    current = parse_ffmpeg_time(match.group(1))
    if current is None or current < 0:
        return None
    if duration <= 0:
        return None

    return min(current / duration, 1.0)


class ProgressParser:
    """Stateful wrapper bound to the expected output duration."""

    def __init__(self, duration: Optional[float]):
        self.duration = duration or 0.0
        self.last: Optional[float] = None

    def parse_line(self, line: str) -> Optional[float]:
        value = parse_progress_line(line, self.duration)
        if value is not None:
            self.last = value
        return value


def extract_error_message(stderr_text: str) -> str:
    """Pick the most useful line from a failed run's diagnostic output."""
    lines = [line.strip() for line in re.split(r"[\r\n]", stderr_text or "")]

    for line in reversed(lines):
        if line and ERROR_LINE_RE.search(line):
            return line

    for line in reversed(lines):
        if line:
            return line

    return UNKNOWN_ERROR
