"""Chapter list writers (TXT, XML, JSON)."""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Sequence, Union
from xml.sax.saxutils import escape

from trim_engine.core.config import settings
from trim_engine.core.errors import ChapterExportError
from trim_engine.models.segment import Segment

logger = logging.getLogger(__name__)

CHAPTER_FORMATS = ("txt", "xml", "json")


@dataclass
class Chapter:
    start: float
    end: float
    name: str


def chapter_entries(segments: Sequence[Segment]) -> List[Chapter]:
    """Resolve names and open ends into concrete chapters."""
    chapters = []
    for i, segment in enumerate(segments):
        chapters.append(Chapter(
            start=segment.start,
            end=segment.effective_end(settings.DEFAULT_SEGMENT_LENGTH),
            name=segment.name or f"Chapter {i + 1}",
        ))
    return chapters


def format_timestamp(seconds: float) -> str:
    """Format seconds as HH:MM:SS.mmm."""
    millis = int(round(seconds * 1000))
    hours, rem = divmod(millis, 3_600_000)
    minutes, rem = divmod(rem, 60_000)
    secs, millis = divmod(rem, 1000)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}.{millis:03d}"


def render_txt(chapters: Sequence[Chapter]) -> str:
    blocks = []
    for chapter in chapters:
        blocks.append(
            f"{chapter.name}\n"
            f"{format_timestamp(chapter.start)}\n"
            f"{format_timestamp(chapter.end)}\n"
        )
    return "\n".join(blocks) + ("\n" if blocks else "")


def render_xml(chapters: Sequence[Chapter]) -> str:
    parts = ['<?xml version="1.0" encoding="UTF-8"?>\n<chapters>\n']
    for chapter in chapters:
        parts.append(
            "  <chapter>\n"
            f"    <start>{chapter.start:f}</start>\n"
            f"    <end>{chapter.end:f}</end>\n"
            f"    <title>{escape(chapter.name)}</title>\n"
            "  </chapter>\n"
        )
    parts.append("</chapters>")
    return "".join(parts)


def render_json(chapters: Sequence[Chapter]) -> str:
    return json.dumps(
        [{"start": c.start, "end": c.end, "name": c.name} for c in chapters],
        indent=2,
        ensure_ascii=False,
    )


RENDERERS: Dict[str, Callable[[Sequence[Chapter]], str]] = {
    "txt": render_txt,
    "xml": render_xml,
    "json": render_json,
}


def render_chapters(segments: Sequence[Segment], fmt: str) -> str:
    renderer = RENDERERS.get(fmt)
    if renderer is None:
        raise ChapterExportError(f"unsupported chapters format: {fmt}")
    return renderer(chapter_entries(segments))


def write_chapters(segments: Sequence[Segment], output_path: Union[str, Path], fmt: str) -> Path:
    """Write the chapter file for ``segments`` in ``fmt``."""
    content = render_chapters(segments, fmt)
    try:
        Path(output_path).write_text(content, encoding="utf-8")
    except OSError as e:
        raise ChapterExportError(f"failed to write chapters: {e}") from e
    logger.info("Wrote %d chapters to %s", len(segments), output_path)
    return Path(output_path)
