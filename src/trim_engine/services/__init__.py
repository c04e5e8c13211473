"""Trim Engine services."""

from trim_engine.services.ffmpeg import FFmpegService
from trim_engine.services.cutter import SegmentCutter
from trim_engine.services.merge import Concatenator

__all__ = [
    "FFmpegService",
    "SegmentCutter",
    "Concatenator",
]
