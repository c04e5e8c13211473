"""On-disk storage layout."""

import logging
import os
import shutil
from pathlib import Path
from typing import List, Optional, Union

from trim_engine.core.config import settings
from trim_engine.core.errors import InvalidInputError

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


class StorageManager:
    """Owns the directory tree under the storage root."""

    _instance: Optional["StorageManager"] = None

    SUBDIRS = ("uploads", "outputs", "temp", "downloads", "screenshots", "waveforms")

    def __init__(self, base_path: Optional[Path] = None):
        self.base_path = Path(base_path or settings.STORAGE_PATH).absolute()
        self.initialize()

    @classmethod
    def get_instance(cls) -> "StorageManager":
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def initialize(self) -> None:
        for name in self.SUBDIRS:
            (self.base_path / name).mkdir(parents=True, exist_ok=True)

    @property
    def uploads_dir(self) -> Path:
        return self.base_path / "uploads"

    @property
    def outputs_dir(self) -> Path:
        return self.base_path / "outputs"

    @property
    def temp_dir(self) -> Path:
        return self.base_path / "temp"

    @property
    def downloads_dir(self) -> Path:
        return self.base_path / "downloads"

    @property
    def screenshots_dir(self) -> Path:
        return self.base_path / "screenshots"

    @property
    def waveforms_dir(self) -> Path:
        return self.base_path / "waveforms"

    @property
    def counter_file(self) -> Path:
        return self.base_path / "video_counter.txt"

    def upload_path(self, filename: str) -> Path:
        return self.uploads_dir / filename

    def output_path(self, filename: str) -> Path:
        return self.outputs_dir / filename

    def temp_path(self, filename: str) -> Path:
        return self.temp_dir / filename

    def screenshot_path(self, filename: str) -> Path:
        return self.screenshots_dir / filename

    def waveform_path(self, filename: str) -> Path:
        return self.waveforms_dir / filename

    def safe_output_path(self, filename: str) -> Path:
        """Resolve a client-supplied output name, rejecting traversal."""
        if not filename or os.path.basename(filename) != filename or filename in (".", ".."):
            raise InvalidInputError("invalid filename")
        return self.outputs_dir / filename

    def staging_dir(self, operation_id: str) -> Path:
        """Create a private directory where an operation builds its outputs."""
        path = self.temp_dir / f"staging_{operation_id}"
        path.mkdir(parents=True, exist_ok=True)
        return path

    def publish(self, staged: PathLike) -> Path:
        """Move a finished file from staging into the outputs directory."""
        staged = Path(staged)
        target = self.outputs_dir / staged.name
        os.replace(staged, target)
        return target

    def delete_file(self, path: PathLike) -> None:
        """Remove a file; a missing file is not an error."""
        try:
            os.remove(path)
        except FileNotFoundError:
            pass

    def file_exists(self, path: PathLike) -> bool:
        return os.path.isfile(path)

    def file_size(self, path: PathLike) -> int:
        return os.path.getsize(path)

    def next_video_number(self) -> int:
        """Return the next sequential video number and advance the counter."""
        current = 1
        try:
            current = int(self.counter_file.read_text().strip())
        except (OSError, ValueError):
            pass
        self.counter_file.write_text(str(current + 1))
        logger.info("Generated video number %d", current)
        return current

    def reset_video_counter(self) -> None:
        self.counter_file.write_text("1")
        logger.info("Reset video counter to 1")

    def clear_directory(self, directory: Path) -> int:
        """Delete everything inside a directory, keeping the directory."""
        removed = 0
        if not directory.exists():
            return removed
        for entry in directory.iterdir():
            if entry.is_dir():
                shutil.rmtree(entry, ignore_errors=True)
            else:
                entry.unlink(missing_ok=True)
            removed += 1
        return removed

    def clear_everything(self) -> List[str]:
        """Empty every storage subdirectory and reset the video counter."""
        cleared = []
        for name in self.SUBDIRS:
            count = self.clear_directory(self.base_path / name)
            logger.info("Cleared %d entries from %s", count, name)
            cleared.append(name)
        self.reset_video_counter()
        return cleared
