"""Tests for the storage layout and segment model."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from trim_engine.core.errors import InvalidInputError
from trim_engine.core.storage import StorageManager
from trim_engine.models import Segment


@pytest.fixture
def storage(tmp_path):
    return StorageManager(base_path=tmp_path / "storage")


class TestStorageManager:
    """Tests for StorageManager."""

    def test_creates_subdirectories(self, storage):
        for name in StorageManager.SUBDIRS:
            assert (storage.base_path / name).is_dir()

    def test_video_counter(self, storage):
        assert storage.next_video_number() == 1
        assert storage.next_video_number() == 2
        storage.reset_video_counter()
        assert storage.next_video_number() == 1

    @pytest.mark.parametrize("name", ["", ".", "..", "../x.mp4", "a/b.mp4"])
    def test_safe_output_path_rejects(self, storage, name):
        with pytest.raises(InvalidInputError):
            storage.safe_output_path(name)

    def test_relative_root_is_anchored(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        storage = StorageManager(base_path=Path("data"))
        assert storage.base_path == Path.cwd() / "data"
        assert storage.temp_path("segment_0.mp4").is_absolute()

    def test_safe_output_path(self, storage):
        assert storage.safe_output_path("clip.mp4") == storage.outputs_dir / "clip.mp4"

    def test_publish_moves_into_outputs(self, storage):
        staging = storage.staging_dir("op1")
        staged = staging / "clip.mp4"
        staged.write_bytes(b"data")

        published = storage.publish(staged)

        assert published == storage.outputs_dir / "clip.mp4"
        assert published.read_bytes() == b"data"
        assert not staged.exists()

    def test_delete_missing_file(self, storage):
        storage.delete_file(storage.temp_path("nothing.mp4"))

    def test_clear_everything(self, storage):
        storage.upload_path("a.mp4").write_bytes(b"1")
        storage.staging_dir("op2")
        storage.next_video_number()

        storage.clear_everything()

        assert list(storage.uploads_dir.iterdir()) == []
        assert list(storage.temp_dir.iterdir()) == []
        assert storage.next_video_number() == 1


class TestSegment:
    """Tests for the Segment model."""

    def test_defaults(self):
        segment = Segment(start=1.5)
        assert segment.end is None
        assert segment.selected is True
        assert segment.effective_end(60.0) == 61.5
        assert len(segment.id) == 36

    @pytest.mark.parametrize("start,end", [(5.0, 5.0), (5.0, 1.0)])
    def test_end_must_follow_start(self, start, end):
        with pytest.raises(ValidationError):
            Segment(start=start, end=end)

    def test_negative_start(self):
        with pytest.raises(ValidationError):
            Segment(start=-1.0)
