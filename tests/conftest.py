"""Pytest configuration and fixtures."""

import asyncio
import os
import shutil
import stat
import subprocess
import sys
import tempfile
from pathlib import Path

import pytest

# Point storage at a scratch directory before the package reads its settings
os.environ.setdefault("TRIM_STORAGE_PATH", tempfile.mkdtemp(prefix="trim-engine-tests-"))

# Add src to path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))


FAKE_FFMPEG = """#!/bin/sh
echo "$@" >> "{log}"
prev=""
last=""
for a in "$@"; do
  if [ "$prev" = "-i" ]; then
    case "$a" in *.concat.txt) cat "$a" >> "{lists}"; echo "--" >> "{lists}";; esac
  fi
  prev="$a"
  last="$a"
done
{fail_clause}
{consume_stdin}
{sleep}
cat "{stderr}" >&2
{touch}
exit {exit_code}
"""


class FakeFFmpeg:
    """A shell script standing in for ffmpeg that records its calls."""

    def __init__(self, directory: Path):
        self.directory = directory
        self.path = directory / "ffmpeg"
        self.log = directory / "calls.log"
        self.lists = directory / "concat_lists.log"
        self.stderr_file = directory / "stderr.txt"

    def configure(
        self,
        stderr: str = "",
        exit_code: int = 0,
        touch_output: bool = True,
        fail_on: str = None,
        fail_stderr: str = "Error while opening encoder\n",
        sleep: float = 0,
        consume_stdin: bool = False,
    ) -> "FakeFFmpeg":
        self.stderr_file.write_text(stderr, encoding="utf-8")
        fail_file = self.directory / "fail_stderr.txt"
        fail_file.write_text(fail_stderr)
        fail_clause = ""
        if fail_on:
            fail_clause = f'case "$*" in *{fail_on}*) cat "{fail_file}" >&2; exit 1;; esac'
        script = FAKE_FFMPEG.format(
            log=self.log,
            lists=self.lists,
            stderr=self.stderr_file,
            fail_clause=fail_clause,
            consume_stdin='cat > /dev/null' if consume_stdin else "",
            sleep=f"sleep {sleep} </dev/null >/dev/null 2>&1" if sleep else "",
            touch=': > "$last"' if touch_output else "",
            exit_code=exit_code,
        )
        self.path.write_text(script)
        self.path.chmod(self.path.stat().st_mode | stat.S_IEXEC | stat.S_IXGRP | stat.S_IXOTH)
        return self

    def calls(self) -> list:
        if not self.log.exists():
            return []
        return [line for line in self.log.read_text().splitlines() if line]

    def concat_lists(self) -> list:
        if not self.lists.exists():
            return []
        blocks = self.lists.read_text().split("--\n")
        return [b for b in blocks if b.strip()]


@pytest.fixture
def fake_ffmpeg(tmp_path):
    """Factory for a configurable fake ffmpeg binary."""
    directory = tmp_path / "fakebin"
    directory.mkdir()
    fake = FakeFFmpeg(directory)
    fake.configure()
    return fake


@pytest.fixture
def run_async():
    """Run a coroutine to completion, releasing pooled DB connections afterwards."""
    from trim_engine.core.database import engine

    def run(coro):
        async def runner():
            try:
                return await coro
            finally:
                await engine.dispose()
        return asyncio.run(runner())

    return run


@pytest.fixture
def db(run_async):
    """Make sure the tables exist."""
    from trim_engine.core.database import init_db
    run_async(init_db())


requires_ffmpeg = pytest.mark.skipif(
    shutil.which("ffmpeg") is None or shutil.which("ffprobe") is None,
    reason="ffmpeg is not installed",
)


@pytest.fixture(scope="session")
def sample_video(tmp_path_factory):
    """30 second test clip where every frame is a keyframe."""
    if shutil.which("ffmpeg") is None:
        pytest.skip("ffmpeg is not installed")
    path = tmp_path_factory.mktemp("media") / "sample.mp4"
    subprocess.run(
        [
            "ffmpeg", "-hide_banner", "-loglevel", "error",
            "-f", "lavfi", "-i", "testsrc=duration=30:size=320x240:rate=25",
            "-f", "lavfi", "-i", "sine=frequency=440:duration=30",
            "-c:v", "mpeg4", "-q:v", "5", "-g", "1",
            "-c:a", "aac",
            "-shortest",
            "-y", str(path),
        ],
        check=True,
    )
    return path
