"""URL downloads via yt-dlp or plain HTTP."""

import asyncio
import json
import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional
from urllib.parse import parse_qs, unquote, urlparse

import aiohttp
from sqlalchemy import delete, select, update

from trim_engine.core.config import settings
from trim_engine.core.database import async_session_maker
from trim_engine.core.errors import DownloadError, NotFoundError, OperationCancelledError
from trim_engine.core.storage import StorageManager
from trim_engine.models import Download, DownloadStatus
from trim_engine.models.download import TERMINAL_DOWNLOAD_STATUSES
from trim_engine.services.media import MediaService
from trim_engine.services.progress import extract_error_message

logger = logging.getLogger(__name__)

VIDEO_EXTENSIONS = (".mp4", ".mov", ".mkv", ".webm", ".avi", ".wmv", ".flv", ".m4v", ".3gp", ".ts", ".m2ts")
YTDLP_PROGRESS_RE = re.compile(r"\[download\]\s+(\d+\.?\d*)%")
PROGRESS_SAVE_INTERVAL = 0.5  # seconds

BROWSER_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": "*/*",
    "Accept-Language": "en-US,en;q=0.9",
}


def is_direct_video_url(url: str) -> bool:
    """True for links to a media file rather than to a hosting page."""
    path = urlparse(url).path.lower()
    if path.endswith(VIDEO_EXTENSIONS):
        return True
    # Some CDNs carry the type in the query string instead of the path
    return "content-type=" in url.lower()


def _disposition_filename(url: str) -> Optional[str]:
    values = parse_qs(urlparse(url).query).get("response-content-disposition")
    if not values:
        return None
    disposition = unquote(values[0])
    idx = disposition.find("filename=")
    if idx < 0:
        return None
    return disposition[idx + len("filename="):].strip('"')


def extension_from_url(url: str) -> str:
    ext = os.path.splitext(urlparse(url).path)[1].lower()
    if ext in VIDEO_EXTENSIONS:
        return ext
    filename = _disposition_filename(url)
    if filename:
        ext = os.path.splitext(filename)[1].lower()
        if ext in VIDEO_EXTENSIONS:
            return ext
    return ".mp4"


def title_from_url(url: str) -> str:
    filename = _disposition_filename(url)
    if filename:
        return os.path.splitext(filename)[0]
    name = os.path.splitext(os.path.basename(urlparse(url).path))[0]
    return unquote(name) if name else "Downloaded Video"


@dataclass
class ActiveDownload:
    """In-memory handle for a download that is still running."""
    id: str
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event)
    task: Optional[asyncio.Task] = None
    process: Optional[asyncio.subprocess.Process] = None


class DownloadService:
    """Fetches remote media into the library."""

    _instance: Optional["DownloadService"] = None

    def __init__(
        self,
        media: Optional[MediaService] = None,
        storage: Optional[StorageManager] = None,
        ytdlp_path: Optional[str] = None,
    ):
        self.media = media or MediaService()
        self.storage = storage or StorageManager.get_instance()
        self.ytdlp_path = ytdlp_path or settings.YTDLP_PATH
        self._active: Dict[str, ActiveDownload] = {}
        self._semaphore = asyncio.Semaphore(settings.MAX_CONCURRENT_DOWNLOADS)

    @classmethod
    def get_instance(cls) -> "DownloadService":
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    async def start_download(self, url: str, format: Optional[str] = None) -> Download:
        """Persist a pending download and start it in the background."""
        async with async_session_maker() as db:
            download = Download(url=url, status=DownloadStatus.PENDING.value, progress=0.0)
            db.add(download)
            await db.commit()
            await db.refresh(download)

        number = self.storage.next_video_number()
        active = ActiveDownload(id=download.id)
        self._active[download.id] = active
        active.task = asyncio.create_task(self._run(active, url, format, number))

        logger.info("Queued download %s for %s", download.id, url)
        return download

    async def get(self, download_id: str) -> Download:
        async with async_session_maker() as db:
            download = await db.get(Download, download_id)
        if download is None:
            raise NotFoundError("download not found")
        return download

    async def list(self) -> List[Download]:
        async with async_session_maker() as db:
            result = await db.execute(select(Download).order_by(Download.created_at.desc()))
            return list(result.scalars().all())

    async def cancel(self, download_id: str) -> bool:
        """Stop a running download. Returns False if it already finished."""
        download = await self.get(download_id)
        if download.status in TERMINAL_DOWNLOAD_STATUSES:
            return False

        await self._update(download_id, status=DownloadStatus.CANCELLED.value)
        active = self._active.get(download_id)
        if active is not None:
            active.cancel_event.set()
            if active.process is not None and active.process.returncode is None:
                try:
                    active.process.kill()
                except ProcessLookupError:
                    pass
        logger.info("Cancelled download %s", download_id)
        return True

    async def clear(self) -> int:
        """Delete finished download records."""
        async with async_session_maker() as db:
            result = await db.execute(
                delete(Download).where(Download.status.in_(TERMINAL_DOWNLOAD_STATUSES))
            )
            await db.commit()
        return result.rowcount or 0

    async def shutdown(self) -> None:
        tasks = [a.task for a in self._active.values() if a.task is not None]
        for active in list(self._active.values()):
            active.cancel_event.set()
            if active.process is not None and active.process.returncode is None:
                active.process.kill()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    @property
    def active_count(self) -> int:
        return len(self._active)

    async def _update(self, download_id: str, **values) -> None:
        """Persist changes unless the download has already finished."""
        async with async_session_maker() as db:
            await db.execute(
                update(Download)
                .where(Download.id == download_id)
                .where(Download.status.notin_(TERMINAL_DOWNLOAD_STATUSES))
                .values(**values)
            )
            await db.commit()

    async def _run(self, active: ActiveDownload, url: str, format: Optional[str], number: int) -> None:
        async with self._semaphore:
            try:
                if active.cancel_event.is_set():
                    raise OperationCancelledError()
                await self._update(active.id, status=DownloadStatus.DOWNLOADING.value)

                if is_direct_video_url(url):
                    path = await self._download_direct(active, url, number)
                else:
                    path = await self._download_ytdlp(active, url, format, number)

                await self._update(active.id, file_path=str(path))
                media = await self.media.create_from_file(path.name, path, original_url=url)
                await self._update(
                    active.id,
                    status=DownloadStatus.COMPLETED.value,
                    progress=100.0,
                    video_id=media.id,
                )
                logger.info("Download %s completed as media %s", active.id, media.id)

            except OperationCancelledError:
                logger.info("Download %s cancelled", active.id)
            except asyncio.CancelledError:
                await self._update(active.id, status=DownloadStatus.CANCELLED.value)
                raise
            except (DownloadError, aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
                message = getattr(e, "message", None) or str(e) or type(e).__name__
                logger.error("Download %s failed: %s", active.id, message)
                await self._update(active.id, status=DownloadStatus.FAILED.value, error=message)
            except Exception as e:
                logger.exception("Download %s failed: %s", active.id, e)
                await self._update(active.id, status=DownloadStatus.FAILED.value, error=str(e))
            finally:
                self._active.pop(active.id, None)

    async def _download_direct(self, active: ActiveDownload, url: str, number: int) -> Path:
        output = self.storage.downloads_dir / f"video{number}{extension_from_url(url)}"
        await self._update(active.id, title=title_from_url(url))
        logger.info("Starting direct HTTP download %s -> %s", url, output)

        loop = asyncio.get_running_loop()
        timeout = aiohttp.ClientTimeout(total=settings.DOWNLOAD_TIMEOUT)
        downloaded = 0
        last_save = loop.time()

        try:
            async with aiohttp.ClientSession(timeout=timeout, headers=BROWSER_HEADERS) as session:
                async with session.get(url, headers={"Referer": url}) as resp:
                    if resp.status not in (200, 206):
                        raise DownloadError(f"HTTP {resp.status}: {resp.reason}")
                    total = resp.content_length

                    with open(output, "wb") as f:
                        async for chunk in resp.content.iter_chunked(settings.DOWNLOAD_CHUNK_SIZE):
                            if active.cancel_event.is_set():
                                raise OperationCancelledError()
                            f.write(chunk)
                            downloaded += len(chunk)

                            if total and loop.time() - last_save >= PROGRESS_SAVE_INTERVAL:
                                await self._update(active.id, progress=downloaded / total * 100)
                                last_save = loop.time()
        except BaseException:
            self.storage.delete_file(output)
            raise

        logger.info("Direct download %s finished: %d bytes", active.id, downloaded)
        return output

    async def _fetch_info(self, active: ActiveDownload, url: str) -> dict:
        try:
            proc = await asyncio.create_subprocess_exec(
                self.ytdlp_path, "--dump-json", "--no-playlist", url,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE
            )
        except FileNotFoundError as e:
            raise DownloadError(f"yt-dlp not found: {self.ytdlp_path}") from e

        active.process = proc
        stdout, stderr = await proc.communicate()
        if active.cancel_event.is_set():
            raise OperationCancelledError()
        if proc.returncode != 0:
            raise DownloadError(
                f"failed to get video info: {extract_error_message(stderr.decode(errors='replace'))}"
            )
        try:
            return json.loads(stdout.decode(errors="replace"))
        except json.JSONDecodeError as e:
            raise DownloadError(f"failed to parse video info: {e}") from e

    async def _download_ytdlp(
        self,
        active: ActiveDownload,
        url: str,
        format: Optional[str],
        number: int,
    ) -> Path:
        info = await self._fetch_info(active, url)
        await self._update(
            active.id,
            title=info.get("title"),
            duration=float(info.get("duration") or 0),
        )
        if active.cancel_event.is_set():
            raise OperationCancelledError()

        try:
            return await self._run_ytdlp(active, url, format, number)
        except BaseException:
            self._remove_leftovers(number)
            raise

    def _remove_leftovers(self, number: int) -> None:
        """Delete partial and finished files of an aborted yt-dlp run."""
        for leftover in self.storage.downloads_dir.glob(f"video{number}.*"):
            self.storage.delete_file(leftover)
            logger.info("Removed leftover download file %s", leftover)

    async def _run_ytdlp(
        self,
        active: ActiveDownload,
        url: str,
        format: Optional[str],
        number: int,
    ) -> Path:
        template = str(self.storage.downloads_dir / f"video{number}.%(ext)s")
        cmd = [
            self.ytdlp_path,
            "--newline",
            "--no-playlist",
            "--progress",
            "-o", template,
            "-f", format or settings.YTDLP_FORMAT,
            url,
        ]
        logger.info("Running yt-dlp: %s", " ".join(cmd))

        proc = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE
        )
        active.process = proc
        stderr_task = asyncio.create_task(proc.stderr.read())

        loop = asyncio.get_running_loop()
        last_save = 0.0
        while True:
            line = await proc.stdout.readline()
            if not line:
                break
            match = YTDLP_PROGRESS_RE.search(line.decode(errors="replace"))
            if match and loop.time() - last_save >= PROGRESS_SAVE_INTERVAL:
                await self._update(active.id, progress=float(match.group(1)))
                last_save = loop.time()

        await proc.wait()
        stderr = (await stderr_task).decode(errors="replace")

        if active.cancel_event.is_set():
            raise OperationCancelledError()
        if proc.returncode != 0:
            raise DownloadError(f"yt-dlp failed: {extract_error_message(stderr)}")

        files = sorted(self.storage.downloads_dir.glob(f"video{number}.*"))
        files = [f for f in files if not f.name.endswith((".part", ".ytdl"))]
        if not files:
            raise DownloadError("downloaded file not found")
        return files[0]
