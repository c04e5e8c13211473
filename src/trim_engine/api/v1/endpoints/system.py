"""System information and maintenance endpoints."""

import logging

import psutil
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import delete

from trim_engine.api.v1.deps import get_operation_manager
from trim_engine.core.config import settings
from trim_engine.core.database import async_session_maker
from trim_engine.core.operations import OperationManager
from trim_engine.core.storage import StorageManager
from trim_engine.models import Download, MediaFile, Project
from trim_engine.services.downloads import DownloadService
from trim_engine.services.ffmpeg import FFmpegService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/info")
async def get_info() -> dict:
    """Versions and tool availability."""
    ffmpeg = FFmpegService.get_instance()
    ffmpeg_available = await ffmpeg.check_availability()

    return {
        "success": True,
        "data": {
            "name": settings.APP_NAME,
            "version": settings.VERSION,
            "ffmpeg": {
                "path": ffmpeg.ffmpeg_path,
                "available": ffmpeg_available,
                "version": ffmpeg.version or "not found",
                "encoders": ffmpeg.available_encoders,
            },
            "ytdlp": {"path": settings.YTDLP_PATH},
            "storage": {"path": str(settings.STORAGE_PATH)},
        },
    }


@router.get("/stats")
async def get_stats(manager: OperationManager = Depends(get_operation_manager)) -> dict:
    """Host load, storage usage and operation counts."""
    memory = psutil.virtual_memory()
    disk = psutil.disk_usage(str(settings.STORAGE_PATH))

    return {
        "success": True,
        "data": {
            "cpuPercent": psutil.cpu_percent(interval=None),
            "memory": {
                "percent": memory.percent,
                "usedGb": memory.used / (1024**3),
                "totalGb": memory.total / (1024**3),
            },
            "disk": {
                "percent": disk.percent,
                "freeGb": disk.free / (1024**3),
                "totalGb": disk.total / (1024**3),
            },
            "operations": manager.stats(),
            "activeDownloads": DownloadService.get_instance().active_count,
        },
    }


@router.delete("/clear-all")
async def clear_all(manager: OperationManager = Depends(get_operation_manager)) -> dict:
    """Delete all videos, downloads, projects, outputs and history."""
    counts = manager.stats()
    if counts["pending"] or counts["processing"] or DownloadService.get_instance().active_count:
        raise HTTPException(status_code=409, detail="Work is still in progress")

    logger.info("Clearing all data via API request")
    async with async_session_maker() as db:
        for model in (Project, MediaFile, Download):
            await db.execute(delete(model))
        await db.commit()

    StorageManager.get_instance().clear_everything()
    manager.clear()
    logger.info("Successfully cleared all data")

    return {
        "success": True,
        "data": {
            "message": "All videos, downloads, projects, and history have been cleared",
            "counterReset": True,
        },
    }
