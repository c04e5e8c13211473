"""Video library endpoints."""

import logging
import os
import uuid

from fastapi import APIRouter, File, HTTPException, Query, Request, UploadFile
from fastapi.responses import FileResponse

from trim_engine.api.v1.deps import http_error
from trim_engine.core.config import settings
from trim_engine.core.errors import FFmpegError, InvalidInputError, NotFoundError
from trim_engine.core.storage import StorageManager
from trim_engine.services.media import MediaService
from trim_engine.services.streaming import build_stream_response

logger = logging.getLogger(__name__)

router = APIRouter()

UPLOAD_CHUNK_SIZE = 1024 * 1024


@router.post("/upload")
async def upload_video(file: UploadFile = File(...)) -> dict:
    """Store an uploaded media file and probe it."""
    storage = StorageManager.get_instance()
    original_name = os.path.basename(file.filename or "") or "upload"
    target = storage.upload_path(f"{uuid.uuid4().hex}_{original_name}")

    written = 0
    try:
        with open(target, "wb") as out:
            while True:
                chunk = await file.read(UPLOAD_CHUNK_SIZE)
                if not chunk:
                    break
                written += len(chunk)
                if written > settings.MAX_UPLOAD_SIZE:
                    raise HTTPException(status_code=413, detail="file too large")
                out.write(chunk)
    except BaseException:
        storage.delete_file(target)
        raise
    finally:
        await file.close()

    media = await MediaService().create_from_file(original_name, target)
    logger.info("Uploaded %s (%d bytes) as %s", original_name, written, media.id)
    return {"success": True, "data": {"videoId": media.id, "video": media.to_dict()}}


@router.get("")
async def list_videos() -> dict:
    items = await MediaService().list()
    return {"success": True, "data": [m.to_dict() for m in items]}


@router.get("/{video_id}")
async def get_video(video_id: str) -> dict:
    try:
        media = await MediaService().get(video_id)
    except NotFoundError as e:
        raise http_error(e)
    return {"success": True, "data": media.to_dict()}


@router.delete("/{video_id}")
async def delete_video(video_id: str) -> dict:
    """Delete a video and its file. Projects referencing it are left as is."""
    try:
        await MediaService().delete(video_id)
    except NotFoundError as e:
        raise http_error(e)
    return {"success": True, "data": {"deleted": True}}


@router.get("/{video_id}/stream")
async def stream_video(video_id: str, request: Request):
    """Serve the media with HTTP range support for seeking."""
    try:
        media = await MediaService().get(video_id)
    except NotFoundError as e:
        raise http_error(e)
    if not os.path.isfile(media.file_path):
        raise HTTPException(status_code=404, detail="video file not found")
    return build_stream_response(media.file_path, request.headers.get("range"))


@router.get("/{video_id}/snapshot")
async def capture_snapshot(
    video_id: str,
    t: float = Query(..., ge=0),
    quality: int = Query(2, ge=1, le=31),
) -> FileResponse:
    """Capture a JPEG frame at ``t`` seconds."""
    try:
        path = await MediaService().capture_snapshot(video_id, t, quality)
    except NotFoundError as e:
        raise http_error(e)
    except InvalidInputError as e:
        raise http_error(e)
    except FFmpegError as e:
        raise HTTPException(status_code=500, detail=f"failed to capture snapshot: {e.message}")
    return FileResponse(path, media_type="image/jpeg", filename=path.name)


@router.get("/{video_id}/waveform")
async def get_waveform(video_id: str) -> FileResponse:
    """Waveform image of the audio track."""
    try:
        path = await MediaService().get_waveform(video_id)
    except NotFoundError as e:
        raise http_error(e)
    except FFmpegError as e:
        raise HTTPException(status_code=500, detail=f"failed to generate waveform: {e.message}")
    return FileResponse(path, media_type="image/png")
