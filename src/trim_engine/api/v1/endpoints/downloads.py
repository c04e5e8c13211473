"""Download endpoints."""

from typing import Optional
from urllib.parse import urlparse

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, field_validator

from trim_engine.api.v1.deps import http_error
from trim_engine.core.errors import NotFoundError
from trim_engine.services.downloads import DownloadService

router = APIRouter()


class DownloadRequest(BaseModel):
    url: str
    format: Optional[str] = None

    @field_validator("url")
    @classmethod
    def check_url(cls, value: str) -> str:
        parsed = urlparse(value)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError("url must be an http(s) URL")
        return value


@router.post("", status_code=201)
async def start_download(request: DownloadRequest) -> dict:
    """Start fetching a URL into the library."""
    download = await DownloadService.get_instance().start_download(request.url, request.format)
    return {"success": True, "data": download.to_dict()}


@router.get("")
async def list_downloads() -> dict:
    items = await DownloadService.get_instance().list()
    return {"success": True, "data": [d.to_dict() for d in items]}


@router.delete("")
async def clear_downloads() -> dict:
    """Forget finished downloads."""
    removed = await DownloadService.get_instance().clear()
    return {"success": True, "data": {"removed": removed}}


@router.get("/{download_id}")
async def get_download(download_id: str) -> dict:
    try:
        download = await DownloadService.get_instance().get(download_id)
    except NotFoundError as e:
        raise http_error(e)
    return {"success": True, "data": download.to_dict()}


@router.post("/{download_id}/cancel")
async def cancel_download(download_id: str) -> dict:
    service = DownloadService.get_instance()
    try:
        cancelled = await service.cancel(download_id)
    except NotFoundError as e:
        raise http_error(e)

    if not cancelled:
        raise HTTPException(status_code=400, detail="Download already finished")

    return {"success": True, "data": {"cancelled": True}}
