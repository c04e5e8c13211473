"""Exported file download endpoint."""

from fastapi import APIRouter, HTTPException
from fastapi.responses import FileResponse

from trim_engine.api.v1.deps import http_error
from trim_engine.core.errors import InvalidInputError
from trim_engine.core.storage import StorageManager
from trim_engine.services.streaming import content_type_for

router = APIRouter()


@router.get("/{filename}")
async def get_output(filename: str) -> FileResponse:
    """Serve a published export as an attachment."""
    storage = StorageManager.get_instance()
    try:
        path = storage.safe_output_path(filename)
    except InvalidInputError as e:
        raise http_error(e)

    if not storage.file_exists(path):
        raise HTTPException(status_code=404, detail="Output not found")

    return FileResponse(path, media_type=content_type_for(path), filename=filename)
