"""Project endpoints."""

from typing import Dict, List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field, ValidationError

from trim_engine.api.v1.deps import get_operation_manager, http_error
from trim_engine.core.errors import NotFoundError, OperationQueueFullError
from trim_engine.core.operations import OperationManager, OperationType
from trim_engine.models import Segment
from trim_engine.services.export import ExportService
from trim_engine.services.projects import ProjectService

router = APIRouter()

projects = ProjectService()


# Request/Response Models
class CreateProjectRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    video_id: Optional[str] = None


class UpdateProjectRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    video_id: Optional[str] = None
    segments: Optional[List[Segment]] = None


class UpdateSegmentRequest(BaseModel):
    name: Optional[str] = None
    start: Optional[float] = None
    end: Optional[float] = None
    selected: Optional[bool] = None
    tags: Optional[Dict[str, str]] = None
    color: Optional[int] = None


class ExportRequest(BaseModel):
    format: str = Field(default="mp4", pattern=r"^[A-Za-z0-9]{1,8}$")
    output_name: Optional[str] = Field(default=None, max_length=200)
    segment_ids: Optional[List[str]] = None
    merge_segments: bool = False
    export_separate: bool = False
    export_chapters: bool = False
    chapters_format: Literal["txt", "xml", "json"] = "txt"
    cut_mode: Literal["fast", "accurate", "smart"] = "fast"


# Endpoints
@router.post("")
async def create_project(request: CreateProjectRequest) -> dict:
    """Create a new project."""
    try:
        project = await projects.create(request.name, request.video_id)
    except NotFoundError as e:
        raise http_error(e)
    return {"success": True, "data": project.to_dict()}


@router.get("")
async def list_projects() -> dict:
    """List all projects."""
    items = await projects.list()
    return {"success": True, "data": [p.to_dict() for p in items]}


@router.get("/{project_id}")
async def get_project(project_id: str) -> dict:
    """Get a project by ID."""
    try:
        project = await projects.get(project_id)
    except NotFoundError as e:
        raise http_error(e)
    return {"success": True, "data": project.to_dict()}


@router.put("/{project_id}")
async def update_project(project_id: str, request: UpdateProjectRequest) -> dict:
    """Rename, relink or replace the segment list of a project."""
    try:
        project = await projects.update(
            project_id,
            name=request.name,
            video_id=request.video_id,
            segments=request.segments,
        )
    except NotFoundError as e:
        raise http_error(e)
    return {"success": True, "data": project.to_dict()}


@router.delete("/{project_id}")
async def delete_project(project_id: str) -> dict:
    """Delete a project."""
    try:
        await projects.delete(project_id)
    except NotFoundError as e:
        raise http_error(e)
    return {"success": True, "data": {"deleted": True}}


@router.post("/{project_id}/segments")
async def add_segment(project_id: str, segment: Segment) -> dict:
    """Append a segment to the project."""
    try:
        project = await projects.add_segment(project_id, segment)
    except NotFoundError as e:
        raise http_error(e)
    return {"success": True, "data": project.to_dict()}


@router.put("/{project_id}/segments/{segment_id}")
async def update_segment(project_id: str, segment_id: str, request: UpdateSegmentRequest) -> dict:
    """Update fields of one segment."""
    try:
        project = await projects.update_segment(
            project_id, segment_id, request.model_dump(exclude_unset=True)
        )
    except NotFoundError as e:
        raise http_error(e)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=e.errors(include_url=False))
    return {"success": True, "data": project.to_dict()}


@router.delete("/{project_id}/segments/{segment_id}")
async def delete_segment(project_id: str, segment_id: str) -> dict:
    """Remove one segment."""
    try:
        project = await projects.delete_segment(project_id, segment_id)
    except NotFoundError as e:
        raise http_error(e)
    return {"success": True, "data": project.to_dict()}


@router.post("/{project_id}/export", status_code=202)
async def export_project(
    project_id: str,
    request: ExportRequest,
    manager: OperationManager = Depends(get_operation_manager),
) -> dict:
    """Start an export; poll the returned operation for progress."""
    export_service = ExportService()

    # Fail fast before anything is queued
    try:
        await export_service.load_sources(project_id)
    except NotFoundError as e:
        raise http_error(e)

    try:
        operation = manager.submit(
            OperationType.EXPORT,
            export_service.run_export,
            project_id=project_id,
            **request.model_dump()
        )
    except OperationQueueFullError as e:
        raise http_error(e)

    return {"success": True, "data": operation}
