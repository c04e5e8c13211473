"""Operation endpoints."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from trim_engine.api.v1.deps import get_operation_manager
from trim_engine.core.operations import OperationManager

router = APIRouter()


@router.get("")
async def list_operations(
    project_id: Optional[str] = Query(None),
    manager: OperationManager = Depends(get_operation_manager),
) -> dict:
    """List operations, optionally filtered by project."""
    return {"success": True, "data": manager.list(project_id)}


@router.get("/{operation_id}")
async def get_operation(
    operation_id: str,
    manager: OperationManager = Depends(get_operation_manager),
) -> dict:
    """Get operation status and progress."""
    operation = manager.get(operation_id)

    if not operation:
        raise HTTPException(status_code=404, detail="Operation not found")

    return {"success": True, "data": operation}


@router.post("/{operation_id}/cancel")
async def cancel_operation(
    operation_id: str,
    manager: OperationManager = Depends(get_operation_manager),
) -> dict:
    """Cancel a pending or running operation."""
    cancelled = manager.cancel(operation_id)

    if cancelled is None:
        raise HTTPException(status_code=404, detail="Operation not found")
    if not cancelled:
        raise HTTPException(status_code=400, detail="Operation already finished")

    return {"success": True, "data": {"cancelled": True}}
