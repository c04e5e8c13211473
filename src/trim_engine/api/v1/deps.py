"""Shared endpoint dependencies."""

from fastapi import HTTPException, Request

from trim_engine.core.errors import TrimEngineError
from trim_engine.core.operations import OperationManager


def get_operation_manager(request: Request) -> OperationManager:
    """The operation registry owned by the running application."""
    return request.app.state.operations


def http_error(error: TrimEngineError) -> HTTPException:
    return HTTPException(status_code=error.status_code, detail=error.message)
