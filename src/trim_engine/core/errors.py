"""Error types shared by services and endpoints."""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Category attached to a failed operation."""
    NOT_FOUND = "not_found"
    INVALID_INPUT = "invalid_input"
    PROCESS_FAILED = "process_failed"
    IO_ERROR = "io_error"
    CANCELLED = "cancelled"
    CAPACITY = "capacity"
    INTERNAL = "internal"


class TrimEngineError(Exception):
    """Base error for the engine."""

    kind: ErrorKind = ErrorKind.INTERNAL
    status_code: int = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(TrimEngineError):
    kind = ErrorKind.NOT_FOUND
    status_code = 404


class InvalidInputError(TrimEngineError):
    kind = ErrorKind.INVALID_INPUT
    status_code = 400


class FFmpegError(TrimEngineError):
    """An external media process exited abnormally."""

    kind = ErrorKind.PROCESS_FAILED

    def __init__(self, message: str, returncode: Optional[int] = None):
        super().__init__(message)
        self.returncode = returncode


class CutError(FFmpegError):
    pass


class MergeError(FFmpegError):
    pass


class DownloadError(TrimEngineError):
    kind = ErrorKind.PROCESS_FAILED


class ChapterExportError(TrimEngineError):
    kind = ErrorKind.IO_ERROR


class OperationCancelledError(TrimEngineError):
    kind = ErrorKind.CANCELLED

    def __init__(self, message: str = "operation cancelled"):
        super().__init__(message)


class OperationQueueFullError(TrimEngineError):
    kind = ErrorKind.CAPACITY
    status_code = 503

    def __init__(self, message: str = "too many pending operations"):
        super().__init__(message)


def error_kind_for(exc: BaseException) -> ErrorKind:
    """Map any exception to the kind recorded on a failed operation."""
    if isinstance(exc, TrimEngineError):
        return exc.kind
    if isinstance(exc, OSError):
        return ErrorKind.IO_ERROR
    return ErrorKind.INTERNAL
