"""In-memory operation registry with a bounded worker pool."""

import asyncio
import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Coroutine, Dict, List, Optional

from trim_engine.core.config import settings
from trim_engine.core.errors import (
    ErrorKind,
    OperationCancelledError,
    OperationQueueFullError,
    TrimEngineError,
    error_kind_for,
)

logger = logging.getLogger(__name__)


class OperationStatus(str, Enum):
    """Operation status enumeration."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class OperationType(str, Enum):
    """Operation type enumeration."""
    EXPORT = "export"
    CUT = "cut"
    MERGE = "merge"
    SNAPSHOT = "snapshot"


TERMINAL_STATUSES = {OperationStatus.COMPLETED, OperationStatus.FAILED}

ProgressReporter = Callable[[float], None]
OperationHandler = Callable[..., Coroutine[Any, Any, List[str]]]


@dataclass
class Operation:
    """A unit of background media work. Never survives a restart."""
    id: str
    type: OperationType
    project_id: Optional[str] = None
    status: OperationStatus = OperationStatus.PENDING
    progress: float = 0.0
    output_files: List[str] = field(default_factory=list)
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    created_at: datetime = field(default_factory=datetime.utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    cancel_event: asyncio.Event = field(default_factory=asyncio.Event, repr=False)
    _handler: Optional[OperationHandler] = field(default=None, repr=False)
    _kwargs: Dict[str, Any] = field(default_factory=dict, repr=False)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for API response."""
        return {
            "id": self.id,
            "type": self.type.value,
            "projectId": self.project_id,
            "status": self.status.value,
            "progress": self.progress,
            "outputFiles": list(self.output_files) if self.status == OperationStatus.COMPLETED else [],
            "error": self.error,
            "errorKind": self.error_kind.value if self.error_kind else None,
            "createdAt": self.created_at.isoformat(),
            "startedAt": self.started_at.isoformat() if self.started_at else None,
            "completedAt": self.completed_at.isoformat() if self.completed_at else None,
        }


class OperationManager:
    """Runs operations on a fixed number of workers.

    The registry is shared between the request handlers and the workers,
    so every read and write goes through ``_lock``. Callers only ever see
    ``to_dict`` snapshots. Terminal operations are never modified again.
    """

    def __init__(self, max_workers: Optional[int] = None, max_pending: Optional[int] = None):
        self._max_workers = max_workers or settings.MAX_CONCURRENT_OPERATIONS
        self._max_pending = max_pending or settings.MAX_PENDING_OPERATIONS
        self._operations: Dict[str, Operation] = {}
        self._lock = threading.Lock()
        self._queue: Optional[asyncio.Queue] = None
        self._workers: List[asyncio.Task] = []
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the worker tasks."""
        if self._running:
            return

        self._running = True
        self._queue = asyncio.Queue(maxsize=self._max_pending)
        for i in range(self._max_workers):
            self._workers.append(asyncio.create_task(self._worker(i)))

        logger.info("Operation manager started with %d workers", self._max_workers)

    async def stop(self) -> None:
        """Stop the workers, killing whatever is still running."""
        self._running = False
        with self._lock:
            for op in self._operations.values():
                if op.status == OperationStatus.PROCESSING:
                    op.cancel_event.set()
        for worker in self._workers:
            worker.cancel()
        if self._workers:
            await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers.clear()
        logger.info("Operation manager stopped")

    def submit(
        self,
        op_type: OperationType,
        handler: OperationHandler,
        project_id: Optional[str] = None,
        **kwargs
    ) -> Dict[str, Any]:
        """Queue an operation and return its initial snapshot.

        Raises OperationQueueFullError when the pending queue is at capacity.
        """
        if not self._running or self._queue is None:
            raise TrimEngineError("operation manager is not running")

        op = Operation(
            id=str(uuid.uuid4()),
            type=op_type,
            project_id=project_id,
            _handler=handler,
            _kwargs=kwargs,
        )
        with self._lock:
            try:
                self._queue.put_nowait(op)
            except asyncio.QueueFull:
                logger.warning("Rejected %s operation: queue full", op_type.value)
                raise OperationQueueFullError()
            self._operations[op.id] = op
            snapshot = op.to_dict()

        logger.info("Queued %s operation %s", op_type.value, op.id)
        return snapshot

    async def _worker(self, worker_id: int) -> None:
        logger.info("Worker %d started", worker_id)
        while self._running:
            op = await self._queue.get()
            try:
                await self._execute(op)
            finally:
                self._queue.task_done()

    async def _execute(self, op: Operation) -> None:
        with self._lock:
            if op.is_terminal:
                # Cancelled while still queued
                return
            op.status = OperationStatus.PROCESSING
            op.started_at = datetime.utcnow()

        logger.info("Operation %s (%s) started", op.id, op.type.value)
        try:
            # project_id is stored on the operation, not in the kwargs
            outputs = await op._handler(
                operation=op,
                progress=lambda value: self.update_progress(op.id, value),
                project_id=op.project_id,
                **op._kwargs
            )
        except asyncio.CancelledError:
            self._finish_failed(op, OperationCancelledError())
            raise
        except Exception as e:
            exc: Exception = OperationCancelledError() if op.cancel_event.is_set() else e
            if isinstance(exc, TrimEngineError):
                logger.error("Operation %s failed: %s", op.id, exc.message)
            else:
                logger.exception("Operation %s failed: %s", op.id, e)
            self._finish_failed(op, exc)
            return

        with self._lock:
            if op.is_terminal:
                return
            op.status = OperationStatus.COMPLETED
            op.progress = 100.0
            op.output_files = [str(p) for p in (outputs or [])]
            op.completed_at = datetime.utcnow()
        logger.info("Operation %s completed with %d outputs", op.id, len(op.output_files))

    def _finish_failed(self, op: Operation, exc: BaseException) -> None:
        with self._lock:
            if op.is_terminal:
                return
            op.status = OperationStatus.FAILED
            op.error = exc.message if isinstance(exc, TrimEngineError) else (str(exc) or type(exc).__name__)
            op.error_kind = error_kind_for(exc)
            op.completed_at = datetime.utcnow()

    def update_progress(self, operation_id: str, progress: float) -> None:
        """Raise the progress (0-100) of a running operation; never lowers it."""
        with self._lock:
            op = self._operations.get(operation_id)
            if op is None or op.status != OperationStatus.PROCESSING:
                return
            progress = max(0.0, min(progress, 100.0))
            if progress > op.progress:
                op.progress = progress

    def cancel(self, operation_id: str) -> Optional[bool]:
        """Request cancellation.

        Returns None for an unknown id, False if the operation already
        finished, True otherwise.
        """
        with self._lock:
            op = self._operations.get(operation_id)
            if op is None:
                return None
            if op.is_terminal:
                return False
            if op.status == OperationStatus.PENDING:
                op.status = OperationStatus.FAILED
                op.error = OperationCancelledError().message
                op.error_kind = ErrorKind.CANCELLED
                op.completed_at = datetime.utcnow()
            op.cancel_event.set()
        logger.info("Cancellation requested for operation %s", operation_id)
        return True

    def get(self, operation_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            op = self._operations.get(operation_id)
            return op.to_dict() if op else None

    def list(self, project_id: Optional[str] = None) -> List[Dict[str, Any]]:
        """Snapshots, most recent first."""
        with self._lock:
            ops = [
                op for op in self._operations.values()
                if project_id is None or op.project_id == project_id
            ]
            ops.sort(key=lambda o: o.created_at, reverse=True)
            return [op.to_dict() for op in ops]

    def stats(self) -> Dict[str, int]:
        counts = {status.value: 0 for status in OperationStatus}
        with self._lock:
            for op in self._operations.values():
                counts[op.status.value] += 1
        return counts

    def clear(self) -> int:
        """Forget finished operations."""
        with self._lock:
            finished = [op_id for op_id, op in self._operations.items() if op.is_terminal]
            for op_id in finished:
                del self._operations[op_id]
        return len(finished)
