"""In-process background task queue.

Tasks run one at a time on the event loop, in enqueue order. State lives in
memory only: a restart loses pending and in-flight tasks. Finished tasks stay
queryable for a retention window so that callers can poll their status.
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any

import structlog

from client_reports.utils import truncate_error

logger = structlog.get_logger()


class TaskType(str, Enum):
    GENERATE_EMBEDDINGS = "generate_embeddings"
    SUMMARIZE_EMAILS = "summarize_emails"
    PROCESS_NEW_EMAILS = "process_new_emails"


class TaskStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (TaskStatus.COMPLETED, TaskStatus.FAILED)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class BackgroundTask:
    id: str
    type: TaskType
    params: dict[str, Any]
    status: TaskStatus
    created_at: datetime
    updated_at: datetime
    result: dict[str, Any] | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "params": self.params,
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "result": self.result,
            "error": self.error,
        }


TaskHandler = Callable[[BackgroundTask], Awaitable[dict[str, Any]]]


class QueueClosedError(RuntimeError):
    """Raised when work is enqueued after shutdown."""


@dataclass
class _PollConfig:
    interval_seconds: float
    params: dict[str, Any] = field(default_factory=dict)


class BackgroundTaskQueue:
    """Single-flight FIFO job runner.

    ``_processing`` is only read and written from the event loop thread, so at
    most one task is ever in the ``processing`` state.
    """

    def __init__(
        self,
        handler: TaskHandler,
        *,
        retention: timedelta = timedelta(minutes=30),
        poll_interval_seconds: float = 0.0,
        poll_params: dict[str, Any] | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._handler = handler
        self._retention = retention
        self._poll = (
            _PollConfig(poll_interval_seconds, dict(poll_params or {}))
            if poll_interval_seconds > 0
            else None
        )
        self._clock = clock
        self._tasks: dict[str, BackgroundTask] = {}
        self._processing = False
        self._started = False
        self._accepting = True
        self._worker: asyncio.Task[None] | None = None
        self._poller: asyncio.Task[None] | None = None

    @property
    def processing(self) -> bool:
        return self._processing

    def start(self) -> None:
        """Begin executing tasks. Must be called from a running event loop."""

        if self._started:
            return
        self._started = True
        self._accepting = True
        logger.info("task_queue_started", poll_seconds=self._poll.interval_seconds if self._poll else 0)

        if self._poll is not None:
            self._poller = asyncio.get_running_loop().create_task(self._poll_forever(self._poll))
        self._kick()

    def enqueue(self, task_type: TaskType | str, params: dict[str, Any] | None = None) -> str:
        """Append a task and return its id immediately.

        Raises:
            QueueClosedError: After ``shutdown()``.
            ValueError: For an unknown task type.
        """

        if not self._accepting:
            raise QueueClosedError("Background task queue is shut down")

        self.purge_expired()
        now = self._clock()
        task = BackgroundTask(
            id=str(uuid.uuid4()),
            type=TaskType(task_type),
            params=dict(params or {}),
            status=TaskStatus.PENDING,
            created_at=now,
            updated_at=now,
        )
        self._tasks[task.id] = task
        logger.info("task_queued", task_id=task.id, type=task.type.value)

        self._kick()
        return task.id

    def get_task(self, task_id: str) -> BackgroundTask | None:
        self.purge_expired()
        return self._tasks.get(task_id)

    def list_tasks(self) -> list[BackgroundTask]:
        self.purge_expired()
        return list(self._tasks.values())

    def purge_expired(self) -> int:
        """Drop terminal tasks older than the retention window; never pending/processing ones."""

        cutoff = self._clock() - self._retention
        expired = [
            task_id
            for task_id, task in self._tasks.items()
            if task.status.terminal and task.updated_at <= cutoff
        ]
        for task_id in expired:
            del self._tasks[task_id]
        if expired:
            logger.debug("tasks_purged", count=len(expired))
        return len(expired)

    async def wait_idle(self) -> None:
        """Wait until no task is pending or processing."""

        while self._worker is not None and not self._worker.done():
            await self._worker

    async def shutdown(self) -> None:
        """Stop accepting work, drop pending tasks and wait for the in-flight one."""

        self._accepting = False
        if self._poller is not None:
            self._poller.cancel()
            try:
                await self._poller
            except asyncio.CancelledError:
                pass
            self._poller = None

        dropped = [tid for tid, t in self._tasks.items() if t.status is TaskStatus.PENDING]
        for task_id in dropped:
            del self._tasks[task_id]

        if self._worker is not None and not self._worker.done():
            await self._worker
        self._started = False
        logger.info("task_queue_stopped", dropped=len(dropped))

    def _kick(self) -> None:
        if not self._started or self._processing:
            return
        if self._worker is not None and not self._worker.done():
            return
        self._worker = asyncio.get_running_loop().create_task(self._drain())

    def _next_pending(self) -> BackgroundTask | None:
        return next((t for t in self._tasks.values() if t.status is TaskStatus.PENDING), None)

    async def _drain(self) -> None:
        if self._processing:
            return
        self._processing = True
        try:
            while self._accepting:
                task = self._next_pending()
                if task is None:
                    break
                await self._run(task)
                self.purge_expired()
        finally:
            self._processing = False

    async def _run(self, task: BackgroundTask) -> None:
        task.status = TaskStatus.PROCESSING
        task.updated_at = self._clock()
        logger.info("task_started", task_id=task.id, type=task.type.value)

        try:
            task.result = await self._handler(task)
            task.status = TaskStatus.COMPLETED
        except Exception as exc:  # noqa: BLE001 - a failed task must not stop the queue
            task.status = TaskStatus.FAILED
            task.error = truncate_error(exc)
            logger.exception("task_failed", task_id=task.id, type=task.type.value, error=task.error)
        task.updated_at = self._clock()

        if task.status is TaskStatus.COMPLETED:
            logger.info("task_completed", task_id=task.id, type=task.type.value, result=task.result)

    async def _poll_forever(self, poll: _PollConfig) -> None:
        while self._accepting:
            try:
                self.enqueue(TaskType.PROCESS_NEW_EMAILS, poll.params)
            except QueueClosedError:
                return
            await asyncio.sleep(poll.interval_seconds)
