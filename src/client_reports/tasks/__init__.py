"""Background processing of fetched messages."""

from client_reports.tasks.processor import EmailProcessor
from client_reports.tasks.queue import (
    BackgroundTask,
    BackgroundTaskQueue,
    QueueClosedError,
    TaskStatus,
    TaskType,
)

__all__ = [
    "BackgroundTask",
    "BackgroundTaskQueue",
    "EmailProcessor",
    "QueueClosedError",
    "TaskStatus",
    "TaskType",
]
