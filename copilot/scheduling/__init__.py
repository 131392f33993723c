"""Execution queue: priority ordering, bounded concurrency, retry with backoff."""

from copilot.scheduling.models import QueuedTask, QueueStats, TaskPriority, TaskStatus
from copilot.scheduling.queue import ExecutionQueue

__all__ = [
    "ExecutionQueue",
    "QueuedTask",
    "QueueStats",
    "TaskPriority",
    "TaskStatus",
]
