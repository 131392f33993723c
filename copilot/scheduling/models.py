"""
Execution queue data models: TaskPriority, TaskStatus, QueuedTask, QueueStats.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from copilot.utils import generate_id, utc_now


# =============================================================================
# ENUMS
# =============================================================================


class TaskPriority(str, Enum):
    """Queue priority tier (critical runs first)."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        """Sort key: lower ranks are dequeued first."""
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {
    TaskPriority.CRITICAL: 0,
    TaskPriority.HIGH: 1,
    TaskPriority.MEDIUM: 2,
    TaskPriority.LOW: 3,
}


class TaskStatus(str, Enum):
    """Lifecycle status of a queued task.

    Transitions:
        PENDING -> PROCESSING -> COMPLETED
                              -> PENDING (retry)
                              -> FAILED
        PENDING -> CANCELLED
    """

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in {TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.CANCELLED}


# =============================================================================
# QUEUED TASK
# =============================================================================


@dataclass
class QueuedTask:
    """A unit of work waiting in (or moving through) the execution queue.

    Attributes:
        agent_id: Agent (or rule) the work belongs to.
        context: Opaque payload handed to the runner.
        priority: Queue tier.
        scheduled_for: Earliest time the task may start (``None`` = now).
        retry_count: Failed attempts so far.
        max_retries: Retries allowed before the task fails permanently.
        status: Current lifecycle status.
        result: Runner return value once completed.
        error: Last error message, if any.
    """

    agent_id: str
    context: Any = None
    priority: TaskPriority = TaskPriority.MEDIUM
    scheduled_for: Optional[datetime] = None
    retry_count: int = 0
    max_retries: int = 3
    status: TaskStatus = TaskStatus.PENDING
    id: str = field(default_factory=generate_id)
    created_at: datetime = field(default_factory=utc_now)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    result: Any = None
    error: Optional[str] = None

    def is_due(self, now: datetime) -> bool:
        return self.scheduled_for is None or self.scheduled_for <= now


# =============================================================================
# QUEUE STATS
# =============================================================================


@dataclass
class QueueStats:
    """Snapshot of queue counters.

    ``average_processing_time`` is in seconds, measured over finished
    attempts.
    """

    total: int = 0
    pending: int = 0
    processing: int = 0
    completed: int = 0
    failed: int = 0
    cancelled: int = 0
    average_processing_time: float = 0.0


__all__ = [
    "TaskPriority",
    "TaskStatus",
    "QueuedTask",
    "QueueStats",
]
