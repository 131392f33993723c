"""
Priority execution queue for agent runs and rule executions.

``ExecutionQueue`` keeps a list of ``QueuedTask`` ordered by priority tier
(critical > high > medium > low, arrival order within a tier) and runs at
most ``max_concurrent`` of them at a time on the running asyncio loop.

- A task scheduled for the future stays queued; the next due task is
  picked instead and a wake-up timer is armed for the earliest one.
- A failing task is retried after ``backoff_base * 2 ** retry_count``
  seconds (retry count already incremented) through a timer that
  re-inserts it, so backoff never blocks the loop.  Once ``max_retries`` is
  exhausted the task is marked ``failed``.

Usage::

    queue = ExecutionQueue(run_agent_task)
    task = queue.enqueue("trending-1", {"limit": 20}, TaskPriority.HIGH)
    await queue.join()
"""

import asyncio
import logging
import time
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Union

from copilot.config import QueueSettings
from copilot.scheduling.models import QueuedTask, QueueStats, TaskPriority, TaskStatus
from copilot.utils import utc_now

logger = logging.getLogger(__name__)

TaskRunner = Callable[[QueuedTask], Awaitable[Any]]


class ExecutionQueue:
    """Bounded-concurrency priority queue with retry and backoff.

    Args:
        runner: Coroutine function executed for each task.  Its return
            value is stored on ``task.result``; raising triggers a retry.
        settings: Concurrency cap and retry policy.  Defaults to
            ``QueueSettings()`` (3 concurrent, 3 retries, 1s base).
        paused: Start paused; tasks queue up until :meth:`resume`.
        clock: UTC clock used for ``scheduled_for`` checks.
    """

    def __init__(
        self,
        runner: TaskRunner,
        settings: Optional[QueueSettings] = None,
        paused: bool = False,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        settings = settings or QueueSettings()
        self.runner = runner
        self.max_concurrent = settings.max_concurrent
        self.max_retries = settings.max_retries
        self.backoff_base = settings.backoff_base_seconds
        self._clock = clock

        self._queue: List[QueuedTask] = []
        self._tasks: Dict[str, QueuedTask] = {}
        self._running: Dict[str, asyncio.Task] = {}
        self._retry_timers: Dict[str, asyncio.TimerHandle] = {}
        self._wakeup: Optional[asyncio.TimerHandle] = None
        self._durations: List[float] = []
        self._unfinished = 0
        self._idle = asyncio.Event()
        self._idle.set()
        self._paused = paused
        self._closed = False

    # ================================================================
    # ENQUEUE / DEQUEUE
    # ================================================================

    def enqueue(
        self,
        agent_id: str,
        context: Any = None,
        priority: Union[TaskPriority, str] = TaskPriority.MEDIUM,
        scheduled_for: Optional[datetime] = None,
        max_retries: Optional[int] = None,
    ) -> QueuedTask:
        """Add a task and start it if a slot is free.

        Must be called from inside the running event loop unless the queue
        is paused.

        Raises:
            RuntimeError: If the queue has been shut down.
            ValueError: On an unknown priority.
        """
        if self._closed:
            raise RuntimeError("Execution queue is shut down")

        task = QueuedTask(
            agent_id=agent_id,
            context=context,
            priority=TaskPriority(priority),
            scheduled_for=scheduled_for,
            max_retries=self.max_retries if max_retries is None else max_retries,
        )
        self._tasks[task.id] = task
        self._unfinished += 1
        self._idle.clear()
        self._insert(task)
        logger.debug(
            "[QUEUE] Enqueued %s for %s (priority=%s)",
            task.id,
            agent_id,
            task.priority.value,
        )
        self._pump()
        return task

    def _insert(self, task: QueuedTask) -> None:
        """Place *task* before the first queued task of strictly lower priority."""
        index = next(
            (i for i, queued in enumerate(self._queue) if queued.priority.rank > task.priority.rank),
            len(self._queue),
        )
        self._queue.insert(index, task)

    def next_runnable(self) -> Optional[QueuedTask]:
        """Remove and return the first due task, or ``None``."""
        now = self._clock()
        for index, task in enumerate(self._queue):
            if task.is_due(now):
                return self._queue.pop(index)
        return None

    def pending(self) -> List[QueuedTask]:
        """Queued tasks in dequeue order (not yet started)."""
        return list(self._queue)

    # ================================================================
    # RUNNER LOOP
    # ================================================================

    def pause(self) -> None:
        self._paused = True

    def resume(self) -> None:
        """Resume starting tasks (call from inside the event loop)."""
        self._paused = False
        self._pump()

    def _pump(self) -> None:
        if self._paused or self._closed:
            return

        while len(self._running) < self.max_concurrent:
            task = self.next_runnable()
            if task is None:
                break
            self._start(task)

        if self._queue and len(self._running) < self.max_concurrent:
            self._arm_wakeup()

    def _arm_wakeup(self) -> None:
        """Schedule a pump for when the earliest future task becomes due."""
        earliest = min(t.scheduled_for for t in self._queue if t.scheduled_for is not None)
        delay = max((earliest - self._clock()).total_seconds(), 0.0)
        if self._wakeup is not None:
            self._wakeup.cancel()
        self._wakeup = asyncio.get_running_loop().call_later(delay, self._pump)

    def _start(self, task: QueuedTask) -> None:
        task.status = TaskStatus.PROCESSING
        task.started_at = self._clock()
        self._running[task.id] = asyncio.get_running_loop().create_task(self._run(task))

    async def _run(self, task: QueuedTask) -> None:
        started = time.monotonic()
        logger.info("[QUEUE] Processing %s (%s)", task.id, task.agent_id)
        try:
            task.result = await self.runner(task)
        except asyncio.CancelledError:
            self._finish(task, TaskStatus.CANCELLED)
            raise
        except Exception as exc:
            self._durations.append(time.monotonic() - started)
            self._handle_failure(task, exc)
        else:
            self._durations.append(time.monotonic() - started)
            self._finish(task, TaskStatus.COMPLETED)
            logger.info("[QUEUE] Completed %s (%s)", task.id, task.agent_id)
        finally:
            self._running.pop(task.id, None)
            self._pump()

    def _handle_failure(self, task: QueuedTask, exc: Exception) -> None:
        task.error = str(exc)
        if self._closed:
            logger.warning(
                "[QUEUE] Task %s failed after shutdown (%s); not retrying", task.id, exc
            )
            self._finish(task, TaskStatus.CANCELLED)
            return
        if task.retry_count < task.max_retries:
            task.retry_count += 1
            task.status = TaskStatus.PENDING
            delay = self.backoff_base * 2 ** task.retry_count
            logger.warning(
                "[QUEUE] Task %s failed (%s); retry %d/%d in %.1fs",
                task.id,
                exc,
                task.retry_count,
                task.max_retries,
                delay,
            )
            self._retry_timers[task.id] = asyncio.get_running_loop().call_later(
                delay, self._requeue, task
            )
        else:
            logger.error(
                "[QUEUE] Task %s failed permanently after %d retries: %s",
                task.id,
                task.retry_count,
                exc,
            )
            self._finish(task, TaskStatus.FAILED)

    def _requeue(self, task: QueuedTask) -> None:
        self._retry_timers.pop(task.id, None)
        if self._closed:
            self._finish(task, TaskStatus.CANCELLED)
            return
        self._insert(task)
        self._pump()

    def _finish(self, task: QueuedTask, status: TaskStatus) -> None:
        task.status = status
        task.completed_at = self._clock()
        self._unfinished -= 1
        if self._unfinished <= 0:
            self._unfinished = 0
            self._idle.set()

    async def join(self) -> None:
        """Wait until every enqueued task reached a terminal status."""
        await self._idle.wait()

    async def shutdown(self, cancel_running: bool = False) -> None:
        """Stop accepting work and drop queued tasks and pending retries.

        Args:
            cancel_running: Cancel in-flight tasks instead of awaiting them.
        """
        self._closed = True
        if self._wakeup is not None:
            self._wakeup.cancel()
        for task_id, handle in list(self._retry_timers.items()):
            handle.cancel()
            self._finish(self._tasks[task_id], TaskStatus.CANCELLED)
        self._retry_timers.clear()
        while self._queue:
            self._finish(self._queue.pop(), TaskStatus.CANCELLED)

        running = list(self._running.values())
        if cancel_running:
            for handle in running:
                handle.cancel()
        if running:
            await asyncio.gather(*running, return_exceptions=True)
        logger.info("[QUEUE] Shut down")

    # ================================================================
    # INTROSPECTION
    # ================================================================

    def get_task(self, task_id: str) -> Optional[QueuedTask]:
        return self._tasks.get(task_id)

    def cancel(self, task_id: str) -> bool:
        """Cancel a task that has not started yet.

        Returns:
            ``True`` if the task was removed from the queue.
        """
        for index, task in enumerate(self._queue):
            if task.id == task_id:
                del self._queue[index]
                self._finish(task, TaskStatus.CANCELLED)
                logger.info("[QUEUE] Cancelled %s", task_id)
                return True
        return False

    def set_priority(self, task_id: str, priority: Union[TaskPriority, str]) -> bool:
        """Change a queued task's priority and re-sort (stable within a tier)."""
        for task in self._queue:
            if task.id == task_id:
                task.priority = TaskPriority(priority)
                self._queue.sort(key=lambda t: t.priority.rank)
                return True
        return False

    def get_stats(self) -> QueueStats:
        statuses = [t.status for t in self._tasks.values()]
        durations = self._durations
        return QueueStats(
            total=len(statuses),
            pending=statuses.count(TaskStatus.PENDING),
            processing=len(self._running),
            completed=statuses.count(TaskStatus.COMPLETED),
            failed=statuses.count(TaskStatus.FAILED),
            cancelled=statuses.count(TaskStatus.CANCELLED),
            average_processing_time=sum(durations) / len(durations) if durations else 0.0,
        )
