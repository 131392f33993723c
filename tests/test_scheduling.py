"""Tests for copilot.scheduling.

Covers:
- TaskPriority / TaskStatus / QueuedTask model helpers.
- ExecutionQueue ordering, concurrency cap, retries with backoff,
  scheduled tasks, cancellation, re-prioritisation and shutdown.
"""

import asyncio
from datetime import timedelta

import pytest

from copilot.config import QueueSettings
from copilot.exceptions import ConfigurationError
from copilot.scheduling import (
    ExecutionQueue,
    QueuedTask,
    TaskPriority,
    TaskStatus,
)
from copilot.utils import utc_now

FAST_RETRIES = QueueSettings(max_concurrent=1, max_retries=2, backoff_base_seconds=0.001)


class Recorder:
    """Runner that records the order tasks start in."""

    def __init__(self, fail_times=0, hold=None):
        self.started = []
        self.fail_times = fail_times
        self.hold = hold
        self.active = 0
        self.max_active = 0

    async def __call__(self, task):
        self.started.append(task.agent_id)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.hold is not None:
                await self.hold.wait()
            else:
                await asyncio.sleep(0)
            if self.fail_times > 0:
                self.fail_times -= 1
                raise RuntimeError("transient")
            return f"done:{task.agent_id}"
        finally:
            self.active -= 1


# =============================================================================
# Models
# =============================================================================


class TestModels:

    def test_priority_rank_order(self):
        ranks = [p.rank for p in (TaskPriority.CRITICAL, TaskPriority.HIGH, TaskPriority.MEDIUM, TaskPriority.LOW)]
        assert ranks == [0, 1, 2, 3]

    @pytest.mark.parametrize(
        "status,terminal",
        [
            (TaskStatus.PENDING, False),
            (TaskStatus.PROCESSING, False),
            (TaskStatus.COMPLETED, True),
            (TaskStatus.FAILED, True),
            (TaskStatus.CANCELLED, True),
        ],
    )
    def test_terminal(self, status, terminal):
        assert status.is_terminal is terminal

    def test_is_due(self):
        now = utc_now()
        assert QueuedTask("a").is_due(now)
        assert not QueuedTask("a", scheduled_for=now + timedelta(minutes=1)).is_due(now)

    def test_settings_validation(self):
        with pytest.raises(ConfigurationError):
            QueueSettings(max_concurrent=0)
        with pytest.raises(ConfigurationError):
            QueueSettings(max_retries=-1)


# =============================================================================
# Queue
# =============================================================================


class TestExecutionQueue:

    @pytest.mark.asyncio
    async def test_priority_order(self):
        runner = Recorder()
        queue = ExecutionQueue(runner, QueueSettings(max_concurrent=1), paused=True)
        queue.enqueue("low", priority=TaskPriority.LOW)
        queue.enqueue("critical", priority="critical")
        queue.enqueue("medium")

        assert [t.agent_id for t in queue.pending()] == ["critical", "medium", "low"]
        queue.resume()
        await asyncio.wait_for(queue.join(), timeout=5)

        assert runner.started == ["critical", "medium", "low"]

    @pytest.mark.asyncio
    async def test_fifo_within_tier(self):
        runner = Recorder()
        queue = ExecutionQueue(runner, QueueSettings(max_concurrent=1), paused=True)
        for name in ("first", "second", "third"):
            queue.enqueue(name, priority=TaskPriority.HIGH)
        queue.resume()
        await asyncio.wait_for(queue.join(), timeout=5)
        assert runner.started == ["first", "second", "third"]

    @pytest.mark.asyncio
    async def test_concurrency_cap(self):
        release = asyncio.Event()
        runner = Recorder(hold=release)
        queue = ExecutionQueue(runner, QueueSettings(max_concurrent=2))
        for i in range(5):
            queue.enqueue(f"t{i}")

        await asyncio.sleep(0.01)
        assert runner.active == 2
        assert queue.get_stats().processing == 2

        release.set()
        await asyncio.wait_for(queue.join(), timeout=5)
        assert runner.max_active == 2
        assert queue.get_stats().completed == 5

    @pytest.mark.asyncio
    async def test_result_stored(self):
        queue = ExecutionQueue(Recorder())
        task = queue.enqueue("agent")
        await asyncio.wait_for(queue.join(), timeout=5)
        assert task.status is TaskStatus.COMPLETED
        assert task.result == "done:agent"
        assert task.started_at is not None
        assert task.completed_at is not None

    @pytest.mark.asyncio
    async def test_retry_then_succeed(self):
        runner = Recorder(fail_times=1)
        queue = ExecutionQueue(runner, FAST_RETRIES)
        task = queue.enqueue("flaky")
        await asyncio.wait_for(queue.join(), timeout=5)

        assert task.status is TaskStatus.COMPLETED
        assert task.retry_count == 1
        assert runner.started == ["flaky", "flaky"]

    @pytest.mark.asyncio
    async def test_retries_exhausted(self):
        runner = Recorder(fail_times=100)
        queue = ExecutionQueue(runner, FAST_RETRIES)
        task = queue.enqueue("broken")
        await asyncio.wait_for(queue.join(), timeout=5)

        assert task.status is TaskStatus.FAILED
        assert task.retry_count == 2
        assert task.error == "transient"
        assert len(runner.started) == 3
        assert queue.get_stats().failed == 1

    @pytest.mark.asyncio
    async def test_per_task_max_retries(self):
        runner = Recorder(fail_times=100)
        queue = ExecutionQueue(runner, FAST_RETRIES)
        task = queue.enqueue("once", max_retries=0)
        await asyncio.wait_for(queue.join(), timeout=5)
        assert task.status is TaskStatus.FAILED
        assert runner.started == ["once"]

    @pytest.mark.asyncio
    async def test_future_task_does_not_block_due_ones(self):
        runner = Recorder()
        queue = ExecutionQueue(runner, QueueSettings(max_concurrent=1), paused=True)
        later = queue.enqueue(
            "later", priority=TaskPriority.CRITICAL, scheduled_for=utc_now() + timedelta(hours=1)
        )
        queue.enqueue("now", priority=TaskPriority.LOW)
        queue.resume()
        await asyncio.sleep(0.01)

        assert runner.started == ["now"]
        assert later.status is TaskStatus.PENDING
        assert queue.pending() == [later]
        await queue.shutdown()

    @pytest.mark.asyncio
    async def test_scheduled_task_runs_when_due(self):
        runner = Recorder()
        queue = ExecutionQueue(runner)
        queue.enqueue("soon", scheduled_for=utc_now() + timedelta(milliseconds=20))
        await asyncio.wait_for(queue.join(), timeout=5)
        assert runner.started == ["soon"]

    @pytest.mark.asyncio
    async def test_next_runnable_skips_future(self):
        queue = ExecutionQueue(Recorder(), paused=True)
        queue.enqueue("later", scheduled_for=utc_now() + timedelta(hours=1))
        due = queue.enqueue("due", priority=TaskPriority.LOW)
        assert queue.next_runnable() is due
        assert queue.next_runnable() is None

    @pytest.mark.asyncio
    async def test_cancel_pending(self):
        queue = ExecutionQueue(Recorder(), paused=True)
        task = queue.enqueue("doomed")
        assert queue.cancel(task.id) is True
        assert task.status is TaskStatus.CANCELLED
        assert queue.cancel(task.id) is False
        await asyncio.wait_for(queue.join(), timeout=1)

    @pytest.mark.asyncio
    async def test_set_priority_reorders(self):
        queue = ExecutionQueue(Recorder(), paused=True)
        first = queue.enqueue("first", priority=TaskPriority.LOW)
        second = queue.enqueue("second", priority=TaskPriority.LOW)
        assert queue.set_priority(second.id, TaskPriority.HIGH) is True
        assert queue.pending() == [second, first]
        assert queue.set_priority("missing", TaskPriority.HIGH) is False

    @pytest.mark.asyncio
    async def test_shutdown_cancels_queued(self):
        queue = ExecutionQueue(Recorder(), paused=True)
        task = queue.enqueue("queued")
        await queue.shutdown()
        assert task.status is TaskStatus.CANCELLED
        with pytest.raises(RuntimeError):
            queue.enqueue("late")

    @pytest.mark.asyncio
    async def test_shutdown_cancel_running(self):
        release = asyncio.Event()
        queue = ExecutionQueue(Recorder(hold=release))
        task = queue.enqueue("stuck")
        await asyncio.sleep(0.01)
        assert task.status is TaskStatus.PROCESSING

        await queue.shutdown(cancel_running=True)
        assert task.status is TaskStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_failure_after_shutdown_is_not_retried(self):
        release = asyncio.Event()
        runner = Recorder(fail_times=1, hold=release)
        queue = ExecutionQueue(runner, FAST_RETRIES)
        task = queue.enqueue("flaky")
        await asyncio.sleep(0.01)
        assert task.status is TaskStatus.PROCESSING

        shutting_down = asyncio.create_task(queue.shutdown())
        await asyncio.sleep(0)
        release.set()
        await asyncio.wait_for(shutting_down, timeout=1)
        await asyncio.wait_for(queue.join(), timeout=1)

        assert task.status is TaskStatus.CANCELLED
        assert task.retry_count == 0
        assert task.error == "transient"
        assert runner.started == ["flaky"]

    @pytest.mark.asyncio
    async def test_pending_retry_fired_after_close_is_finished(self):
        runner = Recorder(fail_times=1)
        queue = ExecutionQueue(runner, QueueSettings(max_retries=1, backoff_base_seconds=0.05))
        task = queue.enqueue("flaky")
        await asyncio.sleep(0.01)
        assert task.status is TaskStatus.PENDING
        assert task.retry_count == 1

        # Fire the retry by hand on a queue closed without sweeping its timers
        queue._retry_timers[task.id].cancel()
        queue._closed = True
        queue._requeue(task)

        assert task.status is TaskStatus.CANCELLED
        assert queue._retry_timers == {}
        await asyncio.wait_for(queue.join(), timeout=1)

    @pytest.mark.asyncio
    async def test_unknown_priority(self):
        queue = ExecutionQueue(Recorder(), paused=True)
        with pytest.raises(ValueError):
            queue.enqueue("x", priority="urgent")

    @pytest.mark.asyncio
    async def test_stats(self):
        queue = ExecutionQueue(Recorder(), QueueSettings(max_concurrent=1), paused=True)
        queue.enqueue("a")
        cancelled = queue.enqueue("b")
        queue.cancel(cancelled.id)
        queue.resume()
        await asyncio.wait_for(queue.join(), timeout=5)

        stats = queue.get_stats()
        assert stats.total == 2
        assert stats.completed == 1
        assert stats.cancelled == 1
        assert stats.pending == 0
        assert stats.average_processing_time >= 0.0
