"""Structured activity logger with file and Supabase outputs.

``AgentLogger`` appends every entry as a JSON line to ``activity.log``
(plus ``errors.log`` for ERROR and above, ``debug.log`` for DEBUG) using
``aiofiles``, optionally mirrors entries to the ``activity_logs`` table,
and keeps an in-memory ring buffer for ``get_recent()``.

Global helpers:
    - ``init_logger()``  -- create and register the process-wide logger
    - ``get_logger()``   -- retrieve it (raises if not initialised)
"""

import asyncio
import logging
import traceback
from collections import deque
from pathlib import Path
from typing import Any, Callable, Deque, Dict, List, Optional, Set

import aiofiles

from copilot.logging.models import LogComponent, LogEntry, LogLevel
from copilot.utils import utc_now

logger = logging.getLogger(__name__)


class AgentLogger:
    """Activity log for agent runs, workflow passes and queue events.

    Args:
        log_dir: Directory for log files (created if missing).
        db: Optional store with ``save_activity_log(dict)``.
        min_level: Minimum level mirrored to the store.
        max_recent: Size of the in-memory ring buffer.
    """

    def __init__(
        self,
        log_dir: str = "logs",
        db: Any = None,
        min_level: LogLevel = LogLevel.INFO,
        max_recent: int = 1000,
    ) -> None:
        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)

        self.db = db
        self.min_level = min_level

        self._run_id: Optional[str] = None

        self._activity_log = self.log_dir / "activity.log"
        self._error_log = self.log_dir / "errors.log"
        self._debug_log = self.log_dir / "debug.log"

        self._recent: Deque[LogEntry] = deque(maxlen=max_recent)
        self._handlers: List[Callable[[LogEntry], None]] = []

        # Keep references so fire-and-forget writes are not collected
        self._pending_tasks: Set["asyncio.Task[None]"] = set()

    def set_run(self, run_id: Optional[str]) -> None:
        """Tag subsequent entries with a pipeline run ID (``None`` clears it)."""
        self._run_id = run_id

    def add_handler(self, handler: Callable[[LogEntry], None]) -> None:
        """Register a synchronous callback invoked for every entry."""
        self._handlers.append(handler)

    async def log(
        self,
        level: LogLevel,
        component: LogComponent,
        message: str,
        data: Optional[Dict[str, Any]] = None,
        error: Optional[Exception] = None,
        duration_ms: Optional[int] = None,
        agent_name: Optional[str] = None,
        suggestion_id: Optional[str] = None,
    ) -> LogEntry:
        """Record one entry on every configured output."""
        entry = LogEntry(
            timestamp=utc_now(),
            level=level,
            component=component,
            message=message,
            run_id=self._run_id,
            agent_name=agent_name,
            suggestion_id=suggestion_id,
            data=data or {},
            duration_ms=duration_ms,
        )
        if error is not None:
            entry.error_type = type(error).__name__
            entry.error_traceback = "".join(
                traceback.format_exception(type(error), error, error.__traceback__)
            )

        self._recent.append(entry)

        await self._write_to_file(entry)

        if self.db is not None and level.value >= self.min_level.value:
            task = asyncio.create_task(self._write_to_db(entry))
            self._pending_tasks.add(task)
            task.add_done_callback(self._pending_tasks.discard)

        for handler in self._handlers:
            try:
                handler(entry)
            except Exception as exc:
                logger.warning("[LOGGING] Handler %r failed: %s", handler, exc)

        return entry

    async def debug(self, component: LogComponent, message: str, **kwargs: Any) -> LogEntry:
        return await self.log(LogLevel.DEBUG, component, message, **kwargs)

    async def info(self, component: LogComponent, message: str, **kwargs: Any) -> LogEntry:
        return await self.log(LogLevel.INFO, component, message, **kwargs)

    async def warning(self, component: LogComponent, message: str, **kwargs: Any) -> LogEntry:
        return await self.log(LogLevel.WARNING, component, message, **kwargs)

    async def error(self, component: LogComponent, message: str, **kwargs: Any) -> LogEntry:
        return await self.log(LogLevel.ERROR, component, message, **kwargs)

    async def critical(self, component: LogComponent, message: str, **kwargs: Any) -> LogEntry:
        return await self.log(LogLevel.CRITICAL, component, message, **kwargs)

    def get_recent(
        self,
        limit: int = 20,
        level: Optional[LogLevel] = None,
        component: Optional[LogComponent] = None,
        run_id: Optional[str] = None,
    ) -> List[LogEntry]:
        """Most recent entries from the ring buffer, oldest first."""
        entries = list(self._recent)
        if level is not None:
            entries = [e for e in entries if e.level == level]
        if component is not None:
            entries = [e for e in entries if e.component == component]
        if run_id is not None:
            entries = [e for e in entries if e.run_id == run_id]
        return entries[-limit:]

    async def flush(self) -> None:
        """Wait for pending store writes (call before shutdown)."""
        if self._pending_tasks:
            await asyncio.gather(*self._pending_tasks, return_exceptions=True)
            self._pending_tasks.clear()

    async def _write_to_file(self, entry: LogEntry) -> None:
        line = entry.to_json() + "\n"

        async with aiofiles.open(self._activity_log, "a", encoding="utf-8") as f:
            await f.write(line)

        if entry.level.value >= LogLevel.ERROR.value:
            async with aiofiles.open(self._error_log, "a", encoding="utf-8") as f:
                await f.write(line)

        if entry.level == LogLevel.DEBUG:
            async with aiofiles.open(self._debug_log, "a", encoding="utf-8") as f:
                await f.write(line)

    async def _write_to_db(self, entry: LogEntry) -> None:
        try:
            await self.db.save_activity_log(entry.to_dict())
        except Exception as exc:
            # The file copy already exists; only the mirror is lost
            logger.warning("[LOGGING] Failed to write activity log to store: %s", exc)


# ======================================================================
# GLOBAL LOGGER SINGLETON
# ======================================================================

_logger: Optional[AgentLogger] = None


def init_logger(
    log_dir: str = "logs",
    db: Any = None,
    min_level: LogLevel = LogLevel.INFO,
) -> AgentLogger:
    """Create and register the process-wide ``AgentLogger``."""
    global _logger
    _logger = AgentLogger(log_dir=log_dir, db=db, min_level=min_level)
    return _logger


def get_logger() -> AgentLogger:
    """Return the process-wide ``AgentLogger``.

    Raises:
        RuntimeError: If ``init_logger()`` has not been called yet.
    """
    if _logger is None:
        raise RuntimeError("Logger not initialized. Call init_logger() first.")
    return _logger


def reset_logger() -> None:
    global _logger
    _logger = None
