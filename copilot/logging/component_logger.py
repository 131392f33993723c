"""Per-component activity logger and timed-operation context manager."""

import time
from typing import Any, Optional

from copilot.logging.agent_logger import AgentLogger, get_logger
from copilot.logging.models import LogComponent


class ComponentLogger:
    """Binds a fixed ``LogComponent`` to an ``AgentLogger``.

    Uses the process-wide logger unless one is passed in::

        log = ComponentLogger(LogComponent.PIPELINE)
        async with log.timed("Running trending-1", agent_name="trending-1"):
            ...
    """

    def __init__(self, component: LogComponent, logger: Optional[AgentLogger] = None) -> None:
        self.component = component
        self._logger = logger

    @property
    def logger(self) -> AgentLogger:
        return self._logger or get_logger()

    async def debug(self, message: str, **kwargs: Any) -> None:
        await self.logger.debug(self.component, message, **kwargs)

    async def info(self, message: str, **kwargs: Any) -> None:
        await self.logger.info(self.component, message, **kwargs)

    async def warning(self, message: str, **kwargs: Any) -> None:
        await self.logger.warning(self.component, message, **kwargs)

    async def error(
        self, message: str, error: Optional[Exception] = None, **kwargs: Any
    ) -> None:
        await self.logger.error(self.component, message, error=error, **kwargs)

    def timed(self, message: str, **kwargs: Any) -> "TimedOperation":
        """Async context manager logging start, duration and outcome."""
        return TimedOperation(self, message, kwargs)


class TimedOperation:
    """Logs ``Starting:`` on entry and ``Completed:``/``Failed:`` with
    ``duration_ms`` on exit.  Exceptions are re-raised.
    """

    def __init__(self, logger: ComponentLogger, message: str, extra: Optional[dict] = None) -> None:
        self.logger = logger
        self.message = message
        self.extra = extra or {}
        self._started: Optional[float] = None
        self.duration_ms: Optional[int] = None

    async def __aenter__(self) -> "TimedOperation":
        self._started = time.monotonic()
        await self.logger.debug(f"Starting: {self.message}", **self.extra)
        return self

    async def __aexit__(
        self,
        exc_type: Optional[type],
        exc_val: Optional[BaseException],
        exc_tb: Any,
    ) -> None:
        assert self._started is not None
        self.duration_ms = int((time.monotonic() - self._started) * 1000)

        if exc_type is not None:
            await self.logger.error(
                f"Failed: {self.message}",
                error=exc_val if isinstance(exc_val, Exception) else None,
                duration_ms=self.duration_ms,
                **self.extra,
            )
        else:
            await self.logger.info(
                f"Completed: {self.message}",
                duration_ms=self.duration_ms,
                **self.extra,
            )
