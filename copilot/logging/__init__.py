"""Structured activity log for the Content Co-Pilot."""
from copilot.logging.models import LogLevel, LogComponent, LogEntry
from copilot.logging.agent_logger import AgentLogger, init_logger, get_logger, reset_logger
from copilot.logging.component_logger import ComponentLogger, TimedOperation

__all__ = [
    "LogLevel", "LogComponent", "LogEntry",
    "AgentLogger", "init_logger", "get_logger", "reset_logger",
    "ComponentLogger", "TimedOperation",
]
