"""Activity log data models: LogLevel, LogComponent, LogEntry."""

import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class LogLevel(Enum):
    """Log levels with numeric values so severities compare correctly."""

    DEBUG = 10
    INFO = 20
    WARNING = 30
    ERROR = 40
    CRITICAL = 50

    @property
    def name_str(self) -> str:
        return self.name.lower()


class LogComponent(Enum):
    """Subsystems that write to the activity log."""

    AGENT = "agent"
    REGISTRY = "registry"
    WORKFLOW = "workflow"
    QUEUE = "queue"
    PIPELINE = "pipeline"
    AI_CLIENT = "ai_client"
    DATABASE = "database"
    CACHE = "cache"


@dataclass
class LogEntry:
    """One structured activity log event.

    Serialises to a JSON line for files, a dict for the ``activity_logs``
    table, and a short readable line for consoles.
    """

    timestamp: datetime
    level: LogLevel
    component: LogComponent
    message: str

    # Context
    run_id: Optional[str] = None
    agent_name: Optional[str] = None
    suggestion_id: Optional[str] = None

    data: Dict[str, Any] = field(default_factory=dict)

    # Error details
    error_type: Optional[str] = None
    error_traceback: Optional[str] = None

    duration_ms: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "level": self.level.value,
            "level_name": self.level.name_str,
            "component": self.component.value,
            "message": self.message,
            "run_id": self.run_id,
            "agent_name": self.agent_name,
            "suggestion_id": self.suggestion_id,
            "data": self.data,
            "error_type": self.error_type,
            "error_traceback": self.error_traceback,
            "duration_ms": self.duration_ms,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False, default=str)

    def to_readable(self) -> str:
        time_str = self.timestamp.strftime("%H:%M:%S")
        msg = (
            f"[{self.level.name}] [{time_str}] "
            f"[{self.component.value}] {self.message}"
        )
        if self.duration_ms is not None:
            msg += f" ({self.duration_ms}ms)"
        return msg
