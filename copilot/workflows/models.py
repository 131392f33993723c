"""
Workflow rule data types.

A ``WorkflowRule`` pairs a list of ``Condition`` predicates (all must hold)
with a list of ``Action`` side effects (run in order).  Every time a rule
matches a suggestion a ``WorkflowExecution`` records the attempt.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from copilot.exceptions import ValidationError
from copilot.utils import generate_id, parse_timestamp, utc_now


# =============================================================================
# ENUMS
# =============================================================================


class ConditionType(str, Enum):
    CONFIDENCE_THRESHOLD = "confidence_threshold"
    AGENT_TYPE = "agent_type"
    SUGGESTION_TYPE = "suggestion_type"
    APPROVAL_HISTORY = "approval_history"
    TIME_BASED = "time_based"


class ConditionOperator(str, Enum):
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    EQUALS = "equals"
    CONTAINS = "contains"
    MATCHES = "matches"


class ActionType(str, Enum):
    AUTO_APPROVE = "auto_approve"
    AUTO_IMPLEMENT = "auto_implement"
    NOTIFY_ADMIN = "notify_admin"
    SCHEDULE_REVIEW = "schedule_review"
    CREATE_TASK = "create_task"


class ExecutionStatus(str, Enum):
    """Execution lifecycle: PENDING -> EXECUTING -> COMPLETED | FAILED."""

    PENDING = "pending"
    EXECUTING = "executing"
    COMPLETED = "completed"
    FAILED = "failed"


# =============================================================================
# CONDITIONS AND ACTIONS
# =============================================================================


@dataclass
class Condition:
    """A predicate over a suggestion.

    ``type`` and ``operator`` are kept as plain strings so rows written by
    newer clients still load; unknown types simply never match.
    """

    type: str
    operator: str
    value: Any

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Condition":
        if "type" not in data:
            raise ValidationError(f"condition must have 'type': {data}")
        return cls(
            type=str(data["type"]),
            operator=str(data.get("operator") or ConditionOperator.EQUALS.value),
            value=data.get("value"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "operator": self.operator, "value": self.value}

    def validate(self) -> None:
        """Reject unknown condition types and operators (used on rule creation)."""
        try:
            ConditionType(self.type)
        except ValueError as exc:
            raise ValidationError(f"Unknown condition type '{self.type}'") from exc
        try:
            ConditionOperator(self.operator)
        except ValueError as exc:
            raise ValidationError(f"Unknown condition operator '{self.operator}'") from exc


@dataclass
class Action:
    """A side effect run when a rule matches."""

    type: str
    parameters: Dict[str, Any] = field(default_factory=dict)
    delay_minutes: Optional[float] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Action":
        if "type" not in data:
            raise ValidationError(f"action must have 'type': {data}")
        return cls(
            type=str(data["type"]),
            parameters=dict(data.get("parameters") or {}),
            delay_minutes=data.get("delay_minutes"),
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"type": self.type, "parameters": dict(self.parameters)}
        if self.delay_minutes is not None:
            data["delay_minutes"] = self.delay_minutes
        return data

    def validate(self) -> None:
        try:
            ActionType(self.type)
        except ValueError as exc:
            raise ValidationError(f"Unknown action type '{self.type}'") from exc
        if self.delay_minutes is not None and self.delay_minutes < 0:
            raise ValidationError(f"delay_minutes must be >= 0, got {self.delay_minutes}")


# =============================================================================
# RULES
# =============================================================================


@dataclass
class WorkflowRule:
    """
    Declarative automation rule.

    ``execution_count`` and ``success_count`` only ever grow;
    ``success_rate`` is always derived from them.
    """

    name: str
    conditions: List[Condition] = field(default_factory=list)
    actions: List[Action] = field(default_factory=list)
    enabled: bool = True
    priority: int = 0
    description: Optional[str] = None
    execution_count: int = 0
    success_count: int = 0
    id: str = field(default_factory=generate_id)
    created_at: datetime = field(default_factory=utc_now)

    @property
    def success_rate(self) -> float:
        """Percentage of successful executions (0 when never executed)."""
        if self.execution_count == 0:
            return 0.0
        return self.success_count / self.execution_count * 100

    def validate(self) -> None:
        if not self.name or not self.name.strip():
            raise ValidationError("rule name cannot be empty")
        if not self.actions:
            raise ValidationError(f"rule '{self.name}' must have at least one action")
        for condition in self.conditions:
            condition.validate()
        for action in self.actions:
            action.validate()

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "WorkflowRule":
        execution_count = int(row.get("execution_count") or 0)
        if row.get("success_count") is not None:
            success_count = int(row["success_count"])
        else:
            # Older rows only carry the percentage
            success_count = round(float(row.get("success_rate") or 0) * execution_count / 100)
        return cls(
            id=str(row["id"]),
            name=row.get("name") or "",
            description=row.get("description"),
            conditions=[Condition.from_dict(c) for c in row.get("conditions") or []],
            actions=[Action.from_dict(a) for a in row.get("actions") or []],
            enabled=bool(row.get("enabled", True)),
            priority=int(row.get("priority") or 0),
            execution_count=execution_count,
            success_count=success_count,
            created_at=(
                parse_timestamp(row["created_at"]) if row.get("created_at") else utc_now()
            ),
        )

    def to_row(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "conditions": [c.to_dict() for c in self.conditions],
            "actions": [a.to_dict() for a in self.actions],
            "enabled": self.enabled,
            "priority": self.priority,
            "execution_count": self.execution_count,
            "success_count": self.success_count,
            "success_rate": self.success_rate,
            "created_at": self.created_at.isoformat(),
        }


# =============================================================================
# EXECUTIONS
# =============================================================================


@dataclass
class WorkflowExecution:
    """One rule's attempt to act on one suggestion."""

    workflow_rule_id: str
    suggestion_id: str
    status: ExecutionStatus = ExecutionStatus.PENDING
    started_at: datetime = field(default_factory=utc_now)
    completed_at: Optional[datetime] = None
    result: Dict[str, Any] = field(default_factory=dict)
    error_message: Optional[str] = None
    id: str = field(default_factory=generate_id)

    @property
    def is_terminal(self) -> bool:
        return self.status in (ExecutionStatus.COMPLETED, ExecutionStatus.FAILED)

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "WorkflowExecution":
        return cls(
            id=str(row["id"]),
            workflow_rule_id=str(row["workflow_rule_id"]),
            suggestion_id=str(row["suggestion_id"]),
            status=ExecutionStatus(row.get("status") or "pending"),
            started_at=(
                parse_timestamp(row["started_at"]) if row.get("started_at") else utc_now()
            ),
            completed_at=(
                parse_timestamp(row["completed_at"]) if row.get("completed_at") else None
            ),
            result=row.get("result") or {},
            error_message=row.get("error_message"),
        )

    def to_row(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "workflow_rule_id": self.workflow_rule_id,
            "suggestion_id": self.suggestion_id,
            "status": self.status.value,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "result": self.result,
            "error_message": self.error_message,
        }
