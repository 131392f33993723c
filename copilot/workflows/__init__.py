"""Workflow rules: models, condition evaluation, actions and the engine."""

from copilot.workflows.actions import ActionExecutor
from copilot.workflows.conditions import (
    EvaluationContext,
    evaluate_condition,
    evaluate_conditions,
)
from copilot.workflows.engine import WorkflowEngine
from copilot.workflows.models import (
    Action,
    ActionType,
    Condition,
    ConditionOperator,
    ConditionType,
    ExecutionStatus,
    WorkflowExecution,
    WorkflowRule,
)

__all__ = [
    "Action",
    "ActionExecutor",
    "ActionType",
    "Condition",
    "ConditionOperator",
    "ConditionType",
    "EvaluationContext",
    "ExecutionStatus",
    "WorkflowEngine",
    "WorkflowExecution",
    "WorkflowRule",
    "evaluate_condition",
    "evaluate_conditions",
]
