"""
Condition evaluation for workflow rules.

Numeric conditions (``confidence_threshold``, ``time_based``,
``approval_history``) compare with ``>`` for ``greater_than``, ``==`` for
``equals`` and ``<`` otherwise.  String conditions (``agent_type``,
``suggestion_type``) support ``equals``, ``contains`` (substring, or
membership when the value is a list) and ``matches`` (regex search); any
other operator means "not equal".  Unknown condition types never match.
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Sequence

from copilot.models import SuggestionRecord
from copilot.utils import utc_now
from copilot.workflows.models import Condition, ConditionOperator, ConditionType

logger = logging.getLogger("Workflow")

SECONDS_PER_HOUR = 3600


@dataclass
class EvaluationContext:
    """Facts a condition may need beyond the suggestion itself.

    Attributes:
        now: Reference time for ``time_based`` conditions.
        approval_rate: Historical approval percentage for suggestions of the
            same target type from the same agent; ``None`` if no history.
    """

    now: Optional[datetime] = None
    approval_rate: Optional[float] = None

    @property
    def clock(self) -> datetime:
        return self.now or utc_now()


def _compare_numeric(actual: float, operator: str, expected: Any) -> bool:
    try:
        target = float(expected)
    except (TypeError, ValueError):
        logger.warning("[WORKFLOW] Non-numeric condition value %r", expected)
        return False
    if operator == ConditionOperator.GREATER_THAN.value:
        return actual > target
    if operator == ConditionOperator.EQUALS.value:
        return actual == target
    return actual < target


def _compare_text(actual: Optional[str], operator: str, expected: Any) -> bool:
    actual = actual or ""
    if operator == ConditionOperator.EQUALS.value:
        return actual == expected
    if operator == ConditionOperator.CONTAINS.value:
        if isinstance(expected, (list, tuple, set)):
            return actual in expected
        return str(expected) in actual
    if operator == ConditionOperator.MATCHES.value:
        try:
            return re.search(str(expected), actual) is not None
        except re.error as exc:
            logger.warning("[WORKFLOW] Invalid regex %r: %s", expected, exc)
            return False
    return actual != expected


def _confidence(c: Condition, s: SuggestionRecord, ctx: EvaluationContext) -> bool:
    return _compare_numeric(s.confidence_score, c.operator, c.value)


def _agent_type(c: Condition, s: SuggestionRecord, ctx: EvaluationContext) -> bool:
    return _compare_text(s.agent_id, c.operator, c.value)


def _suggestion_type(c: Condition, s: SuggestionRecord, ctx: EvaluationContext) -> bool:
    return _compare_text(s.type or s.target_type, c.operator, c.value)


def _time_based(c: Condition, s: SuggestionRecord, ctx: EvaluationContext) -> bool:
    hours = (ctx.clock - s.created_at).total_seconds() / SECONDS_PER_HOUR
    return _compare_numeric(hours, c.operator, c.value)


def _approval_history(c: Condition, s: SuggestionRecord, ctx: EvaluationContext) -> bool:
    if ctx.approval_rate is None:
        return True
    return _compare_numeric(ctx.approval_rate, c.operator, c.value)


Evaluator = Callable[[Condition, SuggestionRecord, EvaluationContext], bool]

EVALUATORS: Dict[str, Evaluator] = {
    ConditionType.CONFIDENCE_THRESHOLD.value: _confidence,
    ConditionType.AGENT_TYPE.value: _agent_type,
    ConditionType.SUGGESTION_TYPE.value: _suggestion_type,
    ConditionType.TIME_BASED.value: _time_based,
    ConditionType.APPROVAL_HISTORY.value: _approval_history,
}


def evaluate_condition(
    condition: Condition,
    suggestion: SuggestionRecord,
    context: Optional[EvaluationContext] = None,
) -> bool:
    """Evaluate one condition; unknown types evaluate to ``False``."""
    evaluator = EVALUATORS.get(condition.type)
    if evaluator is None:
        logger.warning("[WORKFLOW] Unknown condition type %r", condition.type)
        return False
    return evaluator(condition, suggestion, context or EvaluationContext())


def evaluate_conditions(
    conditions: Sequence[Condition],
    suggestion: SuggestionRecord,
    context: Optional[EvaluationContext] = None,
) -> bool:
    """Logical AND over *conditions* (an empty list matches everything)."""
    context = context or EvaluationContext()
    results = [evaluate_condition(c, suggestion, context) for c in conditions]
    return all(results)
