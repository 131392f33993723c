"""
Workflow rule engine.

``WorkflowEngine.evaluate(suggestion)``:

1. Load enabled rules and keep those whose conditions all hold.
2. Run the matching rules one after another, highest ``priority`` first
   (ties broken by name, then id).
3. For each rule: insert an execution as ``pending``, move it to
   ``executing``, run the actions in order, then mark it ``completed`` or
   ``failed`` (with the error message) and bump the rule's counters.

Action and store failures never escape ``evaluate``: they are logged and
kept on the execution record.  Counter updates go through the store's
compare-and-swap ``record_rule_execution`` so concurrent evaluations of the
same rule do not lose increments.

The persistence collaborator must provide: ``list_rules``, ``get_rule``,
``create_rule``, ``update_rule``, ``delete_rule``, ``record_rule_execution``,
``create_execution``, ``update_execution``, ``list_executions``,
``get_suggestion``, ``get_reviewed_suggestions`` plus the action writes
used by ``ActionExecutor``.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from copilot.exceptions import ValidationError, WorkflowActionError
from copilot.models import SuggestionRecord, SuggestionStatus
from copilot.utils import utc_now
from copilot.workflows.actions import ActionExecutor, Implementer
from copilot.workflows.conditions import EvaluationContext, evaluate_conditions
from copilot.workflows.models import (
    ConditionType,
    ExecutionStatus,
    WorkflowExecution,
    WorkflowRule,
)

logger = logging.getLogger("Workflow")


class WorkflowEngine:
    """
    Evaluates suggestions against workflow rules and runs their actions.

    Args:
        db: Persistence collaborator.
        implementer: Optional collaborator used by ``auto_implement``.
        honor_action_delays: Sleep for an action's ``delay_minutes`` before
            running it.  When ``False`` the delay is only recorded.
    """

    def __init__(
        self,
        db: Any,
        implementer: Optional[Implementer] = None,
        honor_action_delays: bool = False,
    ) -> None:
        self.db = db
        self.executor = ActionExecutor(db, implementer)
        self.honor_action_delays = honor_action_delays

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    async def _approval_rate(self, suggestion: SuggestionRecord) -> Optional[float]:
        try:
            rows = await self.db.get_reviewed_suggestions(
                agent_id=suggestion.agent_id, target_type=suggestion.target_type
            )
        except Exception as exc:
            logger.error(
                "[WORKFLOW] Could not load review history for suggestion %s: %s",
                suggestion.id,
                exc,
            )
            return None
        rows = [r for r in rows if r.get("id") != suggestion.id]
        if not rows:
            return None
        approved = sum(
            1 for r in rows
            if r.get("status") in (SuggestionStatus.APPROVED.value, SuggestionStatus.IMPLEMENTED.value)
        )
        return approved / len(rows) * 100

    async def matching_rules(self, suggestion: SuggestionRecord) -> List[WorkflowRule]:
        """Enabled rules whose every condition holds, in execution order."""
        rules = [WorkflowRule.from_row(r) for r in await self.db.list_rules(enabled_only=True)]
        rules = [r for r in rules if r.enabled]

        context = EvaluationContext(now=utc_now())
        needs_history = any(
            c.type == ConditionType.APPROVAL_HISTORY.value
            for rule in rules for c in rule.conditions
        )
        if needs_history:
            context.approval_rate = await self._approval_rate(suggestion)

        matched = [r for r in rules if evaluate_conditions(r.conditions, suggestion, context)]
        matched.sort(key=lambda r: (-r.priority, r.name, r.id))
        return matched

    async def evaluate(self, suggestion: SuggestionRecord) -> List[WorkflowExecution]:
        """
        Run every matching rule against *suggestion*.

        Returns:
            One execution per matching rule (completed or failed).  Empty
            when no rule matched or the rules could not be loaded.
        """
        try:
            rules = await self.matching_rules(suggestion)
        except Exception as exc:
            logger.error(
                "[WORKFLOW] Could not load rules for suggestion %s: %s", suggestion.id, exc
            )
            return []
        if not rules:
            logger.debug("[WORKFLOW] No rules matched suggestion %s", suggestion.id)
            return []

        logger.info(
            "[WORKFLOW] %d rule(s) matched suggestion %s: %s",
            len(rules),
            suggestion.id,
            [r.name for r in rules],
        )
        executions = []
        for rule in rules:
            executions.append(await self.execute_rule(rule, suggestion))
        return executions

    async def evaluate_by_id(self, suggestion_id: str) -> List[WorkflowExecution]:
        row = await self.db.get_suggestion(suggestion_id)
        if row is None:
            raise ValidationError(f"Suggestion {suggestion_id} not found")
        return await self.evaluate(SuggestionRecord.from_row(row))

    async def execute_rule(
        self, rule: WorkflowRule, suggestion: SuggestionRecord
    ) -> WorkflowExecution:
        """Run *rule*'s actions for *suggestion* and record the outcome.

        Store failures never escape: if the execution record cannot be
        written the actions are skipped and the execution is returned as
        failed.  Either way the rule's counters are bumped.
        """
        execution = WorkflowExecution(workflow_rule_id=rule.id, suggestion_id=suggestion.id)
        try:
            execution.id = await self.db.create_execution(execution.to_row())
            await self.db.update_execution(
                execution.id, {"status": ExecutionStatus.EXECUTING.value}
            )
        except Exception as exc:
            logger.error(
                "[WORKFLOW] Could not record execution of rule %s on suggestion %s: %s",
                rule.name,
                suggestion.id,
                exc,
            )
            execution.status = ExecutionStatus.FAILED
            execution.error_message = f"Could not record execution: {exc}"
            execution.completed_at = utc_now()
            await self._record_stats(rule, False)
            return execution
        execution.status = ExecutionStatus.EXECUTING

        results: List[Dict[str, Any]] = []
        try:
            for action in rule.actions:
                if action.delay_minutes:
                    if self.honor_action_delays:
                        await asyncio.sleep(action.delay_minutes * 60)
                    else:
                        results.append({"type": action.type, "deferred_minutes": action.delay_minutes})
                results.append(await self.executor.execute(action, suggestion, execution.id))
        except WorkflowActionError as exc:
            execution.status = ExecutionStatus.FAILED
            execution.error_message = str(exc)
            execution.completed_at = utc_now()
            execution.result = {
                "actions_executed": len([r for r in results if "deferred_minutes" not in r]),
                "actions": results,
            }
            logger.error(
                "[WORKFLOW] Rule %s failed on suggestion %s: %s",
                rule.name,
                suggestion.id,
                exc,
            )
        else:
            execution.status = ExecutionStatus.COMPLETED
            execution.completed_at = utc_now()
            execution.result = {
                "actions_executed": len(rule.actions),
                "actions": results,
            }

        try:
            await self.db.update_execution(execution.id, {
                "status": execution.status.value,
                "completed_at": execution.completed_at.isoformat(),
                "result": execution.result,
                "error_message": execution.error_message,
            })
        except Exception as exc:
            logger.error(
                "[WORKFLOW] Could not save outcome of execution %s (%s): %s",
                execution.id,
                execution.status.value,
                exc,
            )
        await self._record_stats(rule, execution.status is ExecutionStatus.COMPLETED)
        return execution

    async def _record_stats(self, rule: WorkflowRule, success: bool) -> None:
        try:
            row = await self.db.record_rule_execution(rule.id, success)
        except Exception as exc:
            logger.error("[WORKFLOW] Could not update stats for rule %s: %s", rule.name, exc)
            return
        rule.execution_count = int(row["execution_count"])
        rule.success_count = int(row["success_count"])
        logger.debug(
            "[WORKFLOW] Rule %s stats: %d executions, %.1f%% success",
            rule.name,
            rule.execution_count,
            rule.success_rate,
        )

    # ------------------------------------------------------------------
    # Rule management
    # ------------------------------------------------------------------

    async def create_rule(self, rule: WorkflowRule) -> WorkflowRule:
        """Validate and persist a new rule (counters start at zero)."""
        rule.validate()
        rule.execution_count = 0
        rule.success_count = 0
        rule.id = await self.db.create_rule(rule.to_row())
        logger.info("[WORKFLOW] Created rule %s (%s)", rule.name, rule.id)
        return rule

    async def list_rules(self, enabled_only: bool = False) -> List[WorkflowRule]:
        return [WorkflowRule.from_row(r) for r in await self.db.list_rules(enabled_only=enabled_only)]

    async def get_rule(self, rule_id: str) -> Optional[WorkflowRule]:
        row = await self.db.get_rule(rule_id)
        return WorkflowRule.from_row(row) if row else None

    async def update_rule(self, rule_id: str, updates: Dict[str, Any]) -> WorkflowRule:
        """
        Update editable fields of a rule.

        Raises:
            ValidationError: On an attempt to edit counters or an unknown rule.
        """
        protected = {"id", "execution_count", "success_count", "success_rate"} & set(updates)
        if protected:
            raise ValidationError(f"Cannot update rule fields {sorted(protected)}")
        current = await self.get_rule(rule_id)
        if current is None:
            raise ValidationError(f"Rule {rule_id} not found")

        merged = WorkflowRule.from_row({**current.to_row(), **updates})
        merged.validate()
        await self.db.update_rule(rule_id, {
            k: v for k, v in merged.to_row().items() if k in updates
        })
        return merged

    async def toggle_rule(self, rule_id: str, enabled: bool) -> None:
        await self.db.update_rule(rule_id, {"enabled": enabled})
        logger.info("[WORKFLOW] Rule %s %s", rule_id, "enabled" if enabled else "disabled")

    async def delete_rule(self, rule_id: str) -> bool:
        return await self.db.delete_rule(rule_id)

    async def list_executions(
        self, rule_id: Optional[str] = None, limit: int = 50
    ) -> List[WorkflowExecution]:
        rows = await self.db.list_executions(rule_id=rule_id, limit=limit)
        return [WorkflowExecution.from_row(r) for r in rows]
