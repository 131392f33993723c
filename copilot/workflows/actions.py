"""
Side-effecting workflow actions.

Every action writes through the persistence collaborator.  Failures are
raised as ``WorkflowActionError`` so the engine can record them on the
execution.
"""

import logging
from datetime import timedelta
from typing import Any, Awaitable, Callable, Dict, Optional

from copilot.exceptions import WorkflowActionError
from copilot.models import SuggestionRecord, SuggestionStatus
from copilot.utils import utc_now
from copilot.workflows.models import Action, ActionType

logger = logging.getLogger("Workflow")

DEFAULT_REVIEW_DELAY_MINUTES = 60

# External "implement suggestion" collaborator
Implementer = Callable[[SuggestionRecord], Awaitable[None]]


class ActionExecutor:
    """
    Runs workflow actions against the store.

    Args:
        db: Persistence collaborator (``SupabaseDB`` or a compatible fake).
        implementer: Optional coroutine that applies a suggestion to the
            site before ``auto_implement`` marks it implemented.
    """

    def __init__(self, db: Any, implementer: Optional[Implementer] = None) -> None:
        self.db = db
        self.implementer = implementer
        self._handlers: Dict[str, Callable[..., Awaitable[Dict[str, Any]]]] = {
            ActionType.AUTO_APPROVE.value: self._auto_approve,
            ActionType.AUTO_IMPLEMENT.value: self._auto_implement,
            ActionType.NOTIFY_ADMIN.value: self._notify_admin,
            ActionType.SCHEDULE_REVIEW.value: self._schedule_review,
            ActionType.CREATE_TASK.value: self._create_task,
        }

    async def execute(
        self, action: Action, suggestion: SuggestionRecord, execution_id: str
    ) -> Dict[str, Any]:
        """
        Run *action* for *suggestion*.

        Returns:
            A small result dict describing what was written.

        Raises:
            WorkflowActionError: If the action type is unknown or the store
                call fails.
        """
        handler = self._handlers.get(action.type)
        if handler is None:
            raise WorkflowActionError(action.type, "unknown action type")
        try:
            result = await handler(action.parameters, suggestion, execution_id)
        except WorkflowActionError:
            raise
        except Exception as exc:
            raise WorkflowActionError(action.type, str(exc)) from exc
        logger.info(
            "[WORKFLOW] Action %s done for suggestion %s", action.type, suggestion.id
        )
        return {"type": action.type, **result}

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    async def _auto_approve(
        self, params: Dict[str, Any], suggestion: SuggestionRecord, execution_id: str
    ) -> Dict[str, Any]:
        if suggestion.status.is_terminal:
            raise WorkflowActionError(
                ActionType.AUTO_APPROVE.value,
                f"suggestion {suggestion.id} is already {suggestion.status.value}",
            )
        await self.db.update_suggestion_status(
            suggestion.id, SuggestionStatus.APPROVED.value, "Auto-approved by workflow"
        )
        suggestion.status = SuggestionStatus.APPROVED
        return {"status": SuggestionStatus.APPROVED.value}

    async def _auto_implement(
        self, params: Dict[str, Any], suggestion: SuggestionRecord, execution_id: str
    ) -> Dict[str, Any]:
        if suggestion.status is SuggestionStatus.REJECTED:
            raise WorkflowActionError(
                ActionType.AUTO_IMPLEMENT.value,
                f"suggestion {suggestion.id} was rejected",
            )
        if self.implementer is not None:
            await self.implementer(suggestion)
        await self.db.update_suggestion_status(
            suggestion.id, SuggestionStatus.IMPLEMENTED.value, "Auto-implemented by workflow"
        )
        suggestion.status = SuggestionStatus.IMPLEMENTED
        return {"status": SuggestionStatus.IMPLEMENTED.value}

    async def _notify_admin(
        self, params: Dict[str, Any], suggestion: SuggestionRecord, execution_id: str
    ) -> Dict[str, Any]:
        title = suggestion.title or "Untitled"
        notification_id = await self.db.insert_notification({
            "type": "workflow_action",
            "title": params.get("title") or "Workflow Action Required",
            "message": params.get("message")
            or f"Suggestion '{title}' requires attention",
            "suggestion_id": suggestion.id,
            "execution_id": execution_id,
        })
        return {"notification_id": notification_id}

    async def _schedule_review(
        self, params: Dict[str, Any], suggestion: SuggestionRecord, execution_id: str
    ) -> Dict[str, Any]:
        delay = params.get("delay_minutes", DEFAULT_REVIEW_DELAY_MINUTES)
        scheduled_for = utc_now() + timedelta(minutes=float(delay))
        review_id = await self.db.insert_review({
            "suggestion_id": suggestion.id,
            "scheduled_for": scheduled_for.isoformat(),
            "review_type": params.get("review_type") or "standard",
        })
        return {"review_id": review_id, "scheduled_for": scheduled_for.isoformat()}

    async def _create_task(
        self, params: Dict[str, Any], suggestion: SuggestionRecord, execution_id: str
    ) -> Dict[str, Any]:
        task_id = await self.db.insert_task({
            "title": params.get("title")
            or f"Review suggestion: {suggestion.title or 'Untitled'}",
            "description": params.get("description") or suggestion.reasoning,
            "priority": params.get("priority") or "medium",
            "related_suggestion_id": suggestion.id,
            "assigned_to": params.get("assigned_to"),
            "due_date": params.get("due_date"),
        })
        return {"task_id": task_id}
