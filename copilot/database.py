"""
Unified async database client for the Content Co-Pilot.

ALL store operations (articles, suggestions, workflow rules and executions,
admin notifications, reviews and tasks, activity logs) go through the
SupabaseDB class defined here.  Agents never touch the store directly; the
pipeline and the workflow engine receive a ``SupabaseDB`` (or a compatible
fake in tests).

Usage::

    from copilot.database import get_db

    db = await get_db()
    rows = await db.list_items(status="published")
"""

import asyncio
import logging
import os
import threading
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

from supabase import AsyncClient, create_async_client

from copilot.exceptions import ConfigurationError, DatabaseError, ValidationError
from copilot.models import FeedbackHistory
from copilot.utils import utc_now

logger = logging.getLogger(__name__)

# Attempts for compare-and-swap counter updates before giving up
MAX_CAS_ATTEMPTS = 5


# =============================================================================
# VALIDATION HELPERS
# =============================================================================


def validate_not_empty(value: Any, name: str) -> None:
    """Validate that *value* is not ``None`` or a blank string.

    Raises:
        ValidationError: If *value* is ``None`` or a blank string.
    """
    if value is None:
        raise ValidationError(f"{name} cannot be None")
    if isinstance(value, str) and not value.strip():
        raise ValidationError(f"{name} cannot be empty string")


def validate_positive(value: Union[int, float], name: str) -> None:
    """Validate that *value* is strictly positive.

    Raises:
        ValidationError: If *value* is ``None`` or not positive.
    """
    if value is None:
        raise ValidationError(f"{name} cannot be None")
    if value <= 0:
        raise ValidationError(f"{name} must be positive, got {value}")


# =============================================================================
# CONFIGURATION
# =============================================================================


@dataclass
class SupabaseConfig:
    """Supabase connection settings.

    Attributes:
        url: Project URL (``SUPABASE_URL``).
        key: Service-role key (``SUPABASE_SERVICE_KEY``).
    """

    url: str
    key: str

    @classmethod
    def from_env(cls) -> "SupabaseConfig":
        """Read ``SUPABASE_URL`` and ``SUPABASE_SERVICE_KEY``.

        Raises:
            ConfigurationError: If either variable is missing or empty.
        """
        url = os.environ.get("SUPABASE_URL")
        key = os.environ.get("SUPABASE_SERVICE_KEY")

        if not url or not key:
            raise ConfigurationError(
                "SUPABASE_URL and SUPABASE_SERVICE_KEY must be set"
            )

        return cls(url=url, key=key)


# =============================================================================
# SUPABASE DATABASE CLIENT
# =============================================================================


class SupabaseDB:
    """Async store client.

    Use the :meth:`create` factory; the underlying async client needs an
    ``await`` during initialisation.
    """

    def __init__(self, client: AsyncClient) -> None:
        """Private constructor.  Use :meth:`create` factory method."""
        self.client = client

    @classmethod
    async def create(
        cls, config: Optional[SupabaseConfig] = None
    ) -> "SupabaseDB":
        """Create a :class:`SupabaseDB` from *config* or the environment."""
        config = config or SupabaseConfig.from_env()
        client = await create_async_client(config.url, config.key)
        return cls(client)

    async def _insert(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        result = await self.client.table(table).insert(row).execute()
        if not result.data:
            raise DatabaseError(f"Insert into {table} succeeded but returned no data")
        return result.data[0]

    # -----------------------------------------------------------------
    # ARTICLES
    # -----------------------------------------------------------------

    async def list_items(
        self,
        status: Optional[str] = None,
        category: Optional[str] = None,
        limit: int = 200,
    ) -> List[Dict[str, Any]]:
        """List article rows, newest first.

        Args:
            status: Only rows with this status (e.g. ``"published"``).
            category: Only rows in this category.
            limit: Maximum number of rows (must be > 0).
        """
        validate_positive(limit, "limit")

        query = self.client.table("articles").select("*")
        if status:
            query = query.eq("status", status)
        if category:
            query = query.eq("category", category)

        result = await (
            query.order("created_at", desc=True).limit(limit).execute()
        )
        return result.data or []

    async def get_item(self, item_id: str) -> Optional[Dict[str, Any]]:
        """Get an article row by ID, or ``None``."""
        validate_not_empty(item_id, "item_id")

        result = await (
            self.client.table("articles")
            .select("*")
            .eq("id", item_id)
            .execute()
        )
        return result.data[0] if result.data else None

    # -----------------------------------------------------------------
    # SUGGESTIONS
    # -----------------------------------------------------------------

    async def save_suggestion(self, record: Dict[str, Any]) -> Dict[str, Any]:
        """Insert a suggestion row (as built by ``Suggestion.to_record``).

        Returns:
            The inserted row, including its generated ``id`` and
            ``created_at``.

        Raises:
            ValidationError: On missing required fields.
            DatabaseError: When the insert returns no data.
        """
        if not record:
            raise ValidationError("suggestion cannot be None or empty")
        for key in ("target_type", "suggestion_data", "confidence_score", "priority"):
            if key not in record:
                raise ValidationError(f"suggestion must have '{key}'")

        return await self._insert("ai_suggestions", record)

    async def get_suggestion(self, suggestion_id: str) -> Optional[Dict[str, Any]]:
        validate_not_empty(suggestion_id, "suggestion_id")

        result = await (
            self.client.table("ai_suggestions")
            .select("*")
            .eq("id", suggestion_id)
            .execute()
        )
        return result.data[0] if result.data else None

    async def update_suggestion_status(
        self, suggestion_id: str, status: str, note: Optional[str] = None
    ) -> None:
        """Move a suggestion to *status*, stamping review or implementation fields.

        Raises:
            DatabaseError: If no suggestion row was updated.
        """
        validate_not_empty(suggestion_id, "suggestion_id")
        validate_not_empty(status, "status")

        now = utc_now().isoformat()
        updates: Dict[str, Any] = {"status": status}
        if status == "implemented":
            updates["implemented_at"] = now
            updates["implementation_notes"] = note
        else:
            updates["reviewed_at"] = now
            updates["review_notes"] = note

        result = await (
            self.client.table("ai_suggestions")
            .update(updates)
            .eq("id", suggestion_id)
            .execute()
        )
        if not result.data:
            raise DatabaseError(f"Suggestion {suggestion_id} not found")

    async def get_reviewed_suggestions(
        self,
        agent_id: Optional[str] = None,
        agent_type: Optional[str] = None,
        target_type: Optional[str] = None,
        limit: int = 500,
    ) -> List[Dict[str, Any]]:
        """Suggestions that left ``pending`` (approved, rejected or implemented)."""
        validate_positive(limit, "limit")

        query = (
            self.client.table("ai_suggestions")
            .select("id,status,target_type,agent_id,agent_type")
            .in_("status", ["approved", "rejected", "implemented"])
        )
        if agent_id:
            query = query.eq("agent_id", agent_id)
        if agent_type:
            query = query.eq("agent_type", agent_type)
        if target_type:
            query = query.eq("target_type", target_type)

        result = await query.limit(limit).execute()
        return result.data or []

    async def get_feedback_stats(
        self, agent_type: Optional[str] = None
    ) -> FeedbackHistory:
        """Approval/rejection counts per (target_type, agent_type)."""
        rows = await self.get_reviewed_suggestions(agent_type=agent_type)
        return FeedbackHistory.from_rows(rows)

    # -----------------------------------------------------------------
    # WORKFLOW SIDE EFFECTS
    # -----------------------------------------------------------------

    async def insert_notification(self, notification: Dict[str, Any]) -> str:
        """Insert an admin notification and return its ID."""
        validate_not_empty(notification.get("title"), "notification.title")
        row = await self._insert("admin_notifications", notification)
        return row["id"]

    async def insert_review(self, review: Dict[str, Any]) -> str:
        """Insert a scheduled review and return its ID."""
        validate_not_empty(review.get("suggestion_id"), "review.suggestion_id")
        validate_not_empty(review.get("scheduled_for"), "review.scheduled_for")
        row = await self._insert("scheduled_reviews", review)
        return row["id"]

    async def insert_task(self, task: Dict[str, Any]) -> str:
        """Insert an admin task and return its ID."""
        validate_not_empty(task.get("title"), "task.title")
        row = await self._insert("admin_tasks", task)
        return row["id"]

    # -----------------------------------------------------------------
    # WORKFLOW RULES
    # -----------------------------------------------------------------

    async def create_rule(self, rule: Dict[str, Any]) -> str:
        validate_not_empty(rule.get("name"), "rule.name")
        row = await self._insert("workflow_rules", rule)
        return row["id"]

    async def list_rules(self, enabled_only: bool = False) -> List[Dict[str, Any]]:
        """List rules, highest priority first."""
        query = self.client.table("workflow_rules").select("*")
        if enabled_only:
            query = query.eq("enabled", True)
        result = await query.order("priority", desc=True).execute()
        return result.data or []

    async def get_rule(self, rule_id: str) -> Optional[Dict[str, Any]]:
        validate_not_empty(rule_id, "rule_id")

        result = await (
            self.client.table("workflow_rules")
            .select("*")
            .eq("id", rule_id)
            .execute()
        )
        return result.data[0] if result.data else None

    async def update_rule(self, rule_id: str, updates: Dict[str, Any]) -> None:
        validate_not_empty(rule_id, "rule_id")
        if not updates:
            return

        result = await (
            self.client.table("workflow_rules")
            .update(updates)
            .eq("id", rule_id)
            .execute()
        )
        if not result.data:
            raise DatabaseError(f"Workflow rule {rule_id} not found")

    async def toggle_rule(self, rule_id: str, enabled: bool) -> None:
        await self.update_rule(rule_id, {"enabled": enabled})

    async def delete_rule(self, rule_id: str) -> bool:
        validate_not_empty(rule_id, "rule_id")

        result = await (
            self.client.table("workflow_rules")
            .delete()
            .eq("id", rule_id)
            .execute()
        )
        return bool(result.data)

    async def record_rule_execution(self, rule_id: str, success: bool) -> Dict[str, Any]:
        """Atomically bump a rule's execution (and success) counters.

        Uses a compare-and-swap on ``execution_count`` so concurrent
        executions of the same rule never lose an increment.

        Returns:
            The updated ``{"execution_count", "success_count", "success_rate"}``.

        Raises:
            DatabaseError: If the rule is missing or the swap keeps losing.
        """
        validate_not_empty(rule_id, "rule_id")

        for attempt in range(1, MAX_CAS_ATTEMPTS + 1):
            current = await self.get_rule(rule_id)
            if current is None:
                raise DatabaseError(f"Workflow rule {rule_id} not found")

            executions = int(current.get("execution_count") or 0)
            if current.get("success_count") is not None:
                successes = int(current["success_count"])
            else:
                # Rows written before success_count existed only carry the rate
                successes = round(float(current.get("success_rate") or 0) * executions / 100)
            new_executions = executions + 1
            new_successes = successes + (1 if success else 0)
            counters = {
                "execution_count": new_executions,
                "success_count": new_successes,
                "success_rate": new_successes / new_executions * 100,
            }

            result = await (
                self.client.table("workflow_rules")
                .update(counters)
                .eq("id", rule_id)
                .eq("execution_count", executions)
                .execute()
            )
            # No data means another writer got there first
            if result.data:
                return counters
            logger.debug(
                "[DB] Counter swap lost for rule %s (attempt %d)", rule_id, attempt
            )

        raise DatabaseError(
            f"Could not update counters for rule {rule_id} "
            f"after {MAX_CAS_ATTEMPTS} attempts"
        )

    # -----------------------------------------------------------------
    # WORKFLOW EXECUTIONS
    # -----------------------------------------------------------------

    async def create_execution(self, execution: Dict[str, Any]) -> str:
        validate_not_empty(execution.get("workflow_rule_id"), "execution.workflow_rule_id")
        validate_not_empty(execution.get("suggestion_id"), "execution.suggestion_id")
        row = await self._insert("workflow_executions", execution)
        return row["id"]

    async def update_execution(self, execution_id: str, updates: Dict[str, Any]) -> None:
        validate_not_empty(execution_id, "execution_id")

        result = await (
            self.client.table("workflow_executions")
            .update(updates)
            .eq("id", execution_id)
            .execute()
        )
        if not result.data:
            raise DatabaseError(f"Workflow execution {execution_id} not found")

    async def list_executions(
        self, rule_id: Optional[str] = None, limit: int = 50
    ) -> List[Dict[str, Any]]:
        """Recent executions, newest first."""
        validate_positive(limit, "limit")

        query = self.client.table("workflow_executions").select("*")
        if rule_id:
            query = query.eq("workflow_rule_id", rule_id)
        result = await (
            query.order("started_at", desc=True).limit(limit).execute()
        )
        return result.data or []

    # -----------------------------------------------------------------
    # ACTIVITY LOGS
    # -----------------------------------------------------------------

    async def save_activity_log(self, log_entry: Dict[str, Any]) -> str:
        """Save an activity log entry.

        Args:
            log_entry: Must contain ``timestamp`` and ``level``.

        Raises:
            ValidationError: On missing fields.
            DatabaseError: When the insert returns no data.
        """
        if not log_entry:
            raise ValidationError("log_entry cannot be None or empty")
        if "timestamp" not in log_entry or "level" not in log_entry:
            raise ValidationError("log_entry must have 'timestamp' and 'level'")

        row = await self._insert("activity_logs", log_entry)
        return row["id"]


# =============================================================================
# SINGLETON ACCESSOR
# =============================================================================

_db_instance: Optional[SupabaseDB] = None
_db_lock: Optional[asyncio.Lock] = None

# Guards creation of the async lock itself
_init_lock = threading.Lock()


async def get_db() -> SupabaseDB:
    """Get the process-wide :class:`SupabaseDB`, creating it on first use."""
    global _db_instance, _db_lock

    if _db_lock is None:
        with _init_lock:
            if _db_lock is None:
                _db_lock = asyncio.Lock()

    if _db_instance is None:
        async with _db_lock:
            if _db_instance is None:
                _db_instance = await SupabaseDB.create()

    return _db_instance


def reset_db() -> None:
    """Forget the singleton (tests)."""
    global _db_instance, _db_lock
    _db_instance = None
    _db_lock = None


__all__ = [
    "MAX_CAS_ATTEMPTS",
    "SupabaseConfig",
    "SupabaseDB",
    "get_db",
    "reset_db",
    "validate_not_empty",
    "validate_positive",
]
