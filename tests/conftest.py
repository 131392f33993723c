"""Shared fixtures for the Content Co-Pilot test suite."""

import copy
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

from copilot.agents.registry import reset_registry
from copilot.config import reset_settings
from copilot.database import reset_db
from copilot.exceptions import DatabaseError
from copilot.logging import init_logger, reset_logger
from copilot.models import ContentItem, ContentStatus, FeedbackHistory
from copilot.utils import generate_id, utc_now


# ---------------------------------------------------------------------------
# Ensure we don't hit real APIs during tests
# ---------------------------------------------------------------------------
@pytest.fixture(autouse=True)
def _block_env_keys(monkeypatch):
    """Clear all API keys and overrides so tests never hit real services."""
    keys = [
        "SUPABASE_URL",
        "SUPABASE_SERVICE_KEY",
        "ANTHROPIC_API_KEY",
        "COPILOT_AI_MODEL",
        "COPILOT_LOG_LEVEL",
        "COPILOT_QUEUE_MAX_CONCURRENT",
        "COPILOT_CONFIDENCE_THRESHOLD",
    ]
    for key in keys:
        monkeypatch.delenv(key, raising=False)


@pytest.fixture(autouse=True)
def _reset_singletons():
    """Forget process-wide settings, registry, logger and db between tests."""
    yield
    reset_settings()
    reset_registry()
    reset_logger()
    reset_db()


# ---------------------------------------------------------------------------
# Common datetime fixtures
# ---------------------------------------------------------------------------
@pytest.fixture
def sample_utc_now():
    """A fixed UTC datetime for deterministic tests."""
    return datetime(2025, 6, 15, 12, 0, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Content items
# ---------------------------------------------------------------------------
@pytest.fixture
def make_item(sample_utc_now):
    """Factory for ``ContentItem`` values aged relative to ``sample_utc_now``."""
    counter = {"n": 0}

    def _make(
        age_days: float = 0,
        views: int = 0,
        title: str = "Post",
        content: str = "",
        status: ContentStatus = ContentStatus.PUBLISHED,
        **extra: Any,
    ) -> ContentItem:
        counter["n"] += 1
        item_id = extra.pop("id", f"item-{counter['n']}")
        return ContentItem(
            id=item_id,
            title=title,
            content=content,
            status=status,
            views=views,
            created_at=sample_utc_now - timedelta(days=age_days),
            **extra,
        )

    return _make


# ---------------------------------------------------------------------------
# Activity logger
# ---------------------------------------------------------------------------
@pytest.fixture
def activity_logger(tmp_path):
    """Process-wide AgentLogger writing into a temporary directory."""
    return init_logger(log_dir=str(tmp_path / "logs"))


# ---------------------------------------------------------------------------
# Mock Supabase client
# ---------------------------------------------------------------------------
@pytest.fixture
def mock_supabase_client():
    """A mock Supabase async client.

    ``client.table(...)`` is synchronous; only ``execute()`` is awaited.
    Set ``client.table_mock.execute.side_effect`` to script responses.
    """
    client = MagicMock()
    # table().select().execute() chain
    table_mock = MagicMock()
    table_mock.select.return_value = table_mock
    table_mock.insert.return_value = table_mock
    table_mock.update.return_value = table_mock
    table_mock.delete.return_value = table_mock
    table_mock.eq.return_value = table_mock
    table_mock.in_.return_value = table_mock
    table_mock.order.return_value = table_mock
    table_mock.limit.return_value = table_mock
    table_mock.execute = AsyncMock(return_value=MagicMock(data=[], count=0))
    client.table.return_value = table_mock
    client.table_mock = table_mock
    return client


# ---------------------------------------------------------------------------
# In-memory store
# ---------------------------------------------------------------------------
class InMemoryStore:
    """Dict-backed stand-in for ``SupabaseDB`` with the same async surface."""

    def __init__(self) -> None:
        self.articles: List[Dict[str, Any]] = []
        self.suggestions: Dict[str, Dict[str, Any]] = {}
        self.rules: Dict[str, Dict[str, Any]] = {}
        self.executions: Dict[str, Dict[str, Any]] = {}
        self.notifications: List[Dict[str, Any]] = []
        self.reviews: List[Dict[str, Any]] = []
        self.tasks: List[Dict[str, Any]] = []
        self.activity_logs: List[Dict[str, Any]] = []
        self.fail_status_updates = False

    # Articles ----------------------------------------------------------
    async def list_items(self, status=None, category=None, limit=200):
        rows = [
            a for a in self.articles
            if (status is None or a.get("status") == status)
            and (category is None or a.get("category") == category)
        ]
        return copy.deepcopy(rows[:limit])

    # Suggestions -------------------------------------------------------
    async def save_suggestion(self, record):
        row = {**copy.deepcopy(record), "id": generate_id(), "created_at": utc_now().isoformat()}
        self.suggestions[row["id"]] = row
        return copy.deepcopy(row)

    async def get_suggestion(self, suggestion_id):
        row = self.suggestions.get(suggestion_id)
        return copy.deepcopy(row) if row else None

    async def update_suggestion_status(self, suggestion_id, status, note=None):
        if self.fail_status_updates:
            raise DatabaseError("store unavailable")
        if suggestion_id not in self.suggestions:
            raise DatabaseError(f"Suggestion {suggestion_id} not found")
        self.suggestions[suggestion_id]["status"] = status
        self.suggestions[suggestion_id]["review_notes"] = note

    async def get_reviewed_suggestions(self, agent_id=None, agent_type=None, target_type=None, limit=500):
        rows = [
            s for s in self.suggestions.values()
            if s.get("status") in ("approved", "rejected", "implemented")
            and (agent_id is None or s.get("agent_id") == agent_id)
            and (agent_type is None or s.get("agent_type") == agent_type)
            and (target_type is None or s.get("target_type") == target_type)
        ]
        return copy.deepcopy(rows[:limit])

    async def get_feedback_stats(self, agent_type=None):
        return FeedbackHistory.from_rows(await self.get_reviewed_suggestions(agent_type=agent_type))

    # Workflow side effects --------------------------------------------
    async def insert_notification(self, notification):
        self.notifications.append(dict(notification))
        return f"notification-{len(self.notifications)}"

    async def insert_review(self, review):
        self.reviews.append(dict(review))
        return f"review-{len(self.reviews)}"

    async def insert_task(self, task):
        self.tasks.append(dict(task))
        return f"task-{len(self.tasks)}"

    # Rules -------------------------------------------------------------
    async def create_rule(self, rule):
        row = copy.deepcopy(rule)
        row.setdefault("id", generate_id())
        self.rules[row["id"]] = row
        return row["id"]

    async def list_rules(self, enabled_only=False):
        rows = [r for r in self.rules.values() if r.get("enabled", True) or not enabled_only]
        return copy.deepcopy(sorted(rows, key=lambda r: r.get("priority", 0), reverse=True))

    async def get_rule(self, rule_id):
        row = self.rules.get(rule_id)
        return copy.deepcopy(row) if row else None

    async def update_rule(self, rule_id, updates):
        if rule_id not in self.rules:
            raise DatabaseError(f"Workflow rule {rule_id} not found")
        self.rules[rule_id].update(copy.deepcopy(updates))

    async def toggle_rule(self, rule_id, enabled):
        await self.update_rule(rule_id, {"enabled": enabled})

    async def delete_rule(self, rule_id):
        return self.rules.pop(rule_id, None) is not None

    async def record_rule_execution(self, rule_id, success):
        if rule_id not in self.rules:
            raise DatabaseError(f"Workflow rule {rule_id} not found")
        row = self.rules[rule_id]
        executions = int(row.get("execution_count") or 0)
        if row.get("success_count") is None:
            row["success_count"] = round(float(row.get("success_rate") or 0) * executions / 100)
        row["execution_count"] = executions + 1
        row["success_count"] = int(row["success_count"]) + (1 if success else 0)
        row["success_rate"] = row["success_count"] / row["execution_count"] * 100
        return {k: row[k] for k in ("execution_count", "success_count", "success_rate")}

    # Executions --------------------------------------------------------
    async def create_execution(self, execution):
        row = copy.deepcopy(execution)
        self.executions[row["id"]] = row
        return row["id"]

    async def update_execution(self, execution_id, updates):
        if execution_id not in self.executions:
            raise DatabaseError(f"Workflow execution {execution_id} not found")
        self.executions[execution_id].update(copy.deepcopy(updates))

    async def list_executions(self, rule_id=None, limit=50):
        rows = [
            e for e in self.executions.values()
            if rule_id is None or e["workflow_rule_id"] == rule_id
        ]
        return copy.deepcopy(rows[:limit])

    # Activity logs -----------------------------------------------------
    async def save_activity_log(self, log_entry):
        self.activity_logs.append(log_entry)
        return f"log-{len(self.activity_logs)}"

    # Helpers -----------------------------------------------------------
    def add_article(self, item: ContentItem) -> None:
        self.articles.append({
            "id": item.id,
            "title": item.title,
            "content": item.content,
            "status": item.status.value,
            "views": item.views,
            "created_at": item.created_at.isoformat(),
            "excerpt": item.excerpt,
            "category": item.category,
            "image_url": item.image_url,
            "slug": item.slug,
        })

    def add_suggestion(self, **row: Any) -> Dict[str, Any]:
        defaults: Dict[str, Any] = {
            "id": generate_id(),
            "target_type": "article",
            "type": "article",
            "suggestion_data": {},
            "reasoning": "test",
            "confidence_score": 0.5,
            "priority": 3,
            "status": "pending",
            "created_at": utc_now().isoformat(),
            "agent_id": "trending",
            "agent_type": "trending-content-agent",
        }
        defaults.update(row)
        self.suggestions[defaults["id"]] = defaults
        return copy.deepcopy(defaults)


@pytest.fixture
def store():
    return InMemoryStore()


def rule_row(
    name: str,
    conditions: Optional[List[Dict[str, Any]]] = None,
    actions: Optional[List[Dict[str, Any]]] = None,
    **extra: Any,
) -> Dict[str, Any]:
    """A ``workflow_rules`` row as the store would return it."""
    row: Dict[str, Any] = {
        "id": extra.pop("id", generate_id()),
        "name": name,
        "conditions": conditions or [],
        "actions": actions or [{"type": "notify_admin", "parameters": {}}],
        "enabled": True,
        "priority": 0,
        "execution_count": 0,
        "success_count": 0,
        "success_rate": 0,
    }
    row.update(extra)
    return row


@pytest.fixture
def make_rule_row():
    return rule_row
