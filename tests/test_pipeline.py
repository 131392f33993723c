"""Tests for copilot.pipeline.

Covers:
- load_context() from store rows (malformed rows skipped, history loaded).
- run_agent() caching and failure containment.
- run_agents() persistence, workflow evaluation and the collaborative wave.
- Trigger selection and queue integration.
"""

from unittest.mock import AsyncMock

import pytest

from copilot.agents import AgentRegistry
from copilot.agents.base import AnalysisOutcome, BaseAgent
from copilot.config import AgentDefaults, QueueSettings, Settings
from copilot.exceptions import AnalysisError, ConfigurationError
from copilot.models import AnalysisContext, ContentStatus, Suggestion
from copilot.pipeline import ContentPipeline, ExecutionResult
from copilot.scheduling import TaskPriority, TaskStatus
from copilot.workflows import WorkflowEngine

HIGH_CONFIDENCE = {"type": "confidence_threshold", "operator": "greater_than", "value": 0.9}
AUTO_APPROVE = {"type": "auto_approve", "parameters": {}}


def _suggestion(confidence=0.95, target_id="main"):
    return Suggestion(
        target_type="hero_section",
        suggestion_data={"article_title": "Hello"},
        reasoning="popular",
        confidence_score=confidence,
        priority=1,
        target_id=target_id,
    )


class StaticAgent(BaseAgent):
    """Returns canned suggestions and remembers every context it saw."""

    agent_type = "static-agent"

    def __init__(self, *args, suggestions=None, **kwargs):
        super().__init__(*args, **kwargs)
        self.suggestions = list(suggestions or [])
        self.contexts = []

    async def _analyze(self, context):
        self.contexts.append(context)
        return AnalysisOutcome(suggestions=self.suggestions)


class MisconfiguredAgent(BaseAgent):
    agent_type = "misconfigured-agent"

    async def _analyze(self, context):
        raise ConfigurationError("no model configured")


@pytest.fixture
def settings():
    return Settings(queue=QueueSettings(max_concurrent=2, max_retries=1, backoff_base_seconds=0.001))


@pytest.fixture
def registry():
    registry = AgentRegistry(ai_analyzer=AsyncMock(), defaults=AgentDefaults())
    registry.register(
        "static-agent",
        lambda name, config, **kw: StaticAgent(name, config, suggestions=[_suggestion()], **kw),
    )
    registry.register("misconfigured-agent", MisconfiguredAgent)
    return registry


@pytest.fixture
def pipeline(store, registry, settings, activity_logger):
    return ContentPipeline(
        store,
        registry,
        engine=WorkflowEngine(store),
        settings=settings,
        activity_logger=activity_logger,
    )


# =============================================================================
# Context loading
# =============================================================================


class TestLoadContext:

    @pytest.mark.asyncio
    async def test_skips_malformed_rows(self, pipeline, store, make_item, sample_utc_now):
        store.add_article(make_item(views=10, id="good"))
        store.articles.append({"title": "no id", "status": "published", "created_at": "2025-01-01"})
        store.articles.append({"id": "bad-date", "status": "published", "created_at": "someday"})

        context = await pipeline.load_context(now=sample_utc_now)

        assert [i.id for i in context.items] == ["good"]
        assert context.now == sample_utc_now

    @pytest.mark.asyncio
    async def test_filters_by_status(self, pipeline, store, make_item):
        store.add_article(make_item(id="draft", status=ContentStatus.DRAFT))
        store.add_article(make_item(id="live"))

        context = await pipeline.load_context()

        assert [i.id for i in context.items] == ["live"]

    @pytest.mark.asyncio
    async def test_loads_feedback_history(self, pipeline, store):
        store.add_suggestion(status="approved")
        store.add_suggestion(status="rejected")
        store.add_suggestion(status="pending")

        context = await pipeline.load_context()

        stats = context.history.stats_for("article", "trending-content-agent")
        assert (stats.approved, stats.rejected) == (1, 1)


# =============================================================================
# Single agent runs
# =============================================================================


class TestRunAgent:

    @pytest.mark.asyncio
    async def test_success(self, pipeline, registry):
        agent = registry.create_agent("hero", "static-agent")
        result = await pipeline.run_agent(agent, AnalysisContext())

        assert isinstance(result, ExecutionResult)
        assert result.success is True
        assert result.cached is False
        assert result.suggestion_count == 1
        assert result.suggestions[0].agent_id == "hero"
        assert result.execution_time >= 0.0

    @pytest.mark.asyncio
    async def test_cache_hit(self, pipeline, registry):
        agent = registry.create_agent("hero", "static-agent")
        context = AnalysisContext()

        await pipeline.run_agent(agent, context)
        second = await pipeline.run_agent(agent, context)

        assert second.cached is True
        assert second.execution_time == 0.0
        assert len(agent.contexts) == 1

    @pytest.mark.asyncio
    async def test_cache_bypass(self, pipeline, registry):
        agent = registry.create_agent("hero", "static-agent")
        context = AnalysisContext()

        await pipeline.run_agent(agent, context)
        second = await pipeline.run_agent(agent, context, use_cache=False)

        assert second.cached is False
        assert len(agent.contexts) == 2

    @pytest.mark.asyncio
    async def test_config_change_misses_cache(self, pipeline, registry):
        agent = registry.create_agent("hero", "static-agent")
        context = AnalysisContext()

        await pipeline.run_agent(agent, context)
        agent.update_config({"max_suggestions": 1})
        second = await pipeline.run_agent(agent, context)

        assert second.cached is False

    @pytest.mark.asyncio
    async def test_failure_recorded(self, pipeline, registry, activity_logger):
        agent = registry.create_agent("broken", "misconfigured-agent")
        result = await pipeline.run_agent(agent, AnalysisContext())

        assert result.success is False
        assert "no model configured" in result.error
        assert activity_logger.get_recent()[-1].message == "Failed: Running broken"


# =============================================================================
# Pipeline passes
# =============================================================================


class TestRunAgents:

    @pytest.mark.asyncio
    async def test_persists_and_evaluates_rules(self, pipeline, registry, store, make_rule_row):
        rule = make_rule_row("approve-confident", [HIGH_CONFIDENCE], [AUTO_APPROVE])
        store.rules[rule["id"]] = rule
        registry.create_agent("hero", "static-agent")

        results = await pipeline.run_agents(context=AnalysisContext())

        assert len(results) == 1
        result = results[0]
        assert len(result.records) == 1
        assert len(result.executions) == 1
        saved = store.suggestions[result.records[0].id]
        assert saved["status"] == "approved"
        assert saved["agent_id"] == "hero"
        assert store.rules[rule["id"]]["execution_count"] == 1

    @pytest.mark.asyncio
    async def test_no_persist(self, pipeline, registry, store):
        registry.create_agent("hero", "static-agent")
        results = await pipeline.run_agents(context=AnalysisContext(), persist=False)
        assert results[0].suggestion_count == 1
        assert store.suggestions == {}

    @pytest.mark.asyncio
    async def test_cached_results_not_persisted_twice(self, pipeline, registry, store):
        registry.create_agent("hero", "static-agent")
        context = AnalysisContext()

        await pipeline.run_agents(context=context)
        second = await pipeline.run_agents(context=context)

        assert second[0].cached is True
        assert len(store.suggestions) == 1

    @pytest.mark.asyncio
    async def test_results_in_input_order(self, pipeline, registry):
        first = registry.create_agent("b-agent", "static-agent", {"collaboration_enabled": True})
        second = registry.create_agent("a-agent", "static-agent")

        results = await pipeline.run_agents([first, second], AnalysisContext(), persist=False)

        assert [r.agent_name for r in results] == ["b-agent", "a-agent"]

    @pytest.mark.asyncio
    async def test_collaborative_agents_see_first_wave(self, pipeline, registry):
        solo = registry.create_agent("solo", "static-agent")
        collab = registry.create_agent(
            "collab", "static-agent", {"collaboration_enabled": True}, enhanced=False
        )

        await pipeline.run_agents(context=AnalysisContext(), persist=False)

        assert solo.contexts[0].collaboration is None
        seen = collab.contexts[0].collaboration
        assert seen.other_agents == ["solo"]
        assert [s.agent_id for s in seen.shared_suggestions] == ["solo"]

    @pytest.mark.asyncio
    async def test_failure_does_not_stop_others(self, pipeline, registry, store):
        registry.create_agent("broken", "misconfigured-agent")
        registry.create_agent("hero", "static-agent")

        results = await pipeline.run_agents(context=AnalysisContext())

        by_name = {r.agent_name: r for r in results}
        assert by_name["broken"].success is False
        assert by_name["hero"].success is True
        assert len(store.suggestions) == 1

    @pytest.mark.asyncio
    async def test_loads_context_when_missing(self, pipeline, registry, store, make_item):
        store.add_article(make_item(id="a1"))
        agent = registry.create_agent("hero", "static-agent")

        await pipeline.run_agents(persist=False)

        assert [i.id for i in agent.contexts[0].items] == ["a1"]

    @pytest.mark.asyncio
    async def test_save_failure_recorded(self, pipeline, registry, store):
        store.save_suggestion = AsyncMock(side_effect=RuntimeError("insert failed"))
        registry.create_agent("hero", "static-agent")

        results = await pipeline.run_agents(context=AnalysisContext())

        assert results[0].success is True
        assert results[0].records == []
        assert results[0].error == "insert failed"

    @pytest.mark.asyncio
    async def test_evaluation_failure_recorded(self, pipeline, registry, store):
        pipeline.engine.evaluate = AsyncMock(side_effect=RuntimeError("rules unavailable"))
        registry.create_agent("hero", "static-agent")
        registry.create_agent("sidekick", "static-agent")

        results = await pipeline.run_agents(context=AnalysisContext())

        assert len(results) == 2
        for result in results:
            assert result.success is True
            assert len(result.records) == 1
            assert result.executions == []
            assert result.error == "rules unavailable"
        assert len(store.suggestions) == 2

    @pytest.mark.asyncio
    async def test_execution_store_failure_does_not_abort_pass(
        self, pipeline, registry, store, make_rule_row
    ):
        rule = make_rule_row("approve-confident", [HIGH_CONFIDENCE], [AUTO_APPROVE])
        store.rules[rule["id"]] = rule
        store.create_execution = AsyncMock(side_effect=RuntimeError("store down"))
        registry.create_agent("hero", "static-agent")

        results = await pipeline.run_agents(context=AnalysisContext())

        assert len(results[0].records) == 1
        assert results[0].executions[0].error_message == "Could not record execution: store down"
        assert store.rules[rule["id"]]["execution_count"] == 1


# =============================================================================
# Trigger selection
# =============================================================================


class TestAgentSelection:

    def test_triggered_agents(self, pipeline, registry):
        registry.create_agent("on-new", "static-agent", {"trigger_on_new_content": True})
        registry.create_agent(
            "on-views", "static-agent", {"trigger_on_view_threshold": True, "view_threshold": 500}
        )
        registry.create_agent("manual", "static-agent")

        assert [a.name for a in pipeline.triggered_agents(new_content=True)] == ["on-new"]
        assert [a.name for a in pipeline.triggered_agents(views=600)] == ["on-views"]
        assert pipeline.triggered_agents(views=100) == []

    def test_automatic_agents(self, pipeline, registry):
        registry.create_agent("auto", "static-agent", {"auto_run_enabled": True})
        registry.create_agent("manual", "static-agent")
        assert [a.name for a in pipeline.automatic_agents()] == ["auto"]


# =============================================================================
# Queue integration
# =============================================================================


class TestQueueIntegration:

    @pytest.mark.asyncio
    async def test_queued_run_completes(self, pipeline, registry, store):
        registry.create_agent("hero", "static-agent")
        queue = pipeline.create_queue()

        task = pipeline.schedule_agent_run(queue, "hero", TaskPriority.HIGH)
        await queue.join()

        assert task.status is TaskStatus.COMPLETED
        assert task.context == {"agent_name": "hero"}
        assert task.result.agent_name == "hero"
        assert len(store.suggestions) == 1

    @pytest.mark.asyncio
    async def test_unknown_agent_fails_after_retries(self, pipeline):
        queue = pipeline.create_queue()

        task = pipeline.schedule_agent_run(queue, "ghost")
        await queue.join()

        assert task.status is TaskStatus.FAILED
        assert task.retry_count == 1
        assert "not registered" in task.error

    @pytest.mark.asyncio
    async def test_run_queued_task_raises_on_agent_failure(self, pipeline, registry):
        registry.create_agent("broken", "misconfigured-agent")
        queue = pipeline.create_queue(paused=True)
        task = pipeline.schedule_agent_run(queue, "broken")

        with pytest.raises(AnalysisError, match="no model configured"):
            await pipeline.run_queued_task(task)
