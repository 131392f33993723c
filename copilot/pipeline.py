"""
Batch execution of agents against the content store.

``ContentPipeline`` is what the composition root drives:

1. Load published articles (and feedback history) from the store.
2. Run agents concurrently, at most ``batch_size`` at a time.  Agents with
   collaboration enabled run in a second wave and see the first wave's
   suggestions as ``CollaborationData``.
3. Persist fresh suggestions and pass each one through the workflow
   engine.

Every agent run is recorded in an ``ExecutionResult`` and in the activity
log.  Results are cached per agent and context.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, List, Optional, Sequence, Union

from copilot.agents.base import BaseAgent
from copilot.agents.cache import AgentResultCache
from copilot.agents.reasoning import EnhancedAgent, suggestion_key
from copilot.agents.registry import Agent, AgentRegistry
from copilot.config import Settings, get_settings
from copilot.exceptions import AnalysisError, ValidationError
from copilot.logging import AgentLogger, ComponentLogger, LogComponent
from copilot.models import (
    AnalysisContext,
    CollaborationData,
    ContentItem,
    Suggestion,
    SuggestionRecord,
)
from copilot.scheduling import ExecutionQueue, QueuedTask, TaskPriority
from copilot.workflows import WorkflowEngine, WorkflowExecution

logger = logging.getLogger("Pipeline")


@dataclass
class ExecutionResult:
    """Outcome of one agent run inside a pipeline pass."""

    agent_name: str
    success: bool
    execution_time: float
    cached: bool = False
    suggestions: List[Suggestion] = field(default_factory=list)
    error: Optional[str] = None
    records: List[SuggestionRecord] = field(default_factory=list)
    executions: List[WorkflowExecution] = field(default_factory=list)

    @property
    def suggestion_count(self) -> int:
        return len(self.suggestions)


def _unwrap(agent: Agent) -> BaseAgent:
    return agent.agent if isinstance(agent, EnhancedAgent) else agent


class ContentPipeline:
    """
    Runs registered agents over store content and feeds the workflow engine.

    Args:
        db: Persistence collaborator (``SupabaseDB`` or compatible).
        registry: Source of agents.
        engine: Workflow engine; ``None`` skips rule evaluation.
        cache: Result cache; built from settings when omitted.
        settings: Defaults to ``get_settings()``.
        activity_logger: Activity log; defaults to the process-wide one.
    """

    def __init__(
        self,
        db: Any,
        registry: AgentRegistry,
        engine: Optional[WorkflowEngine] = None,
        cache: Optional[AgentResultCache] = None,
        settings: Optional[Settings] = None,
        activity_logger: Optional[AgentLogger] = None,
    ) -> None:
        self.db = db
        self.registry = registry
        self.engine = engine
        self.settings = settings or get_settings()
        self.cache = cache or AgentResultCache(
            ttl_seconds=self.settings.cache_ttl_minutes * 60,
            max_entries=self.settings.cache_max_entries,
        )
        self.batch_size = self.settings.queue.max_concurrent
        self.activity = ComponentLogger(LogComponent.PIPELINE, activity_logger)

    # ------------------------------------------------------------------
    # Context
    # ------------------------------------------------------------------

    async def load_context(
        self,
        status: Optional[str] = "published",
        category: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> AnalysisContext:
        """Build an ``AnalysisContext`` from store rows and feedback history."""
        rows = await self.db.list_items(status=status, category=category)
        items: List[ContentItem] = []
        for row in rows:
            try:
                items.append(ContentItem.from_row(row))
            except (ValidationError, ValueError, KeyError) as exc:
                logger.warning("[PIPELINE] Skipping malformed article %s: %s", row.get("id"), exc)

        history = await self.db.get_feedback_stats()
        logger.info("[PIPELINE] Loaded %d article(s)", len(items))
        return AnalysisContext(items=items, history=history, now=now)

    # ------------------------------------------------------------------
    # Agent runs
    # ------------------------------------------------------------------

    def triggered_agents(
        self, new_content: bool = False, views: Optional[int] = None
    ) -> List[Agent]:
        """Agents whose config asks to run on new content or a view count."""
        selected = []
        for agent in self.registry.all_agents():
            base = _unwrap(agent)
            if new_content and base.should_trigger_on_new_content():
                selected.append(agent)
            elif views is not None and base.should_trigger_on_view_threshold(views):
                selected.append(agent)
        return selected

    def automatic_agents(self) -> List[Agent]:
        return [a for a in self.registry.all_agents() if _unwrap(a).should_run_automatically()]

    async def run_agent(
        self, agent: Agent, context: AnalysisContext, use_cache: bool = True
    ) -> ExecutionResult:
        """Run one agent, consulting the cache first.  Never raises."""
        shared = []
        if context.collaboration is not None:
            shared = sorted(suggestion_key(s) for s in context.collaboration.shared_suggestions)
        key = self.cache.make_key(
            agent.name, context, {"config": agent.get_config(), "shared": shared}
        )

        if use_cache:
            hit = self.cache.get(key)
            if hit is not None:
                logger.debug("[PIPELINE] Cache hit for %s", agent.name)
                return ExecutionResult(
                    agent_name=agent.name,
                    success=True,
                    execution_time=0.0,
                    cached=True,
                    suggestions=hit,
                )

        started = time.monotonic()
        try:
            async with self.activity.timed(f"Running {agent.name}", agent_name=agent.name):
                suggestions = await agent.analyze(context)
        except Exception as exc:
            logger.error("[PIPELINE] Agent %s failed: %s", agent.name, exc)
            return ExecutionResult(
                agent_name=agent.name,
                success=False,
                execution_time=time.monotonic() - started,
                error=str(exc),
            )

        self.cache.set(key, suggestions)
        return ExecutionResult(
            agent_name=agent.name,
            success=True,
            execution_time=time.monotonic() - started,
            suggestions=suggestions,
        )

    async def _run_wave(
        self, agents: Sequence[Agent], context: AnalysisContext, use_cache: bool
    ) -> List[ExecutionResult]:
        semaphore = asyncio.Semaphore(self.batch_size)

        async def bounded(agent: Agent) -> ExecutionResult:
            async with semaphore:
                return await self.run_agent(agent, context, use_cache)

        return list(await asyncio.gather(*(bounded(a) for a in agents)))

    async def run_agents(
        self,
        agents: Optional[Sequence[Agent]] = None,
        context: Optional[AnalysisContext] = None,
        persist: bool = True,
        use_cache: bool = True,
    ) -> List[ExecutionResult]:
        """
        Run *agents* (default: every registered agent) over *context*.

        Returns:
            One ``ExecutionResult`` per agent, in input order.
        """
        agents = list(agents) if agents is not None else self.registry.all_agents()
        if context is None:
            context = await self.load_context()

        independent = [a for a in agents if not _unwrap(a).is_collaboration_enabled()]
        collaborative = [a for a in agents if _unwrap(a).is_collaboration_enabled()]

        results = await self._run_wave(independent, context, use_cache)
        if collaborative:
            shared = [s for r in results for s in r.suggestions]
            collab_context = AnalysisContext(
                items=context.items,
                peer_items=context.peer_items,
                collaboration=CollaborationData(
                    other_agents=[r.agent_name for r in results],
                    shared_suggestions=shared,
                ),
                history=context.history,
                now=context.now,
            )
            results += await self._run_wave(collaborative, collab_context, use_cache)

        by_name = {r.agent_name: r for r in results}
        ordered = [by_name[a.name] for a in agents]

        if persist:
            for result in ordered:
                if result.success and not result.cached:
                    await self._persist(result)

        succeeded = sum(1 for r in ordered if r.success)
        await self.activity.info(
            f"Pipeline pass finished: {succeeded}/{len(ordered)} agent(s) succeeded",
            data={
                "suggestions": sum(r.suggestion_count for r in ordered),
                "cached": sum(1 for r in ordered if r.cached),
            },
        )
        return ordered

    async def _persist(self, result: ExecutionResult) -> None:
        for suggestion in result.suggestions:
            record = suggestion.to_record()
            try:
                row = await self.db.save_suggestion(record)
            except Exception as exc:
                logger.error(
                    "[PIPELINE] Could not save suggestion from %s: %s", result.agent_name, exc
                )
                result.error = str(exc)
                continue

            saved = SuggestionRecord.from_row({**record, **row})
            result.records.append(saved)
            if self.engine is None:
                continue
            try:
                result.executions += await self.engine.evaluate(saved)
            except Exception as exc:
                logger.error(
                    "[PIPELINE] Workflow evaluation failed for suggestion %s: %s", saved.id, exc
                )
                result.error = str(exc)

    # ------------------------------------------------------------------
    # Queue integration
    # ------------------------------------------------------------------

    def create_queue(self, paused: bool = False) -> ExecutionQueue:
        """An ``ExecutionQueue`` whose tasks run registry agents by name."""
        return ExecutionQueue(self.run_queued_task, self.settings.queue, paused=paused)

    def schedule_agent_run(
        self,
        queue: ExecutionQueue,
        agent_name: str,
        priority: Union[TaskPriority, str] = TaskPriority.MEDIUM,
        scheduled_for: Optional[datetime] = None,
    ) -> QueuedTask:
        return queue.enqueue(
            agent_name, {"agent_name": agent_name}, priority, scheduled_for
        )

    async def run_queued_task(self, task: QueuedTask) -> ExecutionResult:
        """Queue runner: raises on failure so the queue retries."""
        agent = self.registry.get_agent(task.agent_id)
        if agent is None:
            raise AnalysisError(task.agent_id, "agent is not registered")
        result = (await self.run_agents([agent]))[0]
        if not result.success:
            raise AnalysisError(agent.name, result.error or "unknown error")
        return result
