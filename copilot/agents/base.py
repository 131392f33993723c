"""
Base agent contract shared by every analysis strategy.

An agent turns an ``AnalysisContext`` into a list of ``Suggestion`` values.
Concrete strategies implement ``_analyze`` and return an ``AnalysisOutcome``
(suggestions plus an optional ``AnalysisError``).  The public ``analyze``
method collapses that outcome into a best-effort list:

1. Pre-filter content by the agent's category / age / length filters.
2. Run the strategy; any collaborator failure becomes an ``AnalysisError``
   on the outcome instead of an exception.
3. Stamp ``agent_id`` / ``agent_type`` on every suggestion.
4. Post-process: priority-weight adjustment, confidence-threshold filter,
   max-suggestions cap ranked by ``confidence * (6 - priority)``.

``ConfigurationError`` is the one failure that is not contained: an agent
that needs an AI model but has none configured is a deployment problem.
"""

from __future__ import annotations

import dataclasses
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from copilot.config import AgentDefaults, get_settings
from copilot.exceptions import AnalysisError, ConfigurationError
from copilot.metrics import calculate_metrics
from copilot.models import (
    AgentConfig,
    AnalysisContext,
    AnalysisMetrics,
    ContentItem,
    ContentLengthFilter,
    EnhancedSuggestion,
    PriorityWeight,
    Suggestion,
)
from copilot.utils import SECONDS_PER_DAY, clamp, utc_now

logger = logging.getLogger("Agent")

# Injected AI-analysis collaborator: prompt in, parsed JSON object out
AIAnalyzer = Callable[[str], Awaitable[Dict[str, Any]]]

PRIORITY_WEIGHT_FACTORS: Dict[PriorityWeight, float] = {
    PriorityWeight.CONSERVATIVE: 0.8,
    PriorityWeight.BALANCED: 1.0,
    PriorityWeight.AGGRESSIVE: 1.2,
}

DEFAULT_MAX_CONTENT_AGE_DAYS = 30.0


@dataclass
class AnalysisOutcome:
    """Result of one strategy run: what was produced, and what went wrong."""

    suggestions: List[Suggestion] = field(default_factory=list)
    error: Optional[AnalysisError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def failed(cls, error: AnalysisError, partial: Optional[List[Suggestion]] = None) -> "AnalysisOutcome":
        return cls(suggestions=list(partial or []), error=error)


class BaseAgent(ABC):
    """
    Abstract analysis strategy.

    Subclasses set ``agent_type`` and implement ``_analyze``.  Strategies
    that call the AI collaborator set ``requires_ai = True`` and use
    ``perform_ai_analysis``.

    Args:
        name: Instance name (unique within a registry).
        config: ``AgentConfig`` or a plain mapping of tunables.
        ai_analyzer: Async ``(prompt) -> dict`` collaborator.
        defaults: Fallback tunables; defaults to ``get_settings().agent_defaults``.
    """

    agent_type: str = "base"
    requires_ai: bool = False

    def __init__(
        self,
        name: str,
        config: Union[AgentConfig, Dict[str, Any], None] = None,
        ai_analyzer: Optional[AIAnalyzer] = None,
        defaults: Optional[AgentDefaults] = None,
    ) -> None:
        self.name = name
        if isinstance(config, AgentConfig):
            self._config = config
        else:
            self._config = AgentConfig.from_dict(config)
        self.ai_analyzer = ai_analyzer
        self.defaults = defaults or get_settings().agent_defaults

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, type={self.agent_type!r})"

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    @property
    def config(self) -> AgentConfig:
        return self._config

    def get_config(self) -> Dict[str, Any]:
        return self._config.to_dict()

    def update_config(self, updates: Dict[str, Any]) -> None:
        """Shallow-merge *updates* over the current config (last write wins)."""
        self._config = self._config.merged(updates)
        logger.debug("[AGENT] %s config updated: %s", self.name, sorted(updates))

    @property
    def confidence_threshold(self) -> float:
        return self._config.get("confidence_threshold", self.defaults.confidence_threshold)

    @property
    def max_suggestions(self) -> int:
        return int(self._config.get("max_suggestions", self.defaults.max_suggestions))

    @property
    def priority_weight(self) -> PriorityWeight:
        return self._config.get(
            "priority_weight", PriorityWeight(self.defaults.priority_weight)
        )

    def should_run_automatically(self) -> bool:
        return self._config.auto_run_enabled

    def run_frequency(self) -> str:
        return self._config.run_frequency or "manual"

    def should_trigger_on_new_content(self) -> bool:
        return self._config.trigger_on_new_content

    def should_trigger_on_view_threshold(self, views: int) -> bool:
        if not self._config.trigger_on_view_threshold:
            return False
        return views >= self._config.get("view_threshold", self.defaults.view_trigger_threshold)

    def is_collaboration_enabled(self) -> bool:
        return self._config.collaboration_enabled

    def collaboration_partners(self) -> List[str]:
        if not self._config.collaboration_partners:
            return []
        return [p.strip() for p in self._config.collaboration_partners.split(",") if p.strip()]

    # ------------------------------------------------------------------
    # Content filtering
    # ------------------------------------------------------------------

    def filter_content(
        self, items: List[ContentItem], now: Optional[datetime] = None
    ) -> List[ContentItem]:
        """Apply category, age window and length filters from the config.

        The age window only applies when ``min_content_age_hours`` or
        ``max_content_age_days`` is configured; an unset maximum then
        defaults to 30 days.
        """
        cfg = self._config
        filtered = list(items)

        if cfg.category_filter:
            allowed = {c.strip().lower() for c in cfg.category_filter.split(",") if c.strip()}
            filtered = [
                i for i in filtered if i.category and i.category.lower() in allowed
            ]

        if cfg.min_content_age_hours is not None or cfg.max_content_age_days is not None:
            now_ts = (now or utc_now()).timestamp()
            min_age = (cfg.min_content_age_hours or 0) * 3600
            max_age = (
                cfg.max_content_age_days
                if cfg.max_content_age_days is not None
                else DEFAULT_MAX_CONTENT_AGE_DAYS
            ) * SECONDS_PER_DAY

            def _age_ok(item: ContentItem) -> bool:
                age = now_ts - item.created_at.timestamp()
                return min_age <= age <= max_age

            filtered = [i for i in filtered if _age_ok(i)]

        length_filter = cfg.content_length_filter
        if length_filter and length_filter is not ContentLengthFilter.ALL:
            def _length_ok(item: ContentItem) -> bool:
                words = item.word_count
                if length_filter is ContentLengthFilter.SHORT:
                    return words < 500
                if length_filter is ContentLengthFilter.MEDIUM:
                    return 500 <= words <= 2000
                return words > 2000

            filtered = [i for i in filtered if _length_ok(i)]

        return filtered

    # ------------------------------------------------------------------
    # Analysis
    # ------------------------------------------------------------------

    @abstractmethod
    async def _analyze(self, context: AnalysisContext) -> AnalysisOutcome:
        """Strategy body. Returns suggestions and an optional error."""

    async def analyze_raw(self, context: AnalysisContext) -> List[Suggestion]:
        """
        Run the strategy and return its suggestions before post-processing.

        Raises:
            ConfigurationError: If the agent is missing required configuration.
        """
        filtered = dataclasses.replace(
            context,
            items=self.filter_content(context.items, context.clock),
            peer_items=context.peers,
        )

        try:
            outcome = await self._analyze(filtered)
        except ConfigurationError:
            raise
        except AnalysisError as exc:
            outcome = AnalysisOutcome.failed(exc)
        except Exception as exc:
            outcome = AnalysisOutcome.failed(AnalysisError(self.name, str(exc), cause=exc))

        if outcome.error is not None:
            logger.error(
                "[AGENT] %s returned %d suggestion(s) after error: %s",
                self.name,
                len(outcome.suggestions),
                outcome.error,
            )

        return [
            dataclasses.replace(s, agent_id=self.name, agent_type=self.agent_type)
            for s in outcome.suggestions
        ]

    async def analyze(self, context: AnalysisContext) -> List[Suggestion]:
        """
        Analyze content and return post-processed suggestions.

        Never raises for collaborator failures (those yield an empty or
        partial list).

        Raises:
            ConfigurationError: If the agent is missing required configuration.
        """
        raw = await self.analyze_raw(context)
        result = self.post_process(raw)
        logger.info(
            "[AGENT] %s produced %d suggestion(s) (%d before filtering)",
            self.name,
            len(result),
            len(raw),
        )
        return result

    def post_process(self, suggestions: List[Suggestion]) -> List[Suggestion]:
        """Adjust confidence by priority weight, filter by threshold, cap."""
        factor = PRIORITY_WEIGHT_FACTORS[self.priority_weight]
        adjusted = [
            s.with_confidence(clamp(s.confidence_score * factor)) if factor != 1.0 else s
            for s in suggestions
        ]

        threshold = self.confidence_threshold
        kept = [s for s in adjusted if s.confidence_score >= threshold]

        limit = self.max_suggestions
        if len(kept) > limit:
            kept = sorted(kept, key=lambda s: s.ranking_score, reverse=True)[:limit]
        return kept

    # ------------------------------------------------------------------
    # Helpers for strategies
    # ------------------------------------------------------------------

    def metrics_for(self, item: ContentItem, context: AnalysisContext) -> AnalysisMetrics:
        return calculate_metrics(item, context.peers, context.clock)

    async def perform_ai_analysis(self, prompt: str) -> Dict[str, Any]:
        """
        Delegate *prompt* to the AI collaborator.

        Raises:
            ConfigurationError: If no model or no collaborator is configured.
            FormatError: If the collaborator's response is not a JSON object.
        """
        if not self._config.ai_model:
            raise ConfigurationError(f"AI model is not configured for agent '{self.name}'")
        if self.ai_analyzer is None:
            raise ConfigurationError(f"No AI analyzer wired into agent '{self.name}'")
        return await self.ai_analyzer(prompt)

    def explain_reasoning(self, suggestion: Suggestion) -> str:
        """Human-readable explanation of *suggestion*."""
        if isinstance(suggestion, EnhancedSuggestion) and suggestion.reasoning_steps:
            return "\n".join(step.render() for step in suggestion.reasoning_steps)
        return suggestion.reasoning
