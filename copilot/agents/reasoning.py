"""
Reasoning decoration for agent output.

``decorate_with_reasoning`` turns plain suggestions into
``EnhancedSuggestion`` values and applies two confidence adjustments:

1. **Collaboration boost** -- other agents proposing the same
   ``(target_type, target_id)`` raise confidence by
   ``min(cap, step * matches)``.
2. **Learning adjustment** -- with more than ``min_observations`` historical
   reviews for ``(target_type, agent_type)``, an approval rate above 0.8
   adds 0.1 and one below 0.4 subtracts 0.1.

Each adjustment appends a ``ReasoningStep``.  Alternatives and risks come
from fixed lookup tables keyed by ``target_type``.

``EnhancedAgent`` composes the decoration around any ``BaseAgent``.
"""

from __future__ import annotations

import dataclasses
import logging
import threading
from typing import Any, Dict, List, Optional, Sequence

from copilot.agents.base import BaseAgent
from copilot.config import AgentDefaults
from copilot.models import (
    AnalysisContext,
    CollaborationData,
    EnhancedSuggestion,
    FeedbackHistory,
    Rating,
    ReasoningStep,
    Suggestion,
    SuggestionStatus,
)
from copilot.utils import clamp

logger = logging.getLogger("EnhancedAgent")

ALTERNATIVES: Dict[str, List[str]] = {
    "hero_section": [
        "Feature in sidebar instead of hero section",
        "Create dedicated trending section",
        "Add to newsletter highlights",
    ],
    "article": [
        "Schedule for optimal timing",
        "Cross-promote on social media",
        "Create follow-up content series",
    ],
}
DEFAULT_ALTERNATIVES = [
    "Gradual implementation approach",
    "A/B test different variations",
    "Pilot with subset of users",
]

TARGET_RISKS: Dict[str, List[str]] = {
    "hero_section": [
        "May reduce visibility of other important content",
        "High visibility increases scrutiny of content quality",
    ],
    "article": [
        "Changes may affect SEO rankings",
        "User expectations may not align with modifications",
    ],
}
LOW_CONFIDENCE_RISK = "Low confidence may indicate unreliable prediction"
HIGH_VOLUME_RISK = "High content volume may dilute individual article impact"
HIGH_VOLUME_ITEMS = 50

COMPLEXITY_BY_TARGET: Dict[str, Rating] = {
    "hero_section": Rating.LOW,
    "featured_section": Rating.LOW,
    "seo_improvement": Rating.LOW,
    "social_media_post": Rating.LOW,
    "article_improvement": Rating.MEDIUM,
    "article": Rating.MEDIUM,
    "content_strategy": Rating.HIGH,
    "strategic_insight": Rating.HIGH,
}

LEARNING_STEP = 0.1


# ===========================================================================
# LOOKUP TABLES
# ===========================================================================


def alternative_approaches(target_type: str) -> List[str]:
    return list(ALTERNATIVES.get(target_type, DEFAULT_ALTERNATIVES))


def potential_risks(suggestion: Suggestion, item_count: int) -> List[str]:
    risks = []
    if suggestion.confidence_score < 0.7:
        risks.append(LOW_CONFIDENCE_RISK)
    risks.extend(TARGET_RISKS.get(suggestion.target_type, []))
    if item_count > HIGH_VOLUME_ITEMS:
        risks.append(HIGH_VOLUME_RISK)
    return risks


def expected_impact(confidence: float) -> Rating:
    if confidence > 0.8:
        return Rating.HIGH
    if confidence > 0.5:
        return Rating.MEDIUM
    return Rating.LOW


def suggestion_key(suggestion: Suggestion) -> str:
    """Stable label for cross-referencing suggestions between agents."""
    return f"{suggestion.agent_id or 'unknown'}:{suggestion.target_type}:{suggestion.target_id or '-'}"


# ===========================================================================
# DECORATION
# ===========================================================================


def enhance(suggestion: Suggestion, item_count: int) -> EnhancedSuggestion:
    """Lift a plain suggestion into an ``EnhancedSuggestion``.

    Already-enhanced suggestions keep the fields their strategy set; empty
    alternative / risk lists are filled from the lookup tables.
    """
    if isinstance(suggestion, EnhancedSuggestion):
        return dataclasses.replace(
            suggestion,
            reasoning_steps=list(suggestion.reasoning_steps),
            alternative_approaches=(
                list(suggestion.alternative_approaches)
                or alternative_approaches(suggestion.target_type)
            ),
            potential_risks=(
                list(suggestion.potential_risks)
                or potential_risks(suggestion, item_count)
            ),
            related_suggestions=list(suggestion.related_suggestions),
        )

    base = {f.name: getattr(suggestion, f.name) for f in dataclasses.fields(Suggestion)}
    return EnhancedSuggestion(
        **base,
        reasoning_steps=[ReasoningStep(
            "Strategy analysis", [suggestion.reasoning], suggestion.confidence_score
        )],
        alternative_approaches=alternative_approaches(suggestion.target_type),
        potential_risks=potential_risks(suggestion, item_count),
        implementation_complexity=COMPLEXITY_BY_TARGET.get(suggestion.target_type, Rating.MEDIUM),
        expected_impact=expected_impact(suggestion.confidence_score),
    )


def apply_collaboration_boost(
    suggestion: EnhancedSuggestion,
    collaboration: Optional[CollaborationData],
    cap: float = 0.2,
    step: float = 0.1,
    partners: Optional[Sequence[str]] = None,
) -> EnhancedSuggestion:
    """Boost confidence when other agents target the same slot."""
    if collaboration is None:
        return suggestion

    matches = [
        other for other in collaboration.shared_suggestions
        if other.target_type == suggestion.target_type
        and other.target_id == suggestion.target_id
        and other.agent_id != suggestion.agent_id
        and (not partners or other.agent_id in partners)
    ]
    if not matches:
        return suggestion

    boost = min(cap, step * len(matches))
    agents = sorted({m.agent_id or "unknown" for m in matches})
    step_record = ReasoningStep(
        step="Cross-agent consensus",
        evidence=[f"{len(matches)} matching suggestion(s) from {', '.join(agents)}"],
        confidence=clamp(suggestion.confidence_score + boost),
        weight=boost,
    )
    return dataclasses.replace(
        suggestion,
        confidence_score=clamp(suggestion.confidence_score + boost),
        reasoning_steps=[*suggestion.reasoning_steps, step_record],
        related_suggestions=[
            *suggestion.related_suggestions,
            *(suggestion_key(m) for m in matches),
        ],
    )


def apply_learning_adjustment(
    suggestion: EnhancedSuggestion,
    history: Optional[FeedbackHistory],
    agent_type: str,
    min_observations: int = 5,
) -> EnhancedSuggestion:
    """Nudge confidence by the historical approval rate of similar suggestions."""
    if history is None:
        return suggestion

    stats = history.stats_for(suggestion.target_type, agent_type)
    if stats.total <= min_observations:
        return suggestion

    rate = stats.approval_rate
    if rate > 0.8:
        delta = LEARNING_STEP
    elif rate < 0.4:
        delta = -LEARNING_STEP
    else:
        return suggestion

    adjusted = clamp(suggestion.confidence_score + delta)
    step_record = ReasoningStep(
        step="Historical feedback",
        evidence=[
            f"{stats.approved}/{stats.total} similar suggestions approved "
            f"({rate * 100:.0f}%)"
        ],
        confidence=adjusted,
        weight=abs(delta),
    )
    return dataclasses.replace(
        suggestion,
        confidence_score=adjusted,
        reasoning_steps=[*suggestion.reasoning_steps, step_record],
    )


def decorate_with_reasoning(
    suggestions: Sequence[Suggestion],
    context: AnalysisContext,
    agent_type: str,
    defaults: Optional[AgentDefaults] = None,
    history: Optional[FeedbackHistory] = None,
    collaborate: bool = True,
    partners: Optional[Sequence[str]] = None,
) -> List[EnhancedSuggestion]:
    """
    Enhance *suggestions* and apply collaboration and learning adjustments.

    Args:
        suggestions: Raw strategy output (plain or enhanced).
        context: The analysis context (collaboration data, history, items).
        agent_type: Registered type of the producing agent.
        defaults: Boost cap/step and learning threshold.
        history: Feedback history; defaults to ``context.history``.
        collaborate: Apply the collaboration boost.
        partners: Restrict the boost to these agent names.

    Returns:
        New ``EnhancedSuggestion`` values; inputs are not mutated.
    """
    defaults = defaults or AgentDefaults()
    history = history if history is not None else context.history
    item_count = len(context.items)

    decorated = []
    for suggestion in suggestions:
        enhanced = enhance(suggestion, item_count)
        if collaborate:
            enhanced = apply_collaboration_boost(
                enhanced,
                context.collaboration,
                cap=defaults.collaboration_boost_cap,
                step=defaults.collaboration_boost_step,
                partners=partners,
            )
        enhanced = apply_learning_adjustment(
            enhanced, history, agent_type, defaults.learning_min_observations
        )
        decorated.append(enhanced)
    return decorated


# ===========================================================================
# ENHANCED AGENT
# ===========================================================================


class EnhancedAgent:
    """
    Wraps a ``BaseAgent`` with reasoning decoration and feedback learning.

    The wrapper exposes the same ``analyze`` / ``explain_reasoning`` /
    ``update_config`` surface as the agent it wraps.  Feedback recorded via
    ``record_feedback`` is merged with ``context.history`` when the wrapped
    agent has ``learning_enabled``.
    """

    def __init__(self, agent: BaseAgent) -> None:
        self.agent = agent
        self._feedback = FeedbackHistory()
        self._feedback_lock = threading.Lock()

    @property
    def name(self) -> str:
        return self.agent.name

    @property
    def agent_type(self) -> str:
        return self.agent.agent_type

    @property
    def config(self):
        return self.agent.config

    def get_config(self) -> Dict[str, Any]:
        return self.agent.get_config()

    def update_config(self, updates: Dict[str, Any]) -> None:
        self.agent.update_config(updates)

    def __repr__(self) -> str:
        return f"EnhancedAgent({self.agent!r})"

    def record_feedback(self, suggestion: Suggestion, outcome: SuggestionStatus) -> None:
        """Remember a review outcome (approved / rejected) for learning."""
        if outcome not in (SuggestionStatus.APPROVED, SuggestionStatus.REJECTED):
            raise ValueError(f"Feedback outcome must be approved or rejected, got {outcome}")
        with self._feedback_lock:
            self._feedback.record(
                suggestion.target_type,
                self.agent_type,
                outcome is SuggestionStatus.APPROVED,
            )

    def feedback_history(self, context: AnalysisContext) -> FeedbackHistory:
        """Context history merged with locally recorded feedback."""
        merged = FeedbackHistory()
        sources = [context.history] if context.history else []
        if self.agent.config.learning_enabled:
            sources.append(self._feedback)
        with self._feedback_lock:
            for source in sources:
                for key, stats in source.stats.items():
                    entry = merged.stats.setdefault(key, type(stats)())
                    entry.approved += stats.approved
                    entry.rejected += stats.rejected
        return merged

    async def analyze(self, context: AnalysisContext) -> List[Suggestion]:
        raw = await self.agent.analyze_raw(context)
        decorated = decorate_with_reasoning(
            raw,
            context,
            agent_type=self.agent_type,
            defaults=self.agent.defaults,
            history=self.feedback_history(context),
            collaborate=self.agent.is_collaboration_enabled(),
            partners=self.agent.collaboration_partners() or None,
        )
        result = self.agent.post_process(decorated)
        logger.info(
            "[AGENT] %s produced %d enhanced suggestion(s)", self.name, len(result)
        )
        return result

    def explain_reasoning(self, suggestion: Suggestion) -> str:
        if isinstance(suggestion, EnhancedSuggestion) and suggestion.reasoning_steps:
            return "\n".join(step.render() for step in suggestion.reasoning_steps)
        return self.agent.explain_reasoning(suggestion)
