"""Tests for copilot.agents.reasoning.

Covers:
- enhance(): lifting plain suggestions, lookup-table alternatives and risks.
- Collaboration boost and learning adjustment.
- EnhancedAgent feedback recording and end-to-end decoration.
"""

import pytest

from copilot.agents.base import AnalysisOutcome, BaseAgent
from copilot.agents.reasoning import (
    DEFAULT_ALTERNATIVES,
    HIGH_VOLUME_RISK,
    LOW_CONFIDENCE_RISK,
    EnhancedAgent,
    apply_collaboration_boost,
    apply_learning_adjustment,
    decorate_with_reasoning,
    enhance,
    suggestion_key,
)
from copilot.config import AgentDefaults
from copilot.models import (
    AnalysisContext,
    CollaborationData,
    EnhancedSuggestion,
    FeedbackHistory,
    Rating,
    Suggestion,
    SuggestionStatus,
)


def _suggestion(confidence=0.6, target_type="hero_section", target_id="main", agent_id="me"):
    return Suggestion(
        target_type=target_type,
        suggestion_data={},
        reasoning="base reasoning",
        confidence_score=confidence,
        priority=2,
        target_id=target_id,
        agent_id=agent_id,
    )


def _history(approved, rejected, target_type="hero_section", agent_type="static-agent"):
    history = FeedbackHistory()
    for _ in range(approved):
        history.record(target_type, agent_type, approved=True)
    for _ in range(rejected):
        history.record(target_type, agent_type, approved=False)
    return history


class StaticAgent(BaseAgent):
    agent_type = "static-agent"

    def __init__(self, *args, suggestions=None, **kwargs):
        super().__init__(*args, **kwargs)
        self.suggestions = list(suggestions or [])

    async def _analyze(self, context):
        return AnalysisOutcome(suggestions=self.suggestions)


# =============================================================================
# enhance()
# =============================================================================


class TestEnhance:

    def test_plain_suggestion_lifted(self):
        enhanced = enhance(_suggestion(confidence=0.6), item_count=3)
        assert isinstance(enhanced, EnhancedSuggestion)
        assert enhanced.reasoning_steps[0].evidence == ["base reasoning"]
        assert enhanced.implementation_complexity is Rating.LOW
        assert enhanced.expected_impact is Rating.MEDIUM
        assert LOW_CONFIDENCE_RISK in enhanced.potential_risks

    def test_unknown_target_uses_default_alternatives(self):
        enhanced = enhance(_suggestion(target_type="newsletter"), item_count=1)
        assert enhanced.alternative_approaches == DEFAULT_ALTERNATIVES
        assert enhanced.implementation_complexity is Rating.MEDIUM

    def test_high_volume_risk(self):
        enhanced = enhance(_suggestion(confidence=0.9), item_count=51)
        assert HIGH_VOLUME_RISK in enhanced.potential_risks
        assert LOW_CONFIDENCE_RISK not in enhanced.potential_risks

    def test_enhanced_input_keeps_its_fields(self):
        original = EnhancedSuggestion(
            target_type="strategic_insight",
            suggestion_data={},
            reasoning="r",
            confidence_score=0.9,
            priority=1,
            potential_risks=["custom risk"],
            implementation_complexity=Rating.HIGH,
        )
        enhanced = enhance(original, item_count=1)
        assert enhanced.potential_risks == ["custom risk"]
        assert enhanced.alternative_approaches == DEFAULT_ALTERNATIVES
        assert enhanced is not original


# =============================================================================
# Adjustments
# =============================================================================


class TestCollaborationBoost:

    def _collab(self, *agent_ids, target_id="main"):
        return CollaborationData(
            other_agents=list(agent_ids),
            shared_suggestions=[
                _suggestion(agent_id=a, target_id=target_id) for a in agent_ids
            ],
        )

    def test_no_collaboration(self):
        enhanced = enhance(_suggestion(), 1)
        assert apply_collaboration_boost(enhanced, None) is enhanced

    def test_one_match_adds_step(self):
        enhanced = enhance(_suggestion(confidence=0.6), 1)
        boosted = apply_collaboration_boost(enhanced, self._collab("trending"))
        assert boosted.confidence_score == pytest.approx(0.7)
        assert boosted.reasoning_steps[-1].step == "Cross-agent consensus"
        assert boosted.related_suggestions == ["trending:hero_section:main"]

    def test_boost_capped(self):
        enhanced = enhance(_suggestion(confidence=0.5), 1)
        boosted = apply_collaboration_boost(enhanced, self._collab("a", "b", "c"))
        assert boosted.confidence_score == pytest.approx(0.7)

    def test_own_and_other_targets_ignored(self):
        enhanced = enhance(_suggestion(confidence=0.5), 1)
        collab = CollaborationData(shared_suggestions=[
            _suggestion(agent_id="me"),
            _suggestion(agent_id="other", target_id="featured-1"),
        ])
        assert apply_collaboration_boost(enhanced, collab).confidence_score == 0.5

    def test_partner_restriction(self):
        enhanced = enhance(_suggestion(confidence=0.5), 1)
        boosted = apply_collaboration_boost(
            enhanced, self._collab("trending", "seo"), partners=["trending"]
        )
        assert boosted.confidence_score == pytest.approx(0.6)

    def test_clamped_at_one(self):
        enhanced = enhance(_suggestion(confidence=0.95), 1)
        boosted = apply_collaboration_boost(enhanced, self._collab("a", "b"))
        assert boosted.confidence_score == 1.0


class TestLearningAdjustment:

    def test_high_approval_raises(self):
        enhanced = enhance(_suggestion(confidence=0.6), 1)
        adjusted = apply_learning_adjustment(enhanced, _history(6, 0), "static-agent")
        assert adjusted.confidence_score == pytest.approx(0.7)
        assert adjusted.reasoning_steps[-1].step == "Historical feedback"

    def test_low_approval_lowers(self):
        enhanced = enhance(_suggestion(confidence=0.6), 1)
        adjusted = apply_learning_adjustment(enhanced, _history(1, 5), "static-agent")
        assert adjusted.confidence_score == pytest.approx(0.5)

    def test_middling_approval_unchanged(self):
        enhanced = enhance(_suggestion(confidence=0.6), 1)
        adjusted = apply_learning_adjustment(enhanced, _history(3, 3), "static-agent")
        assert adjusted.confidence_score == 0.6

    def test_needs_more_than_min_observations(self):
        enhanced = enhance(_suggestion(confidence=0.6), 1)
        adjusted = apply_learning_adjustment(enhanced, _history(5, 0), "static-agent")
        assert adjusted.confidence_score == 0.6

    def test_other_agent_type_history_ignored(self):
        enhanced = enhance(_suggestion(confidence=0.6), 1)
        adjusted = apply_learning_adjustment(enhanced, _history(6, 0), "another-agent")
        assert adjusted.confidence_score == 0.6


def test_decorate_does_not_mutate_input():
    original = _suggestion(confidence=0.6)
    context = AnalysisContext(
        collaboration=CollaborationData(shared_suggestions=[_suggestion(agent_id="x")]),
    )
    decorated = decorate_with_reasoning([original], context, agent_type="static-agent")
    assert decorated[0].confidence_score == pytest.approx(0.7)
    assert original.confidence_score == 0.6
    assert not isinstance(original, EnhancedSuggestion)


def test_suggestion_key():
    assert suggestion_key(_suggestion(agent_id=None, target_id=None)) == "unknown:hero_section:-"


# =============================================================================
# EnhancedAgent
# =============================================================================


class TestEnhancedAgent:

    def test_proxies_identity(self):
        agent = EnhancedAgent(StaticAgent("inner", {}, defaults=AgentDefaults()))
        assert agent.name == "inner"
        assert agent.agent_type == "static-agent"

    def test_record_feedback_rejects_pending(self):
        agent = EnhancedAgent(StaticAgent("inner", {}, defaults=AgentDefaults()))
        with pytest.raises(ValueError):
            agent.record_feedback(_suggestion(), SuggestionStatus.PENDING)

    def test_local_feedback_only_with_learning(self):
        silent = EnhancedAgent(StaticAgent("a", {}, defaults=AgentDefaults()))
        learning = EnhancedAgent(
            StaticAgent("b", {"learning_enabled": True}, defaults=AgentDefaults())
        )
        for agent in (silent, learning):
            agent.record_feedback(_suggestion(), SuggestionStatus.APPROVED)

        context = AnalysisContext()
        assert silent.feedback_history(context).stats_for("hero_section", "static-agent").total == 0
        assert learning.feedback_history(context).stats_for("hero_section", "static-agent").total == 1

    def test_feedback_merged_with_context_history(self):
        agent = EnhancedAgent(
            StaticAgent("a", {"learning_enabled": True}, defaults=AgentDefaults())
        )
        agent.record_feedback(_suggestion(), SuggestionStatus.REJECTED)
        context = AnalysisContext(history=_history(2, 0))
        stats = agent.feedback_history(context).stats_for("hero_section", "static-agent")
        assert (stats.approved, stats.rejected) == (2, 1)

    @pytest.mark.asyncio
    async def test_analyze_applies_learning(self):
        inner = StaticAgent(
            "inner",
            {"learning_enabled": True},
            defaults=AgentDefaults(),
            suggestions=[_suggestion(confidence=0.65)],
        )
        agent = EnhancedAgent(inner)
        result = await agent.analyze(AnalysisContext(history=_history(6, 0)))

        assert len(result) == 1
        assert isinstance(result[0], EnhancedSuggestion)
        assert result[0].confidence_score == pytest.approx(0.75)
        assert result[0].agent_id == "inner"

    @pytest.mark.asyncio
    async def test_analyze_boost_only_when_collaboration_enabled(self):
        context = AnalysisContext(
            collaboration=CollaborationData(shared_suggestions=[_suggestion(agent_id="other")]),
        )
        plain = EnhancedAgent(StaticAgent(
            "inner", {}, defaults=AgentDefaults(), suggestions=[_suggestion(confidence=0.65)]
        ))
        collaborative = EnhancedAgent(StaticAgent(
            "inner",
            {"collaboration_enabled": True},
            defaults=AgentDefaults(),
            suggestions=[_suggestion(confidence=0.65)],
        ))

        assert await plain.analyze(context) == []
        boosted = await collaborative.analyze(context)
        assert boosted[0].confidence_score == pytest.approx(0.75)

    def test_explain_reasoning_renders_steps(self):
        agent = EnhancedAgent(StaticAgent("inner", {}, defaults=AgentDefaults()))
        enhanced = enhance(_suggestion(confidence=0.5), 1)
        assert agent.explain_reasoning(enhanced) == "Strategy analysis: base reasoning (confidence: 50%)"
