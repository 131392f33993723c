"""
Trending strategy -- picks hero and featured placements.

Ranks published items by a composite of trending, engagement, freshness
and quality scores.  The top item is proposed for the hero slot, the next
one or two for the featured slots.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Dict, List, Tuple

from copilot.agents.base import AnalysisOutcome, BaseAgent
from copilot.metrics import (
    calculate_metrics,
    calculate_priority,
    composite_score,
    generate_confidence_score,
)
from copilot.models import AnalysisContext, AnalysisMetrics, ContentItem, Suggestion

logger = logging.getLogger("TrendingAgent")

TOP_CANDIDATES = 5
HERO_IMPACT = 0.9
HERO_TTL = timedelta(hours=12)
FEATURED_TTL = timedelta(hours=18)
FEATURED_SLOTS = 2

Ranked = Tuple[ContentItem, AnalysisMetrics, float]


def trending_reasons(metrics: AnalysisMetrics, cluster_size: int) -> List[str]:
    """Short labels explaining why an item looks like it is trending."""
    reasons = []
    if metrics.engagement_score > 0.7:
        reasons.append("High engagement rate")
    if metrics.trending_score > 0.8:
        reasons.append("Significantly above average views")
    if metrics.freshness_score > 0.8:
        reasons.append("Recently published content")
    if cluster_size > 2:
        reasons.append("Part of trending content cluster")
    return reasons


class TrendingContentAgent(BaseAgent):
    """Proposes the hottest published content for prominent placements."""

    agent_type = "trending-content-agent"

    def rank(self, context: AnalysisContext) -> List[Ranked]:
        """Published items above the view floor, best composite score first."""
        min_views = self.config.get("min_views_threshold", self.defaults.min_views_threshold)
        peers = [p for p in context.peers if p.is_published]

        ranked: List[Ranked] = []
        for item in context.items:
            if not item.is_published or item.views < min_views:
                continue
            metrics = calculate_metrics(item, peers or [item], context.clock)
            ranked.append((item, metrics, composite_score(metrics)))

        ranked.sort(key=lambda entry: entry[2], reverse=True)
        return ranked[:TOP_CANDIDATES]

    async def _analyze(self, context: AnalysisContext) -> AnalysisOutcome:
        ranked = self.rank(context)
        if not ranked:
            logger.info("[AGENT] %s found no trending candidates", self.name)
            return AnalysisOutcome()

        now = context.clock
        suggestions: List[Suggestion] = []

        # Hero placement
        top, top_metrics, top_score = ranked[0]
        factors = [
            top_metrics.trending_score,
            top_metrics.engagement_score,
            top_metrics.quality_score,
            0.9 if len(ranked) > 2 else 0.7,
        ]
        confidence = generate_confidence_score(factors)
        reasons = trending_reasons(top_metrics, len(ranked))
        suggestions.append(Suggestion(
            target_type="hero_section",
            target_id="main",
            suggestion_data={
                **self._placement_data(top, top_metrics, "hero"),
                "composite_score": top_score,
                "trending_reasons": reasons,
            },
            reasoning=self._hero_reasoning(top, top_score, reasons, ranked),
            confidence_score=confidence,
            priority=calculate_priority(top_metrics.trending_score, HERO_IMPACT, confidence),
            expires_at=now + HERO_TTL,
        ))

        # Featured placements
        for slot, (item, metrics, _score) in enumerate(ranked[1:1 + FEATURED_SLOTS], start=1):
            confidence = generate_confidence_score([
                metrics.trending_score * 0.8,
                metrics.engagement_score,
                metrics.quality_score,
            ])
            suggestions.append(Suggestion(
                target_type="featured_section",
                target_id=f"featured-{slot}",
                suggestion_data=self._placement_data(item, metrics, f"featured-{slot}"),
                reasoning=(
                    f"Secondary trending article with {item.views} views "
                    "and strong engagement metrics."
                ),
                confidence_score=confidence,
                priority=calculate_priority(0.6, 0.7, confidence),
                expires_at=now + FEATURED_TTL,
            ))

        return AnalysisOutcome(suggestions=suggestions)

    @staticmethod
    def _placement_data(
        item: ContentItem, metrics: AnalysisMetrics, position: str
    ) -> Dict[str, Any]:
        return {
            "article_id": item.id,
            "article_title": item.title,
            "article_slug": item.slug,
            "views": item.views,
            "suggested_position": position,
            "metrics": metrics.as_dict(),
        }

    @staticmethod
    def _hero_reasoning(
        item: ContentItem, score: float, reasons: List[str], ranked: List[Ranked]
    ) -> str:
        if len(ranked) > 1:
            runner_up_views = ranked[1][0].views or 1
            ratio = round(item.views / runner_up_views * 100)
        else:
            ratio = 100
        factors = ", ".join(reasons) if reasons else "composite ranking"
        return (
            f'Article "{item.title}" identified as trending with {item.views} views '
            f"({ratio}% of next article). Key factors: {factors}. "
            f"Composite trending score: {round(score * 100)}%."
        )

    def explain_reasoning(self, suggestion: Suggestion) -> str:
        base = super().explain_reasoning(suggestion)
        if base != suggestion.reasoning:
            return base
        return (
            "Trending analysis ranked this content by view velocity relative to "
            "its peers, engagement, recency and content quality. "
            + suggestion.reasoning
        )
