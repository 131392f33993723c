"""
Gap-detection strategy -- finds ageing, under-performing content.

An item is flagged when it is older than ``freshness_threshold_days`` and
its balanced overall score falls under ``quality_threshold``.  Each flagged
item gets an ``article`` suggestion describing its gaps and an improvement
plan.  When more than 30% of the portfolio is stale (over 180 days) one
extra ``content_strategy`` suggestion proposes a refresh campaign.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from copilot.agents.base import AnalysisOutcome, BaseAgent
from copilot.metrics import (
    calculate_metrics,
    calculate_priority,
    engagement_score,
    generate_confidence_score,
    overall_score,
    quality_score,
)
from copilot.models import AnalysisContext, AnalysisMetrics, ContentItem, Suggestion
from copilot.utils import age_in_days, clamp

logger = logging.getLogger("ContentGapAgent")

STALE_AGE_DAYS = 180
STALE_PORTFOLIO_SHARE = 0.3
MAX_ARTICLE_SUGGESTIONS = 4


@dataclass
class GapAssessment:
    """Per-item gap findings."""

    identified_gaps: List[str] = field(default_factory=list)
    improvement_plan: List[str] = field(default_factory=list)
    priority_actions: List[str] = field(default_factory=list)
    competitive_insights: List[str] = field(default_factory=list)
    urgency_score: float = 0.0
    impact_score: float = 0.0

    @property
    def total_gap_score(self) -> float:
        return (self.urgency_score + self.impact_score) / 2

    @property
    def estimated_impact(self) -> str:
        if self.total_gap_score > 0.7:
            return "High - Significant improvement potential"
        if self.total_gap_score > 0.5:
            return "Medium - Moderate improvement expected"
        return "Low - Minor improvements"


def assess_gaps(
    age_days: float, metrics: AnalysisMetrics, portfolio_avg_quality: float
) -> GapAssessment:
    """Score urgency and impact of the gaps found on one item."""
    gaps = GapAssessment()

    if age_days > STALE_AGE_DAYS:
        gaps.identified_gaps.append("Content freshness (6+ months old)")
        gaps.improvement_plan.append("Update with recent information and data")
        gaps.priority_actions.append("Content refresh")
        gaps.urgency_score += 0.3
        gaps.impact_score += 0.2

    if metrics.quality_score < 0.6:
        gaps.identified_gaps.append("Content quality below threshold")
        gaps.improvement_plan.append("Enhance content structure and depth")
        gaps.priority_actions.append("Quality improvement")
        gaps.urgency_score += 0.2
        gaps.impact_score += 0.4

    if metrics.seo_score < 0.5:
        gaps.identified_gaps.append("SEO optimization opportunities")
        gaps.improvement_plan.append("Optimize meta descriptions, headers, and keywords")
        gaps.priority_actions.append("SEO enhancement")
        gaps.urgency_score += 0.2
        gaps.impact_score += 0.3

    if metrics.engagement_score < 0.3:
        gaps.identified_gaps.append("Low engagement metrics")
        gaps.improvement_plan.append("Add interactive elements and improve readability")
        gaps.priority_actions.append("Engagement boost")
        gaps.urgency_score += 0.1
        gaps.impact_score += 0.3

    if metrics.quality_score < portfolio_avg_quality * 0.8:
        gaps.competitive_insights.append("Below portfolio average quality")
        gaps.impact_score += 0.1

    gaps.urgency_score = clamp(gaps.urgency_score)
    gaps.impact_score = clamp(gaps.impact_score)
    return gaps


class ContentGapAgent(BaseAgent):
    """Flags stale, low-scoring content and portfolio-wide freshness gaps."""

    agent_type = "content-gap-agent"

    async def _analyze(self, context: AnalysisContext) -> AnalysisOutcome:
        now = context.clock
        published = [i for i in context.items if i.is_published]
        if not published:
            return AnalysisOutcome()

        freshness_days = self.config.get(
            "freshness_threshold_days", self.defaults.freshness_threshold_days
        )
        quality_threshold = self.config.get(
            "quality_threshold", self.defaults.quality_threshold
        )
        avg_quality = sum(quality_score(i) for i in published) / len(published)
        avg_engagement = sum(engagement_score(i, now) for i in published) / len(published)

        flagged = []
        for item in published:
            age = age_in_days(item.created_at, now)
            metrics = calculate_metrics(item, published, now)
            overall = overall_score(metrics)
            if age <= freshness_days or overall >= quality_threshold:
                continue
            gaps = assess_gaps(age, metrics, avg_quality)
            flagged.append((item, age, metrics, overall, gaps))

        flagged.sort(key=lambda entry: (-entry[4].total_gap_score, entry[3]))
        logger.info(
            "[AGENT] %s flagged %d of %d published item(s)",
            self.name,
            len(flagged),
            len(published),
        )

        suggestions: List[Suggestion] = []
        for item, age, metrics, overall, gaps in flagged[:MAX_ARTICLE_SUGGESTIONS]:
            competitive_need = clamp(
                (max(0.0, avg_quality - metrics.quality_score)
                 + max(0.0, avg_engagement - metrics.engagement_score)) / 2
            )
            confidence = generate_confidence_score([
                1 - overall,
                gaps.urgency_score,
                gaps.impact_score,
                competitive_need,
            ])
            suggestions.append(Suggestion(
                target_type="article",
                target_id=item.id,
                suggestion_data={
                    "issue_type": "content_optimization",
                    "article_title": item.title,
                    "gaps_identified": gaps.identified_gaps,
                    "current_metrics": metrics.as_dict(),
                    "overall_score": overall,
                    "improvement_plan": gaps.improvement_plan,
                    "competitive_analysis": gaps.competitive_insights,
                    "estimated_impact": gaps.estimated_impact,
                    "priority_actions": gaps.priority_actions,
                },
                reasoning=self._reasoning(item, age, metrics, gaps),
                confidence_score=confidence,
                priority=calculate_priority(gaps.urgency_score, gaps.impact_score, confidence),
            ))

        strategic = self._strategic_suggestion(published, now)
        if strategic is not None:
            suggestions.append(strategic)

        return AnalysisOutcome(suggestions=suggestions)

    def _strategic_suggestion(
        self, published: List[ContentItem], now: datetime
    ) -> Optional[Suggestion]:
        stale = [i for i in published if age_in_days(i.created_at, now) > STALE_AGE_DAYS]
        if len(stale) <= len(published) * STALE_PORTFOLIO_SHARE:
            return None

        share = round(len(stale) / len(published) * 100)
        return Suggestion(
            target_type="content_strategy",
            target_id="freshness_initiative",
            suggestion_data={
                "issue_type": "portfolio_freshness",
                "stale_content_count": len(stale),
                "stale_article_ids": [i.id for i in stale],
                "freshness_distribution": self._freshness_buckets(published, now),
                "content_distribution": self._category_distribution(published),
                "recommended_action": "content_refresh_campaign",
                "estimated_effort": "Medium",
                "priority_level": "High",
            },
            reasoning=(
                f"{len(stale)} articles ({share}%) are over 6 months old and may need "
                "refreshing to maintain relevance and SEO performance."
            ),
            confidence_score=0.8,
            priority=2,
        )

    @staticmethod
    def _freshness_buckets(items: List[ContentItem], now: datetime) -> Dict[str, int]:
        buckets = {"fresh": 0, "recent": 0, "aging": 0, "stale": 0}
        for item in items:
            age = age_in_days(item.created_at, now)
            if age < 30:
                buckets["fresh"] += 1
            elif age < 90:
                buckets["recent"] += 1
            elif age < STALE_AGE_DAYS:
                buckets["aging"] += 1
            else:
                buckets["stale"] += 1
        return buckets

    @staticmethod
    def _category_distribution(items: List[ContentItem]) -> List[Dict[str, Any]]:
        counts = Counter(i.category or "Uncategorized" for i in items)
        return [
            {
                "category": category,
                "count": count,
                "percentage": round(count / len(items) * 100),
            }
            for category, count in counts.most_common()
        ]

    @staticmethod
    def _reasoning(
        item: ContentItem, age: float, metrics: AnalysisMetrics, gaps: GapAssessment
    ) -> str:
        issues = ", ".join(gaps.identified_gaps[:3]) or "below-target overall score"
        return (
            f'Article "{item.title}" ({int(age)} days old) shows '
            f"{round(gaps.total_gap_score * 100)}% improvement potential. "
            f"Key issues: {issues}. Current quality score: "
            f"{round(metrics.quality_score * 100)}%. {gaps.estimated_impact} "
            "expected from implementing suggested improvements."
        )
