"""
Metric calculators shared by every agent strategy.

All functions are pure: they read a ``ContentItem`` (and, for relative
metrics, its peer collection) and return a score in ``[0, 1]``.  Nothing
here is persisted.

Provides:
    - engagement_score / freshness_score / quality_score / trending_score /
      seo_score: the five base metrics
    - calculate_metrics(): all five bundled as ``AnalysisMetrics``
    - composite_score(): trending-weighted ranking score
    - overall_score(): balanced portfolio health score
    - generate_confidence_score(): position-weighted factor aggregation
    - calculate_priority(): urgency x impact x confidence bucketed to 1..5
"""

import math
from datetime import datetime
from typing import Dict, Optional, Sequence

from copilot.models import AnalysisMetrics, ContentItem
from copilot.utils import age_in_days, clamp

# Views per day that saturate the engagement score
ENGAGEMENT_VIEWS_PER_DAY = 100.0

# Days for freshness to decay by a factor of e
FRESHNESS_DECAY_DAYS = 30.0

COMPOSITE_WEIGHTS: Dict[str, float] = {
    "trending_score": 0.4,
    "engagement_score": 0.3,
    "freshness_score": 0.2,
    "quality_score": 0.1,
}

OVERALL_WEIGHTS: Dict[str, float] = {
    "engagement_score": 0.25,
    "freshness_score": 0.20,
    "quality_score": 0.25,
    "trending_score": 0.15,
    "seo_score": 0.15,
}

# (score threshold, priority) checked top-down
PRIORITY_BUCKETS = ((0.8, 1), (0.6, 2), (0.4, 3), (0.2, 4))


# ===========================================================================
# BASE METRICS
# ===========================================================================


def engagement_score(item: ContentItem, now: Optional[datetime] = None) -> float:
    """Views per whole day since creation, normalised by 100 views/day.

    Items younger than one day count their total views.
    """
    days = math.floor(age_in_days(item.created_at, now))
    views_per_day = item.views / days if days > 0 else float(item.views)
    return clamp(views_per_day / ENGAGEMENT_VIEWS_PER_DAY)


def freshness_score(item: ContentItem, now: Optional[datetime] = None) -> float:
    """Exponential decay ``exp(-age_days / 30)``; 1.0 at creation."""
    return clamp(math.exp(-age_in_days(item.created_at, now) / FRESHNESS_DECAY_DAYS))


def quality_score(item: ContentItem) -> float:
    """Additive completeness heuristic starting from 0.2."""
    score = 0.2

    content_length = len(item.content or "")
    if content_length > 2000:
        score += 0.3
    elif content_length > 1000:
        score += 0.2
    elif content_length > 500:
        score += 0.1

    if item.excerpt and len(item.excerpt) > 100:
        score += 0.2
    if item.image_url:
        score += 0.15
    if item.category:
        score += 0.1

    if 30 <= len(item.title or "") <= 60:
        score += 0.05

    return clamp(score)


def trending_score(item: ContentItem, peers: Sequence[ContentItem]) -> float:
    """Views relative to the peer average, halved (2x average saturates)."""
    if not peers:
        return 0.0
    avg_views = sum(p.views for p in peers) / len(peers)
    if avg_views <= 0:
        return 0.0
    return clamp((item.views / avg_views) / 2)


def seo_score(item: ContentItem) -> float:
    """Additive on-page SEO heuristic starting from 0.1."""
    score = 0.1

    if 30 <= len(item.title or "") <= 60:
        score += 0.3
    if item.excerpt and 120 <= len(item.excerpt) <= 160:
        score += 0.3
    if item.content and len(item.content) > 800:
        score += 0.2
    if item.image_url:
        score += 0.1

    return clamp(score)


def calculate_metrics(
    item: ContentItem,
    peers: Sequence[ContentItem],
    now: Optional[datetime] = None,
) -> AnalysisMetrics:
    """Compute all five base metrics for *item* against *peers*."""
    return AnalysisMetrics(
        engagement_score=engagement_score(item, now),
        freshness_score=freshness_score(item, now),
        quality_score=quality_score(item),
        trending_score=trending_score(item, peers),
        seo_score=seo_score(item),
    )


# ===========================================================================
# COMBINED SCORES
# ===========================================================================


def _weighted(metrics: AnalysisMetrics, weights: Dict[str, float]) -> float:
    values = metrics.as_dict()
    return sum(values[name] * weight for name, weight in weights.items())


def composite_score(metrics: AnalysisMetrics) -> float:
    """Ranking score used by the trending strategy."""
    return _weighted(metrics, COMPOSITE_WEIGHTS)


def overall_score(metrics: AnalysisMetrics) -> float:
    """Balanced health score used by the gap-detection strategy."""
    return _weighted(metrics, OVERALL_WEIGHTS)


def generate_confidence_score(factors: Sequence[float]) -> float:
    """
    Aggregate contributing factors into a confidence value.

    Factor ``i`` is weighted by ``1 / (i + 1)`` so earlier factors dominate.

    Args:
        factors: Ordered factor values, most important first.

    Returns:
        Weighted mean clamped to ``[0, 1]``; ``0.0`` for no factors.
    """
    if not factors:
        return 0.0
    weights = [1.0 / (i + 1) for i in range(len(factors))]
    weighted_sum = sum(f * w for f, w in zip(factors, weights))
    return clamp(weighted_sum / sum(weights))


def calculate_priority(urgency: float, impact: float, confidence: float = 1.0) -> int:
    """Bucket ``urgency * impact * confidence`` into priority 1 (critical) .. 5."""
    score = urgency * impact * confidence
    for threshold, priority in PRIORITY_BUCKETS:
        if score >= threshold:
            return priority
    return 5
