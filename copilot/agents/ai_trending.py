"""
AI-delegated trending strategy.

Embeds item metadata and metrics in a prompt, hands it to the AI-analysis
collaborator and maps the structured answer into suggestions:

- ``trending_articles[]`` -> hero / featured placements
- ``future_predictions[0]`` -> one ``strategic_insight`` suggestion

Collaborator failures (invalid JSON, transport errors, exhausted retries)
yield an empty outcome with the error attached.  A missing AI model is a
``ConfigurationError`` and propagates.
"""

from __future__ import annotations

import json
import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional

from copilot.agents.base import AnalysisOutcome, BaseAgent
from copilot.exceptions import (
    AnalysisError,
    FormatError,
    RetryExhaustedError,
    TransientCollaboratorError,
)
from copilot.metrics import calculate_metrics, calculate_priority
from copilot.models import (
    AnalysisContext,
    ContentItem,
    EnhancedSuggestion,
    Rating,
    ReasoningStep,
)
from copilot.utils import clamp

logger = logging.getLogger("AITrendingAgent")

ARTICLES_PLACEHOLDER = "{articles_data}"

# Collaborator failures contained at the strategy boundary
COLLABORATOR_ERRORS = (FormatError, TransientCollaboratorError, RetryExhaustedError)

DEFAULT_TRENDING_PROMPT = """\
As an expert data scientist, perform an advanced trend analysis on the provided \
articles. Consider metrics like engagement, freshness, quality, and trending scores. \
Identify up to 3 articles with the highest potential to go viral or become top \
performers. Also, provide one high-level "future_prediction" about content trends \
based on the data.

Return a JSON object with two keys:
1. "trending_articles": An array of objects, each with "article_id", "reasoning" \
(explain why it's trending), "confidence_score" (0-1), and "suggested_action" \
(e.g., "Feature in hero section", "Promote on social media").
2. "future_predictions": An array with a single object containing "prediction_text" \
and "confidence_score".

If no articles are trending and no predictions can be made, return empty arrays \
for both keys.

Article data: {articles_data}"""


def render_prompt(template: str, articles_data: List[Dict[str, Any]]) -> str:
    """Substitute the article payload into *template* (if it has the placeholder)."""
    if ARTICLES_PLACEHOLDER not in template:
        return template
    return template.replace(ARTICLES_PLACEHOLDER, json.dumps(articles_data, indent=2))


def as_confidence(value: Any) -> Optional[float]:
    """Coerce an AI-reported confidence into ``[0, 1]``; ``None`` if unusable."""
    try:
        return clamp(float(value))
    except (TypeError, ValueError):
        return None


def require_list(response: Dict[str, Any], key: str) -> List[Any]:
    value = response.get(key) or []
    if not isinstance(value, list):
        raise FormatError(f"'{key}' must be a list, got {type(value).__name__}")
    return value


class AITrendingAgent(BaseAgent):
    """Asks the AI collaborator which content is trending and what comes next."""

    agent_type = "enhanced-trending-agent"
    requires_ai = True

    def build_prompt(self, items: List[ContentItem], context: AnalysisContext) -> str:
        articles_data = [
            {
                **item.summary(),
                "metrics": calculate_metrics(item, items, context.clock).as_dict(),
            }
            for item in items
        ]
        template = self.config.prompt_template or DEFAULT_TRENDING_PROMPT
        return render_prompt(template, articles_data)

    async def _analyze(self, context: AnalysisContext) -> AnalysisOutcome:
        published = [i for i in context.items if i.is_published]
        if not published:
            return AnalysisOutcome()

        prompt = self.build_prompt(published, context)
        try:
            response = await self.perform_ai_analysis(prompt)
            suggestions = self._map_response(response, published, context)
        except COLLABORATOR_ERRORS as exc:
            return AnalysisOutcome.failed(AnalysisError(self.name, str(exc), cause=exc))

        return AnalysisOutcome(suggestions=suggestions)

    def _map_response(
        self,
        response: Dict[str, Any],
        items: List[ContentItem],
        context: AnalysisContext,
    ) -> List[EnhancedSuggestion]:
        by_id = {item.id: item for item in items}
        now = context.clock
        suggestions: List[EnhancedSuggestion] = []

        for index, info in enumerate(require_list(response, "trending_articles")):
            if not isinstance(info, dict):
                continue
            item = by_id.get(str(info.get("article_id")))
            confidence = as_confidence(info.get("confidence_score"))
            if item is None or confidence is None:
                logger.warning(
                    "[AGENT] %s skipped AI entry with unknown article or confidence: %s",
                    self.name,
                    info.get("article_id"),
                )
                continue

            action = info.get("suggested_action") or "Promote content"
            is_hero = "hero" in action.lower()
            reasoning = info.get("reasoning") or f"AI flagged '{item.title}' as trending."
            suggestions.append(EnhancedSuggestion(
                target_type="hero_section" if is_hero else "featured_section",
                target_id="main" if is_hero else f"featured-{index + 1}",
                suggestion_data={
                    "article_id": item.id,
                    "article_title": item.title,
                    "article_slug": item.slug,
                    "action": action,
                },
                reasoning=reasoning,
                confidence_score=confidence,
                priority=calculate_priority(confidence, 0.95, confidence),
                expires_at=now + timedelta(hours=12),
                reasoning_steps=[ReasoningStep("AI Analysis", [reasoning], confidence)],
                expected_impact=Rating.HIGH if confidence > 0.8 else Rating.MEDIUM,
            ))

        predictions = require_list(response, "future_predictions")
        if predictions and isinstance(predictions[0], dict):
            prediction = predictions[0]
            confidence = as_confidence(prediction.get("confidence_score"))
            text = prediction.get("prediction_text")
            if confidence is not None and text:
                reasoning = (
                    "Based on analysis of current content performance, the AI predicts "
                    f'the following trend: "{text}"'
                )
                suggestions.append(EnhancedSuggestion(
                    target_type="strategic_insight",
                    target_id="content_strategy",
                    suggestion_data={"prediction": text, "confidence": confidence},
                    reasoning=reasoning,
                    confidence_score=confidence,
                    priority=1,
                    expires_at=now + timedelta(days=7),
                    reasoning_steps=[ReasoningStep("AI Trend Prediction", [reasoning], confidence)],
                    alternative_approaches=[
                        "Develop a content series on this topic",
                        "Monitor competitors for related content",
                    ],
                    potential_risks=[
                        "Trend may be short-lived",
                        "Market may be saturated by the time content is produced",
                    ],
                    implementation_complexity=Rating.HIGH,
                    expected_impact=Rating.HIGH,
                ))

        return suggestions

    def explain_reasoning(self, suggestion) -> str:
        model = self.config.ai_model or "default AI"
        subject = (
            "strategic insight" if suggestion.target_type == "strategic_insight" else "suggestion"
        )
        return (
            f"This {subject} was generated by the AI trending agent ({model}). "
            f'AI Reasoning: "{suggestion.reasoning}"'
        )
