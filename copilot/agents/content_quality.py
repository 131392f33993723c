"""AI-delegated content quality review: flags weak articles with concrete fixes."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import List, Optional

from copilot.agents.ai_trending import COLLABORATOR_ERRORS, render_prompt, require_list
from copilot.agents.base import AnalysisOutcome, BaseAgent
from copilot.exceptions import AnalysisError
from copilot.models import AnalysisContext, EnhancedSuggestion, Rating, ReasoningStep
from copilot.utils import clamp

logger = logging.getLogger("ContentQualityAgent")

CONTENT_PREVIEW_CHARS = 1000
# Articles scoring at or above this are left alone
QUALITY_PASS_SCORE = 70

DEFAULT_QUALITY_PROMPT = """\
Analyze the provided articles for content quality based on clarity, depth, and \
engagement potential. For each article, provide a quality score (0-100) and \
specific, actionable suggestions for improvement.

Return a JSON object with a key "quality_analysis", containing an array of objects. \
Each object must include "article_id", "quality_score" (number), "reasoning" \
(string), and an array of "suggestions" (strings).

Article data: {articles_data}"""


def _score(value) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class ContentQualityAgent(BaseAgent):
    """Asks the AI collaborator to score articles and improve the weak ones.

    Only articles scoring below ``QUALITY_PASS_SCORE`` with at least one
    concrete suggestion produce an ``article_improvement``; the lower the
    score, the higher the confidence.
    """

    agent_type = "content-quality-agent"
    requires_ai = True

    async def _analyze(self, context: AnalysisContext) -> AnalysisOutcome:
        if not context.items:
            return AnalysisOutcome()

        known_ids = {item.id for item in context.items}
        articles_data = [
            {"id": i.id, "title": i.title, "content": (i.content or "")[:CONTENT_PREVIEW_CHARS]}
            for i in context.items
        ]
        prompt = render_prompt(self.config.prompt_template or DEFAULT_QUALITY_PROMPT, articles_data)

        try:
            response = await self.perform_ai_analysis(prompt)
            entries = require_list(response, "quality_analysis")
        except COLLABORATOR_ERRORS as exc:
            return AnalysisOutcome.failed(AnalysisError(self.name, str(exc), cause=exc))

        now = context.clock
        suggestions: List[EnhancedSuggestion] = []
        for entry in entries:
            if not isinstance(entry, dict) or str(entry.get("article_id")) not in known_ids:
                logger.warning("[AGENT] %s skipped quality entry: %r", self.name, entry)
                continue
            score = _score(entry.get("quality_score"))
            fixes = entry.get("suggestions")
            if score is None or not isinstance(fixes, list):
                logger.warning("[AGENT] %s skipped malformed quality entry: %r", self.name, entry)
                continue
            fixes = [str(f) for f in fixes if f]
            if score >= QUALITY_PASS_SCORE or not fixes:
                continue

            reasoning = entry.get("reasoning") or (
                f"Article has a quality score of {score:g}, which is below "
                f"the threshold of {QUALITY_PASS_SCORE}."
            )
            confidence = clamp((100 - score) / 100)
            suggestions.append(EnhancedSuggestion(
                target_type="article_improvement",
                target_id=str(entry["article_id"]),
                suggestion_data={"suggestions": fixes, "quality_score": score},
                reasoning=str(reasoning),
                confidence_score=confidence,
                priority=3,
                expires_at=now + timedelta(days=7),
                reasoning_steps=[ReasoningStep("AI Quality Analysis", [str(reasoning)], confidence)],
                alternative_approaches=[
                    "Rewrite the article from scratch",
                    "Get a human editor to review",
                ],
                potential_risks=["Suggestions might not align with brand voice"],
                implementation_complexity=Rating.MEDIUM,
                expected_impact=Rating.HIGH,
            ))
        return AnalysisOutcome(suggestions=suggestions)
