"""AI-delegated engagement prediction: social posts for articles likely to take off."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import List

from copilot.agents.ai_trending import COLLABORATOR_ERRORS, render_prompt, require_list
from copilot.agents.base import AnalysisOutcome, BaseAgent
from copilot.exceptions import AnalysisError
from copilot.models import AnalysisContext, EnhancedSuggestion, Rating, ReasoningStep

logger = logging.getLogger("EngagementAgent")

CONTENT_PREVIEW_CHARS = 1000
ENGAGEMENT_CONFIDENCE = 0.9
DEFAULT_PLATFORM = "twitter"

DEFAULT_ENGAGEMENT_PROMPT = """\
Predict the social media and reader engagement for the provided articles. For each \
article, provide a predicted engagement score (low, medium, high) and suggest a \
social media post to maximize reach.

Return a JSON object with a key "engagement_prediction", containing an array of \
objects. Each object must include "article_id", "predicted_engagement" (string: \
'low', 'medium', or 'high'), "reasoning" (string), and "suggested_social_post" (string).

Article data: {articles_data}"""


class EngagementPredictionAgent(BaseAgent):
    agent_type = "engagement-prediction-agent"
    requires_ai = True

    async def _analyze(self, context: AnalysisContext) -> AnalysisOutcome:
        if not context.items:
            return AnalysisOutcome()

        known_ids = {item.id for item in context.items}
        articles_data = [
            {"id": i.id, "title": i.title, "content": (i.content or "")[:CONTENT_PREVIEW_CHARS]}
            for i in context.items
        ]
        prompt = render_prompt(
            self.config.prompt_template or DEFAULT_ENGAGEMENT_PROMPT, articles_data
        )

        try:
            response = await self.perform_ai_analysis(prompt)
            entries = require_list(response, "engagement_prediction")
        except COLLABORATOR_ERRORS as exc:
            return AnalysisOutcome.failed(AnalysisError(self.name, str(exc), cause=exc))

        now = context.clock
        suggestions: List[EnhancedSuggestion] = []
        for entry in entries:
            if not isinstance(entry, dict) or str(entry.get("article_id")) not in known_ids:
                logger.warning("[AGENT] %s skipped engagement entry: %r", self.name, entry)
                continue
            # Only high-engagement articles are worth a post
            if str(entry.get("predicted_engagement") or "").lower() != "high":
                continue
            post = entry.get("suggested_social_post")
            if not isinstance(post, str) or not post.strip():
                logger.warning("[AGENT] %s skipped entry without a post: %r", self.name, entry)
                continue

            reasoning = str(entry.get("reasoning") or "Article has high predicted engagement.")
            suggestions.append(EnhancedSuggestion(
                target_type="social_media_post",
                target_id=str(entry["article_id"]),
                suggestion_data={"post_content": post.strip(), "platform": DEFAULT_PLATFORM},
                reasoning=reasoning,
                confidence_score=ENGAGEMENT_CONFIDENCE,
                priority=1,
                expires_at=now + timedelta(days=3),
                reasoning_steps=[ReasoningStep(
                    "AI Engagement Prediction", [reasoning], ENGAGEMENT_CONFIDENCE
                )],
                alternative_approaches=[
                    "Post on LinkedIn instead",
                    "Create a short video for TikTok/Shorts",
                ],
                potential_risks=["Engagement might not translate to conversions"],
                implementation_complexity=Rating.LOW,
                expected_impact=Rating.HIGH,
            ))
        return AnalysisOutcome(suggestions=suggestions)
