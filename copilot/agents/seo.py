"""AI-delegated SEO strategy: keywords, meta descriptions, on-page fixes."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Dict, List

from copilot.agents.ai_trending import COLLABORATOR_ERRORS, render_prompt, require_list
from copilot.agents.base import AnalysisOutcome, BaseAgent
from copilot.exceptions import AnalysisError
from copilot.models import AnalysisContext, EnhancedSuggestion, Rating, ReasoningStep

logger = logging.getLogger("SeoAgent")

CONTENT_PREVIEW_CHARS = 1000
SEO_CONFIDENCE = 0.85

DEFAULT_SEO_PROMPT = """\
Analyze the provided articles for SEO optimization. For each article, suggest a \
list of relevant keywords, a meta description, and other on-page SEO improvements.

Return a JSON object with a key "seo_analysis", containing an array of objects. \
Each object must include "article_id", "suggested_keywords" (array of strings), \
"suggested_meta_description" (string), and "on_page_improvements" (array of strings).

Article data: {articles_data}"""


class SeoOptimizationAgent(BaseAgent):
    agent_type = "seo-optimization-agent"
    requires_ai = True

    async def _analyze(self, context: AnalysisContext) -> AnalysisOutcome:
        if not context.items:
            return AnalysisOutcome()

        known_ids = {item.id for item in context.items}
        articles_data = [
            {"id": i.id, "title": i.title, "content": (i.content or "")[:CONTENT_PREVIEW_CHARS]}
            for i in context.items
        ]
        prompt = render_prompt(self.config.prompt_template or DEFAULT_SEO_PROMPT, articles_data)

        try:
            response = await self.perform_ai_analysis(prompt)
            entries = require_list(response, "seo_analysis")
        except COLLABORATOR_ERRORS as exc:
            return AnalysisOutcome.failed(AnalysisError(self.name, str(exc), cause=exc))

        now = context.clock
        suggestions: List[EnhancedSuggestion] = []
        for entry in entries:
            if not isinstance(entry, dict) or str(entry.get("article_id")) not in known_ids:
                logger.warning("[AGENT] %s skipped SEO entry: %r", self.name, entry)
                continue
            suggestions.append(EnhancedSuggestion(
                target_type="seo_improvement",
                target_id=str(entry["article_id"]),
                suggestion_data=self._payload(entry),
                reasoning="Provides SEO enhancements including keywords and meta description.",
                confidence_score=SEO_CONFIDENCE,
                priority=2,
                expires_at=now + timedelta(days=7),
                reasoning_steps=[ReasoningStep(
                    "AI SEO Analysis",
                    ["Keyword analysis", "Meta description generation"],
                    SEO_CONFIDENCE,
                )],
                alternative_approaches=["Use a dedicated SEO tool for deeper analysis"],
                potential_risks=["Keyword stuffing could harm rankings"],
                implementation_complexity=Rating.LOW,
                expected_impact=Rating.MEDIUM,
            ))
        return AnalysisOutcome(suggestions=suggestions)

    @staticmethod
    def _payload(entry: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "keywords": _string_list(entry.get("suggested_keywords")),
            "meta_description": entry.get("suggested_meta_description") or "",
            "improvements": _string_list(entry.get("on_page_improvements")),
        }


def _string_list(value: Any) -> List[str]:
    """Keep list answers only; a bare string is not split into characters."""
    if not isinstance(value, list):
        return []
    return [str(v) for v in value if v]
