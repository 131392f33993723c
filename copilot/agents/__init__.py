"""Agent strategies, reasoning decoration, registry and result cache."""

from copilot.agents.ai_trending import AITrendingAgent
from copilot.agents.base import AIAnalyzer, AnalysisOutcome, BaseAgent
from copilot.agents.cache import AgentResultCache, CacheStats
from copilot.agents.content_gap import ContentGapAgent
from copilot.agents.content_quality import ContentQualityAgent
from copilot.agents.engagement import EngagementPredictionAgent
from copilot.agents.reasoning import EnhancedAgent, decorate_with_reasoning
from copilot.agents.registry import AgentRegistry, get_registry, reset_registry
from copilot.agents.seo import SeoOptimizationAgent
from copilot.agents.summarization import SummarizationAgent
from copilot.agents.trending import TrendingContentAgent

__all__ = [
    "AIAnalyzer",
    "AITrendingAgent",
    "AgentRegistry",
    "AgentResultCache",
    "AnalysisOutcome",
    "BaseAgent",
    "CacheStats",
    "ContentGapAgent",
    "ContentQualityAgent",
    "EngagementPredictionAgent",
    "EnhancedAgent",
    "SeoOptimizationAgent",
    "SummarizationAgent",
    "TrendingContentAgent",
    "decorate_with_reasoning",
    "get_registry",
    "reset_registry",
]
