"""
Agent registry -- maps type names to factories and names to live agents.

The composition root constructs one ``AgentRegistry`` and passes it to
whatever runs agents.  ``get_registry()`` offers a lazily created
process-wide default for scripts.

Creation and removal are serialised by a lock.  Creating an agent under a
name that is already taken replaces the previous instance (last writer
wins) and logs a warning.
"""

import logging
import threading
from typing import Any, Callable, Dict, List, Optional, Union

from copilot.agents.ai_trending import AITrendingAgent
from copilot.agents.base import AIAnalyzer, BaseAgent
from copilot.agents.content_gap import ContentGapAgent
from copilot.agents.content_quality import ContentQualityAgent
from copilot.agents.engagement import EngagementPredictionAgent
from copilot.agents.reasoning import EnhancedAgent
from copilot.agents.seo import SeoOptimizationAgent
from copilot.agents.summarization import SummarizationAgent
from copilot.agents.trending import TrendingContentAgent
from copilot.config import AgentDefaults
from copilot.exceptions import UnknownTypeError
from copilot.models import AgentConfig

logger = logging.getLogger("AgentRegistry")

Agent = Union[BaseAgent, EnhancedAgent]
AgentFactory = Callable[..., BaseAgent]

BUILTIN_TYPES: Dict[str, AgentFactory] = {
    TrendingContentAgent.agent_type: TrendingContentAgent,
    SummarizationAgent.agent_type: SummarizationAgent,
    ContentGapAgent.agent_type: ContentGapAgent,
    AITrendingAgent.agent_type: AITrendingAgent,
    SeoOptimizationAgent.agent_type: SeoOptimizationAgent,
    ContentQualityAgent.agent_type: ContentQualityAgent,
    EngagementPredictionAgent.agent_type: EngagementPredictionAgent,
}

# Types whose instances are wrapped in EnhancedAgent by default
ENHANCED_TYPES = frozenset({
    AITrendingAgent.agent_type,
    SeoOptimizationAgent.agent_type,
    ContentQualityAgent.agent_type,
    EngagementPredictionAgent.agent_type,
})


class AgentRegistry:
    """
    Factory and lookup for agents.

    Args:
        ai_analyzer: Default AI collaborator handed to every created agent.
        defaults: Fallback tunables handed to every created agent.
        register_builtins: Register the built-in strategy types.
    """

    def __init__(
        self,
        ai_analyzer: Optional[AIAnalyzer] = None,
        defaults: Optional[AgentDefaults] = None,
        register_builtins: bool = True,
    ) -> None:
        self.ai_analyzer = ai_analyzer
        self.defaults = defaults
        self._types: Dict[str, AgentFactory] = {}
        self._enhanced_types = set()
        self._agents: Dict[str, Agent] = {}
        self._lock = threading.Lock()
        if register_builtins:
            for type_name, factory in BUILTIN_TYPES.items():
                self.register(type_name, factory, enhanced=type_name in ENHANCED_TYPES)

    # ------------------------------------------------------------------
    # Types
    # ------------------------------------------------------------------

    def register(self, type_name: str, factory: AgentFactory, enhanced: bool = False) -> None:
        """Register (or replace) the factory for *type_name*."""
        with self._lock:
            self._types[type_name] = factory
            if enhanced:
                self._enhanced_types.add(type_name)
            else:
                self._enhanced_types.discard(type_name)
        logger.debug("[REGISTRY] Registered agent type %s", type_name)

    def resolve(self, type_name: str) -> AgentFactory:
        """
        Look up the factory for *type_name*.

        Raises:
            UnknownTypeError: If the type is not registered.
        """
        with self._lock:
            factory = self._types.get(type_name)
        if factory is None:
            raise UnknownTypeError(type_name)
        return factory

    def list_types(self) -> List[str]:
        with self._lock:
            return list(self._types)

    # ------------------------------------------------------------------
    # Instances
    # ------------------------------------------------------------------

    def create_agent(
        self,
        name: str,
        type_name: str,
        config: Union[AgentConfig, Dict[str, Any], None] = None,
        enhanced: Optional[bool] = None,
    ) -> Optional[Agent]:
        """
        Create and register an agent.

        Args:
            name: Instance name.
            type_name: Registered type.
            config: Agent tunables.
            enhanced: Wrap in ``EnhancedAgent``; defaults to the type's
                registration.

        Returns:
            The new agent, or ``None`` if *type_name* is unknown.
        """
        try:
            factory = self.resolve(type_name)
        except UnknownTypeError as exc:
            logger.error("[REGISTRY] Cannot create agent %s: %s", name, exc)
            return None

        agent: Agent = factory(
            name, config, ai_analyzer=self.ai_analyzer, defaults=self.defaults
        )
        with self._lock:
            wrap = type_name in self._enhanced_types if enhanced is None else enhanced
            if wrap:
                agent = EnhancedAgent(agent)
            if name in self._agents:
                logger.warning(
                    "[REGISTRY] Agent name %s already registered; replacing it", name
                )
            self._agents[name] = agent

        logger.info("[REGISTRY] Created agent %s (%s)", name, type_name)
        return agent

    def create_collaborative_agent_group(self, specs: List[Dict[str, Any]]) -> List[Agent]:
        """
        Create several enhanced agents that boost each other's consensus.

        Each spec is ``{"name", "type", "config"}``; ``collaboration_enabled``
        is forced on.  Unknown types are skipped.
        """
        created: List[Agent] = []
        for spec in specs:
            config = dict(spec.get("config") or {})
            config["collaboration_enabled"] = True
            agent = self.create_agent(spec["name"], spec["type"], config, enhanced=True)
            if agent is not None:
                created.append(agent)
        return created

    def get_agent(self, name: str) -> Optional[Agent]:
        with self._lock:
            return self._agents.get(name)

    def all_agents(self) -> List[Agent]:
        with self._lock:
            return list(self._agents.values())

    def remove_agent(self, name: str) -> bool:
        with self._lock:
            removed = self._agents.pop(name, None) is not None
        if removed:
            logger.info("[REGISTRY] Removed agent %s", name)
        return removed


# ===========================================================================
# PROCESS-WIDE DEFAULT
# ===========================================================================

_registry: Optional[AgentRegistry] = None
_registry_lock = threading.Lock()


def get_registry() -> AgentRegistry:
    """Return the process-wide default registry, creating it on first use."""
    global _registry
    if _registry is None:
        with _registry_lock:
            if _registry is None:
                _registry = AgentRegistry()
    return _registry


def reset_registry() -> None:
    global _registry
    with _registry_lock:
        _registry = None
