"""
Centralized configuration loader for the Content Co-Pilot.

Loads settings from YAML files and environment variables, providing
sensible defaults when configuration files are absent.

Provides:
    - AgentDefaults: Fallback tunables for agents whose config leaves a key unset
    - QueueSettings: Execution queue concurrency and retry policy
    - AgentSpec: One ``{name, type, config}`` entry for the composition root
    - Settings: Global application settings loaded from YAML + env vars
    - get_settings(): Cached accessor for Settings
    - validate_env(): Startup validation of required environment variables
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import yaml
from dotenv import load_dotenv

from copilot.exceptions import ConfigurationError

# ---------------------------------------------------------------------------
# Load .env file (no-op if file does not exist)
# ---------------------------------------------------------------------------
load_dotenv()

# ---------------------------------------------------------------------------
# Project root directory (parent of copilot/)
# ---------------------------------------------------------------------------
PROJECT_ROOT = Path(__file__).resolve().parent.parent

DEFAULT_AI_MODEL = "claude-sonnet-4-5"

logger = logging.getLogger(__name__)


# ===========================================================================
# AGENT DEFAULTS
# ===========================================================================


@dataclass
class AgentDefaults:
    """
    Values an agent falls back to when its own ``AgentConfig`` is silent.

    Usage::

        defaults = get_settings().agent_defaults
        threshold = config.get("confidence_threshold", defaults.confidence_threshold)
    """

    confidence_threshold: float = 0.7
    max_suggestions: int = 5
    priority_weight: str = "balanced"
    min_views_threshold: int = 50
    freshness_threshold_days: float = 30.0
    quality_threshold: float = 0.7
    view_trigger_threshold: int = 100

    # Enhanced decoration
    collaboration_boost_cap: float = 0.2
    collaboration_boost_step: float = 0.1
    learning_min_observations: int = 5

    def __post_init__(self) -> None:
        if not 0.0 <= self.confidence_threshold <= 1.0:
            raise ConfigurationError(
                f"confidence_threshold must be in [0, 1], got {self.confidence_threshold}"
            )
        if self.max_suggestions < 0:
            raise ConfigurationError(
                f"max_suggestions must be >= 0, got {self.max_suggestions}"
            )
        if self.priority_weight not in ("conservative", "balanced", "aggressive"):
            raise ConfigurationError(
                f"Unknown priority_weight '{self.priority_weight}'"
            )


# ===========================================================================
# QUEUE SETTINGS
# ===========================================================================


@dataclass
class QueueSettings:
    """Concurrency cap and retry policy for the execution queue."""

    max_concurrent: int = 3
    max_retries: int = 3
    backoff_base_seconds: float = 1.0

    def __post_init__(self) -> None:
        if self.max_concurrent < 1:
            raise ConfigurationError(
                f"queue.max_concurrent must be >= 1, got {self.max_concurrent}"
            )
        if self.max_retries < 0:
            raise ConfigurationError(
                f"queue.max_retries must be >= 0, got {self.max_retries}"
            )


@dataclass
class AgentSpec:
    """An agent the composition root should create at startup."""

    name: str
    type: str
    config: Dict[str, Any] = field(default_factory=dict)


# ===========================================================================
# GLOBAL SETTINGS
# ===========================================================================


@dataclass
class Settings:
    """
    Global application settings.

    Loaded from ``config/settings.yaml`` when available, falling back to
    sensible defaults. Environment variables override YAML values for
    deployment-specific configuration.
    """

    # LLM settings
    ai_model: str = DEFAULT_AI_MODEL
    ai_max_tokens: int = 4096

    # Logging
    log_level: str = "INFO"
    log_dir: str = "logs"

    # Agents
    agent_defaults: AgentDefaults = field(default_factory=AgentDefaults)
    agents: List[AgentSpec] = field(default_factory=list)
    cache_ttl_minutes: float = 30.0
    cache_max_entries: int = 1000

    # Queue
    queue: QueueSettings = field(default_factory=QueueSettings)

    # Workflows
    honor_action_delays: bool = False

    @classmethod
    def from_yaml(cls, path: Optional[Path] = None) -> "Settings":
        """
        Load settings from a YAML file.

        If the file does not exist, returns an instance with all defaults.
        Environment variables override YAML values for specific keys.

        Args:
            path: Path to the YAML file. Defaults to
                ``<PROJECT_ROOT>/config/settings.yaml``.

        Returns:
            Populated Settings instance.

        Raises:
            ConfigurationError: If the YAML file exists but cannot be parsed,
                or an environment override has an invalid value.
        """
        path = path or PROJECT_ROOT / "config" / "settings.yaml"

        data: Dict[str, Any] = {}
        if path.exists():
            try:
                with open(path, "r", encoding="utf-8") as fh:
                    data = yaml.safe_load(fh) or {}
            except yaml.YAMLError as exc:
                raise ConfigurationError(
                    f"Failed to parse settings YAML at {path}: {exc}"
                ) from exc
        if not isinstance(data, dict):
            raise ConfigurationError(
                f"Settings YAML at {path} must be a mapping, got {type(data).__name__}"
            )

        # -----------------------------------------------------------------
        # Nested sections (unknown keys ignored)
        # -----------------------------------------------------------------
        defaults_data = data.get("agent_defaults") or {}
        agent_defaults = AgentDefaults(**{
            k: v for k, v in defaults_data.items()
            if k in AgentDefaults.__dataclass_fields__
        })

        queue_data = data.get("queue") or {}
        queue = QueueSettings(**{
            k: v for k, v in queue_data.items()
            if k in QueueSettings.__dataclass_fields__
        })

        agents: List[AgentSpec] = []
        for entry in data.get("agents") or []:
            if not entry.get("name") or not entry.get("type"):
                raise ConfigurationError(
                    f"Agent entry needs 'name' and 'type': {entry}"
                )
            agents.append(AgentSpec(
                name=entry["name"],
                type=entry["type"],
                config=dict(entry.get("config") or {}),
            ))

        settings = cls(
            ai_model=data.get("ai_model", DEFAULT_AI_MODEL),
            ai_max_tokens=int(data.get("ai_max_tokens", 4096)),
            log_level=data.get("log_level", "INFO"),
            log_dir=data.get("log_dir", "logs"),
            agent_defaults=agent_defaults,
            agents=agents,
            cache_ttl_minutes=float(data.get("cache_ttl_minutes", 30.0)),
            cache_max_entries=int(data.get("cache_max_entries", 1000)),
            queue=queue,
            honor_action_delays=bool(data.get("honor_action_delays", False)),
        )

        # -----------------------------------------------------------------
        # Environment variable overrides
        # -----------------------------------------------------------------
        env_overrides: Dict[str, Callable[[Settings, str], None]] = {
            "COPILOT_AI_MODEL": lambda s, v: setattr(s, "ai_model", v),
            "COPILOT_LOG_LEVEL": lambda s, v: setattr(s, "log_level", v.upper()),
            "COPILOT_QUEUE_MAX_CONCURRENT": lambda s, v: setattr(
                s.queue, "max_concurrent", int(v)
            ),
            "COPILOT_CONFIDENCE_THRESHOLD": lambda s, v: setattr(
                s.agent_defaults, "confidence_threshold", float(v)
            ),
        }
        for env_key, apply in env_overrides.items():
            env_val = os.environ.get(env_key)
            if env_val is not None:
                try:
                    apply(settings, env_val)
                except (ValueError, TypeError) as exc:
                    raise ConfigurationError(
                        f"Invalid value for env var {env_key}='{env_val}': {exc}"
                    ) from exc

        if settings.queue.max_concurrent < 1:
            raise ConfigurationError(
                f"queue.max_concurrent must be >= 1, got {settings.queue.max_concurrent}"
            )
        if not 0.0 <= settings.agent_defaults.confidence_threshold <= 1.0:
            raise ConfigurationError(
                "confidence_threshold must be in [0, 1], got "
                f"{settings.agent_defaults.confidence_threshold}"
            )

        logger.debug("Loaded settings from %s (exists=%s)", path, path.exists())
        return settings


# ===========================================================================
# SINGLETON ACCESSOR
# ===========================================================================

_settings_instance: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get the global Settings singleton.

    On first call, loads from ``config/settings.yaml`` (or defaults).
    Subsequent calls return the cached instance.
    """
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = Settings.from_yaml()
    return _settings_instance


def reset_settings() -> None:
    """Reset the cached Settings singleton (tests, config reloads)."""
    global _settings_instance
    _settings_instance = None


# ===========================================================================
# ENVIRONMENT VARIABLE VALIDATION
# ===========================================================================

# Required environment variables for the system to function
REQUIRED_ENV_VARS: List[str] = [
    "SUPABASE_URL",
    "SUPABASE_SERVICE_KEY",
    "ANTHROPIC_API_KEY",
]


def validate_env(strict: bool = True) -> Dict[str, bool]:
    """
    Validate that required environment variables are set.

    Args:
        strict: If ``True``, raise ``ConfigurationError`` when any required
            variable is missing. If ``False``, return the status dict
            without raising.

    Returns:
        Dict mapping variable name to presence status (``True`` if set).

    Raises:
        ConfigurationError: If ``strict=True`` and required vars are missing.
    """
    status: Dict[str, bool] = {}
    missing: List[str] = []

    for var in REQUIRED_ENV_VARS:
        present = bool(os.environ.get(var))
        status[var] = present
        if not present:
            missing.append(var)

    if strict and missing:
        raise ConfigurationError(
            f"Missing required environment variables: {missing}. "
            f"Copy .env.example to .env and fill in the values."
        )

    return status
