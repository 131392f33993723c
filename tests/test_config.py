"""Tests for copilot.config.

Covers:
- Settings defaults and YAML loading (sections, agents, errors).
- Environment variable overrides and their validation.
- AgentDefaults / QueueSettings validation.
- get_settings() singleton and validate_env().
"""

import pytest

from copilot.config import (
    DEFAULT_AI_MODEL,
    PROJECT_ROOT,
    REQUIRED_ENV_VARS,
    AgentDefaults,
    Settings,
    get_settings,
    reset_settings,
    validate_env,
)
from copilot.exceptions import ConfigurationError


@pytest.fixture
def write_yaml(tmp_path):
    def _write(text):
        path = tmp_path / "settings.yaml"
        path.write_text(text, encoding="utf-8")
        return path
    return _write


# =============================================================================
# Settings.from_yaml
# =============================================================================


class TestSettingsFromYaml:

    def test_missing_file_gives_defaults(self, tmp_path):
        settings = Settings.from_yaml(tmp_path / "absent.yaml")
        assert settings.ai_model == DEFAULT_AI_MODEL
        assert settings.log_level == "INFO"
        assert settings.agent_defaults.confidence_threshold == 0.7
        assert settings.agent_defaults.max_suggestions == 5
        assert settings.queue.max_concurrent == 3
        assert settings.agents == []
        assert settings.honor_action_delays is False

    def test_empty_file_gives_defaults(self, write_yaml):
        settings = Settings.from_yaml(write_yaml(""))
        assert settings.cache_ttl_minutes == 30.0

    def test_sections_loaded(self, write_yaml):
        path = write_yaml(
            """
ai_model: claude-test
log_level: DEBUG
cache_ttl_minutes: 5
honor_action_delays: true
agent_defaults:
  confidence_threshold: 0.5
  priority_weight: aggressive
  unknown_key: ignored
queue:
  max_concurrent: 2
  max_retries: 1
  backoff_base_seconds: 0.5
agents:
  - name: trending
    type: trending-content-agent
    config:
      max_suggestions: 3
  - name: gaps
    type: content-gap-agent
"""
        )
        settings = Settings.from_yaml(path)

        assert settings.ai_model == "claude-test"
        assert settings.log_level == "DEBUG"
        assert settings.cache_ttl_minutes == 5.0
        assert settings.honor_action_delays is True
        assert settings.agent_defaults.confidence_threshold == 0.5
        assert settings.agent_defaults.priority_weight == "aggressive"
        assert settings.queue.max_concurrent == 2
        assert settings.queue.backoff_base_seconds == 0.5
        assert [a.name for a in settings.agents] == ["trending", "gaps"]
        assert settings.agents[0].config == {"max_suggestions": 3}
        assert settings.agents[1].config == {}

    def test_agent_entry_needs_name_and_type(self, write_yaml):
        path = write_yaml("agents:\n  - name: lonely\n")
        with pytest.raises(ConfigurationError, match="name' and 'type'"):
            Settings.from_yaml(path)

    def test_invalid_yaml(self, write_yaml):
        with pytest.raises(ConfigurationError, match="Failed to parse"):
            Settings.from_yaml(write_yaml("ai_model: [unclosed"))

    def test_non_mapping_yaml(self, write_yaml):
        with pytest.raises(ConfigurationError, match="must be a mapping"):
            Settings.from_yaml(write_yaml("- just\n- a list\n"))

    def test_invalid_section_values(self, write_yaml):
        with pytest.raises(ConfigurationError):
            Settings.from_yaml(write_yaml("agent_defaults:\n  confidence_threshold: 2\n"))
        with pytest.raises(ConfigurationError):
            Settings.from_yaml(write_yaml("queue:\n  max_concurrent: 0\n"))

    def test_shipped_settings_file_loads(self):
        settings = Settings.from_yaml(PROJECT_ROOT / "config" / "settings.yaml")
        assert isinstance(settings, Settings)


# =============================================================================
# Environment overrides
# =============================================================================


class TestEnvOverrides:

    def test_string_overrides(self, monkeypatch, tmp_path):
        monkeypatch.setenv("COPILOT_AI_MODEL", "claude-env")
        monkeypatch.setenv("COPILOT_LOG_LEVEL", "debug")
        settings = Settings.from_yaml(tmp_path / "absent.yaml")
        assert settings.ai_model == "claude-env"
        assert settings.log_level == "DEBUG"

    def test_numeric_overrides(self, monkeypatch, tmp_path):
        monkeypatch.setenv("COPILOT_QUEUE_MAX_CONCURRENT", "7")
        monkeypatch.setenv("COPILOT_CONFIDENCE_THRESHOLD", "0.4")
        settings = Settings.from_yaml(tmp_path / "absent.yaml")
        assert settings.queue.max_concurrent == 7
        assert settings.agent_defaults.confidence_threshold == 0.4

    @pytest.mark.parametrize(
        "key,value",
        [
            ("COPILOT_QUEUE_MAX_CONCURRENT", "many"),
            ("COPILOT_QUEUE_MAX_CONCURRENT", "0"),
            ("COPILOT_CONFIDENCE_THRESHOLD", "high"),
            ("COPILOT_CONFIDENCE_THRESHOLD", "1.5"),
        ],
    )
    def test_invalid_overrides(self, monkeypatch, tmp_path, key, value):
        monkeypatch.setenv(key, value)
        with pytest.raises(ConfigurationError):
            Settings.from_yaml(tmp_path / "absent.yaml")


# =============================================================================
# AgentDefaults
# =============================================================================


class TestAgentDefaults:

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"confidence_threshold": -0.1},
            {"confidence_threshold": 1.1},
            {"max_suggestions": -1},
            {"priority_weight": "reckless"},
        ],
    )
    def test_rejects_invalid(self, kwargs):
        with pytest.raises(ConfigurationError):
            AgentDefaults(**kwargs)

    def test_zero_max_suggestions_allowed(self):
        assert AgentDefaults(max_suggestions=0).max_suggestions == 0


# =============================================================================
# Singleton and env validation
# =============================================================================


class TestSingleton:

    def test_cached_until_reset(self):
        first = get_settings()
        assert get_settings() is first
        reset_settings()
        assert get_settings() is not first


class TestValidateEnv:

    def test_strict_raises_listing_missing(self):
        with pytest.raises(ConfigurationError, match="ANTHROPIC_API_KEY"):
            validate_env(strict=True)

    def test_non_strict_reports_status(self, monkeypatch):
        monkeypatch.setenv("SUPABASE_URL", "https://x.supabase.co")
        status = validate_env(strict=False)
        assert set(status) == set(REQUIRED_ENV_VARS)
        assert status["SUPABASE_URL"] is True
        assert status["SUPABASE_SERVICE_KEY"] is False

    def test_all_present(self, monkeypatch):
        for var in REQUIRED_ENV_VARS:
            monkeypatch.setenv(var, "value")
        assert all(validate_env().values())
