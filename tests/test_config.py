"""
Tests for settings loading.
"""

import pytest
from pydantic import ValidationError

from aipex.config import AgentSettings, AppSettings, get_settings, load_settings


@pytest.fixture(autouse=True)
def fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class TestSettings:
    """Defaults, environment overrides and validation."""

    def test_defaults(self, monkeypatch):
        for name in ("AIPEX_MAX_TURNS", "AIPEX_CACHE_SIZE", "AIPEX_SYSTEM_PROMPT"):
            monkeypatch.delenv(name, raising=False)

        settings = load_settings()

        assert settings.agent.max_turns == 10
        assert settings.agent.system_prompt is None
        assert settings.agent.llm_timeout_seconds == 30.0
        assert settings.agent.content_buffer.delay_seconds == 0.05
        assert settings.agent.thinking_buffer.max_buffer_size == 512
        assert settings.conversation.cache_size == 100
        assert settings.conversation.cache_ttl_seconds == 1800.0
        assert settings.retry.max_attempts == 3

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("AIPEX_MAX_TURNS", "4")
        monkeypatch.setenv("AIPEX_SYSTEM_PROMPT", "Be brief")
        monkeypatch.setenv("AIPEX_CACHE_SIZE", "7")
        monkeypatch.setenv("AIPEX_LOG_JSON", "true")

        settings = get_settings()

        assert settings.agent.max_turns == 4
        assert settings.agent.system_prompt == "Be brief"
        assert settings.conversation.cache_size == 7
        assert settings.log_json is True

    def test_get_settings_is_cached(self, monkeypatch):
        first = get_settings()
        monkeypatch.setenv("AIPEX_MAX_TURNS", "3")

        assert get_settings() is first

        get_settings.cache_clear()
        assert get_settings().agent.max_turns == 3

    def test_invalid_values_rejected(self, monkeypatch):
        monkeypatch.setenv("AIPEX_MAX_TURNS", "0")

        with pytest.raises(ValidationError):
            load_settings()

    def test_models_validate(self):
        with pytest.raises(ValidationError):
            AgentSettings(temperature=3.0)

        assert AppSettings().agent.max_turns == 10
