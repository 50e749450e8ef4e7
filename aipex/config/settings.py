"""
Settings loading for aipex.

Reads AIPEX_* environment variables into AppSettings once per process.
"""

from __future__ import annotations

import logging
import os
from functools import lru_cache

from .schemas import (
    AgentSettings,
    AppSettings,
    ConversationSettings,
    RetrySettings,
    StreamBufferSettings,
)

logger = logging.getLogger(__name__)


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() == "true"


def _env_optional(name: str) -> str | None:
    value = os.getenv(name)
    return value if value else None


def load_settings() -> AppSettings:
    """
    Build application settings from the environment.

    Unset variables fall back to the model defaults.
    """
    return AppSettings(
        # Service
        service_name=os.getenv("AIPEX_SERVICE_NAME", "aipex"),
        environment=os.getenv("AIPEX_ENVIRONMENT", "development"),
        debug=_env_bool("AIPEX_DEBUG"),
        log_level=os.getenv("AIPEX_LOG_LEVEL", "INFO"),
        log_json=_env_bool("AIPEX_LOG_JSON"),
        # Agent loop
        agent=AgentSettings(
            max_turns=int(os.getenv("AIPEX_MAX_TURNS", "10")),
            system_prompt=_env_optional("AIPEX_SYSTEM_PROMPT"),
            llm_timeout_seconds=float(os.getenv("AIPEX_LLM_TIMEOUT_SECONDS", "30")),
            tool_timeout_seconds=float(os.getenv("AIPEX_TOOL_TIMEOUT_SECONDS", "30")),
            content_buffer=StreamBufferSettings(
                delay_seconds=float(os.getenv("AIPEX_CONTENT_BUFFER_DELAY", "0.05")),
                max_buffer_size=int(os.getenv("AIPEX_CONTENT_BUFFER_SIZE", "1024")),
            ),
            thinking_buffer=StreamBufferSettings(
                delay_seconds=float(os.getenv("AIPEX_THINKING_BUFFER_DELAY", "0.1")),
                max_buffer_size=int(os.getenv("AIPEX_THINKING_BUFFER_SIZE", "512")),
            ),
        ),
        # Conversation cache
        conversation=ConversationSettings(
            cache_size=int(os.getenv("AIPEX_CACHE_SIZE", "100")),
            cache_ttl_seconds=float(os.getenv("AIPEX_CACHE_TTL_SECONDS", "1800")),
        ),
        # Model client retries
        retry=RetrySettings(
            max_attempts=int(os.getenv("AIPEX_RETRY_MAX_ATTEMPTS", "3")),
            initial_delay=float(os.getenv("AIPEX_RETRY_INITIAL_DELAY", "1.0")),
            max_delay=float(os.getenv("AIPEX_RETRY_MAX_DELAY", "30.0")),
            backoff_multiplier=float(os.getenv("AIPEX_RETRY_BACKOFF_MULTIPLIER", "2.0")),
        ),
    )


@lru_cache()
def get_settings() -> AppSettings:
    """
    Get application settings from environment.

    Uses lru_cache for singleton pattern. Call get_settings.cache_clear()
    after changing the environment (tests).
    """
    settings = load_settings()
    logger.debug(f"[settings] Loaded settings for environment={settings.environment}")
    return settings
