"""
Configuration Schemas for aipex.

Pydantic models for runtime settings. Components take plain constructor
arguments; these models group the defaults and validate env overrides.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class StreamBufferSettings(BaseModel):
    """Debounce settings for one stream buffer."""

    delay_seconds: float = Field(0.05, ge=0, description="Delay from first pending char to flush")
    max_buffer_size: int = Field(1024, ge=1, description="Pending chars that force a flush")


class AgentSettings(BaseModel):
    """
    Agent loop settings.

    Used by AgentExecutor, Turn and ToolRegistry.from_settings.
    """

    max_turns: int = Field(10, ge=1, description="Turn ceiling per run")
    system_prompt: str | None = Field(None, description="Prepended to every LLM request")
    temperature: float | None = Field(None, ge=0, le=2)
    max_tokens: int | None = Field(None, ge=1)

    llm_timeout_seconds: float = Field(30.0, gt=0, description="Hard deadline per model call")
    tool_timeout_seconds: float = Field(30.0, gt=0, description="Default per-tool timeout")

    content_buffer: StreamBufferSettings = Field(default_factory=StreamBufferSettings)
    thinking_buffer: StreamBufferSettings = Field(
        default_factory=lambda: StreamBufferSettings(delay_seconds=0.1, max_buffer_size=512)
    )


class ConversationSettings(BaseModel):
    """Conversation manager cache settings."""

    cache_size: int = Field(100, ge=1, description="Max cached sessions")
    cache_ttl_seconds: float = Field(1800.0, gt=0, description="Cached session lifetime")


class RetrySettings(BaseModel):
    """Retry-with-backoff settings for the model client boundary."""

    max_attempts: int = Field(3, ge=1)
    initial_delay: float = Field(1.0, ge=0)
    max_delay: float = Field(30.0, ge=0)
    backoff_multiplier: float = Field(2.0, ge=1)


class AppSettings(BaseModel):
    """
    Application settings model.

    Used for type-safe settings access.
    """

    service_name: str = "aipex"
    environment: str = "development"
    debug: bool = False
    log_level: str = "INFO"
    log_json: bool = False

    agent: AgentSettings = Field(default_factory=AgentSettings)
    conversation: ConversationSettings = Field(default_factory=ConversationSettings)
    retry: RetrySettings = Field(default_factory=RetrySettings)
