"""
aipex Configuration

Pydantic settings models and environment loading.
"""

from .schemas import (
    AgentSettings,
    AppSettings,
    ConversationSettings,
    RetrySettings,
    StreamBufferSettings,
)
from .settings import get_settings, load_settings

__all__ = [
    "AppSettings",
    "AgentSettings",
    "ConversationSettings",
    "RetrySettings",
    "StreamBufferSettings",
    "get_settings",
    "load_settings",
]
