"""
aipex Language-Model Contract

The runtime talks to models only through LLMClient. Concrete clients are
supplied by the host application.
"""

from .base import (
    ContentChunk,
    DoneChunk,
    FunctionCall,
    FunctionCallChunk,
    LLMClient,
    LLMRequest,
    LLMResponse,
    StreamChunk,
    ThinkingChunk,
    TokenUsage,
)
from .resilient import ResilientLLMClient

__all__ = [
    "LLMClient",
    "LLMRequest",
    "LLMResponse",
    "FunctionCall",
    "TokenUsage",
    "StreamChunk",
    "ContentChunk",
    "ThinkingChunk",
    "FunctionCallChunk",
    "DoneChunk",
    "ResilientLLMClient",
]
