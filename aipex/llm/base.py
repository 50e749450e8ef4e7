"""
Language-Model Client Protocol for aipex.

Defines the interface the runtime consumes. Concrete provider clients
(OpenAI, Anthropic, Gemini, ...) live outside this package; they must
map transport failures into the error taxonomy:

- 401/403              -> LLMAuthError
- 429                  -> LLMRateLimitError (retry_delay from headers)
- deadline exceeded    -> LLMTimeoutError
- unparseable payload  -> LLMInvalidResponseError
- anything else        -> LLMError(LLM_API_ERROR) / LLMStreamError
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol, Union, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from aipex.conversation.items import ConversationItem


@dataclass(frozen=True, slots=True)
class FunctionCall:
    """A tool call requested by the model."""

    id: str
    name: str
    params: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class TokenUsage:
    """Token accounting reported at the end of a stream."""

    prompt_tokens: int = 0
    completion_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens

    def to_dict(self) -> dict[str, int]:
        return {
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
        }


# =============================================================================
# Stream Chunks
# =============================================================================


@dataclass(frozen=True, slots=True)
class ContentChunk:
    delta: str
    type: str = "content"


@dataclass(frozen=True, slots=True)
class ThinkingChunk:
    delta: str
    type: str = "thinking"


@dataclass(frozen=True, slots=True)
class FunctionCallChunk:
    call: FunctionCall
    type: str = "function_call"


@dataclass(frozen=True, slots=True)
class DoneChunk:
    usage: TokenUsage = field(default_factory=TokenUsage)
    type: str = "done"


StreamChunk = Union[ContentChunk, ThinkingChunk, FunctionCallChunk, DoneChunk]


# =============================================================================
# Request / Response
# =============================================================================


@dataclass
class LLMRequest:
    """
    One model request.

    Attributes:
        items: Conversation log (messages, tool calls, tool results)
        tools: Tool schemas the model may call
        system_prompt: Prepended system instruction, if any
        temperature: Sampling temperature (provider default if None)
        max_tokens: Generation limit (provider default if None)
    """

    items: list[ConversationItem] = field(default_factory=list)
    tools: list[dict[str, Any]] = field(default_factory=list)
    system_prompt: str | None = None
    temperature: float | None = None
    max_tokens: int | None = None


@dataclass
class LLMResponse:
    """Non-streaming completion result."""

    text: str
    function_calls: list[FunctionCall] = field(default_factory=list)
    usage: TokenUsage = field(default_factory=TokenUsage)
    model: str = ""
    provider: str = ""


@runtime_checkable
class LLMClient(Protocol):
    """
    Protocol for language-model clients.

    Implementations must provide:
    - generate_stream(): incremental response as StreamChunks
    - generate_content(): whole response at once
    - count_tokens(): token estimate for a request
    - name: provider identifier
    """

    @property
    def name(self) -> str:
        """Provider name for logging and error attribution."""
        ...

    def generate_stream(self, request: LLMRequest) -> AsyncIterator[StreamChunk]:
        """
        Stream the model response.

        Yields content/thinking deltas and function calls in model order,
        finishing with exactly one DoneChunk.
        """
        ...

    async def generate_content(self, request: LLMRequest) -> LLMResponse:
        """Generate a complete response without streaming."""
        ...

    async def count_tokens(self, request: LLMRequest) -> int:
        """Count prompt tokens for a request."""
        ...
