"""
aipex Utilities

Leaf building blocks shared by the runtime: error taxonomy, retry with
backoff, debounced stream buffering and cooperative cancellation.
"""

from .cancellation import CancellationToken
from .errors import (
    AgentError,
    ErrorCode,
    LLMAuthError,
    LLMError,
    LLMInvalidResponseError,
    LLMRateLimitError,
    LLMStreamError,
    LLMTimeoutError,
    SessionNotFoundError,
    ToolError,
    ToolNotFoundError,
    ToolTimeoutError,
    ToolValidationError,
    TurnCancelledError,
    error_code_of,
    is_recoverable,
)
from .ids import generate_id
from .retry import (
    DEFAULT_RETRY,
    NO_RETRY,
    BackoffStrategy,
    ConstantBackoff,
    ExponentialBackoff,
    NoBackoff,
    RetryPolicy,
    RetryResult,
    retry,
    with_retry,
)
from .stream_buffer import StreamBuffer

__all__ = [
    # Errors
    "AgentError",
    "ErrorCode",
    "LLMError",
    "LLMAuthError",
    "LLMInvalidResponseError",
    "LLMRateLimitError",
    "LLMStreamError",
    "LLMTimeoutError",
    "ToolError",
    "ToolNotFoundError",
    "ToolTimeoutError",
    "ToolValidationError",
    "TurnCancelledError",
    "SessionNotFoundError",
    "is_recoverable",
    "error_code_of",
    # Retry
    "BackoffStrategy",
    "NoBackoff",
    "ConstantBackoff",
    "ExponentialBackoff",
    "RetryPolicy",
    "RetryResult",
    "NO_RETRY",
    "DEFAULT_RETRY",
    "retry",
    "with_retry",
    # Streaming / cancellation
    "StreamBuffer",
    "CancellationToken",
    "generate_id",
]
