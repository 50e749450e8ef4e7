"""
Error Taxonomy for aipex.

Every failure the runtime knows about is an AgentError carrying:
- code: ErrorCode classification
- recoverable: whether retrying (or carrying on) makes sense

Classification drives policy higher up the stack:
- LLM timeouts, rate limits and stream errors are retried with backoff
- LLM auth and invalid-response errors surface immediately
- Tool errors are captured per call and do not stop the turn
- Turn cancellation is always terminal for the turn

Max-turns and loop detection are NOT errors. The executor reports them
as terminal signal events so callers can tell "stopped safely" apart
from "failed".
"""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Classification of runtime failures."""

    # LLM errors
    LLM_API_ERROR = "LLM_API_ERROR"
    LLM_STREAM_ERROR = "LLM_STREAM_ERROR"
    LLM_TIMEOUT = "LLM_TIMEOUT"
    LLM_RATE_LIMIT = "LLM_RATE_LIMIT"
    LLM_INVALID_RESPONSE = "LLM_INVALID_RESPONSE"
    LLM_AUTH_ERROR = "LLM_AUTH_ERROR"

    # Tool errors
    TOOL_NOT_FOUND = "TOOL_NOT_FOUND"
    TOOL_EXECUTION_ERROR = "TOOL_EXECUTION_ERROR"
    TOOL_TIMEOUT = "TOOL_TIMEOUT"
    TOOL_VALIDATION_ERROR = "TOOL_VALIDATION_ERROR"

    # Session errors
    SESSION_NOT_FOUND = "SESSION_NOT_FOUND"
    SESSION_EXPIRED = "SESSION_EXPIRED"

    # Execution signals
    MAX_TURNS_REACHED = "MAX_TURNS_REACHED"
    LOOP_DETECTED = "LOOP_DETECTED"
    TURN_CANCELLED = "TURN_CANCELLED"


# LLM codes that retrying cannot fix
_FATAL_LLM_CODES = frozenset({ErrorCode.LLM_AUTH_ERROR, ErrorCode.LLM_INVALID_RESPONSE})


class AgentError(Exception):
    """
    Base error for the agent runtime.

    Attributes:
        code: ErrorCode classification
        recoverable: Whether the operation may succeed if retried
        context: Extra structured details for logging
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode,
        recoverable: bool = False,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.recoverable = recoverable
        self.context = context or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for events and logs."""
        return {
            "error_class": type(self).__name__,
            "message": self.message,
            "code": self.code.value,
            "recoverable": self.recoverable,
            "context": self.context,
        }

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code.value}, message={self.message!r})"


# =============================================================================
# LLM Errors
# =============================================================================


class LLMError(AgentError):
    """Failure at the language-model client boundary."""

    def __init__(
        self,
        message: str,
        code: ErrorCode,
        provider: str,
        retry_delay: float | None = None,
    ) -> None:
        super().__init__(
            message,
            code,
            recoverable=code not in _FATAL_LLM_CODES,
            context={"provider": provider, "retry_delay": retry_delay},
        )
        self.provider = provider
        self.retry_delay = retry_delay


class LLMAuthError(LLMError):
    def __init__(self, message: str, provider: str) -> None:
        super().__init__(message, ErrorCode.LLM_AUTH_ERROR, provider)


class LLMInvalidResponseError(LLMError):
    def __init__(self, message: str, provider: str) -> None:
        super().__init__(message, ErrorCode.LLM_INVALID_RESPONSE, provider)


class LLMRateLimitError(LLMError):
    def __init__(self, message: str, provider: str, retry_delay: float | None = None) -> None:
        super().__init__(message, ErrorCode.LLM_RATE_LIMIT, provider, retry_delay)


class LLMTimeoutError(LLMError):
    def __init__(self, message: str, provider: str, retry_delay: float | None = None) -> None:
        super().__init__(message, ErrorCode.LLM_TIMEOUT, provider, retry_delay)


class LLMStreamError(LLMError):
    """Stream broke mid-flight. Always recoverable."""

    def __init__(self, message: str, provider: str, retry_delay: float | None = None) -> None:
        super().__init__(message, ErrorCode.LLM_STREAM_ERROR, provider, retry_delay)
        self.recoverable = True


# =============================================================================
# Tool Errors
# =============================================================================


class ToolError(AgentError):
    """
    Failure while executing a tool.

    should_continue tells the turn whether sibling calls and the
    conversation can carry on. It doubles as the recoverable flag.
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode,
        tool_name: str,
        should_continue: bool = True,
    ) -> None:
        super().__init__(
            message,
            code,
            recoverable=should_continue,
            context={"tool_name": tool_name},
        )
        self.tool_name = tool_name
        self.should_continue = should_continue


class ToolNotFoundError(ToolError):
    def __init__(self, tool_name: str, available: list[str] | None = None) -> None:
        super().__init__(
            f"Tool '{tool_name}' not found. Available tools: {available or []}",
            ErrorCode.TOOL_NOT_FOUND,
            tool_name,
        )


class ToolValidationError(ToolError):
    def __init__(self, tool_name: str, detail: str) -> None:
        super().__init__(
            f"Invalid arguments for tool '{tool_name}': {detail}",
            ErrorCode.TOOL_VALIDATION_ERROR,
            tool_name,
            should_continue=True,
        )
        self.recoverable = False


class ToolTimeoutError(ToolError):
    def __init__(self, tool_name: str, timeout_seconds: float) -> None:
        super().__init__(
            f"Tool {tool_name} execution timeout after {timeout_seconds:.1f}s",
            ErrorCode.TOOL_TIMEOUT,
            tool_name,
            should_continue=True,
        )
        self.timeout_seconds = timeout_seconds


# =============================================================================
# Execution / Session Errors
# =============================================================================


class TurnCancelledError(AgentError):
    """Raised inside a turn once its cancellation token is set."""

    def __init__(self, reason: str = "cancelled") -> None:
        super().__init__(f"Turn cancelled: {reason}", ErrorCode.TURN_CANCELLED, recoverable=False)
        self.reason = reason


class SessionNotFoundError(AgentError):
    def __init__(self, session_id: str) -> None:
        super().__init__(
            f"Session not found: {session_id}",
            ErrorCode.SESSION_NOT_FOUND,
            recoverable=False,
            context={"session_id": session_id},
        )
        self.session_id = session_id


# =============================================================================
# Classification Helpers
# =============================================================================


def is_recoverable(error: BaseException) -> bool:
    """
    Default retry predicate.

    AgentErrors answer with their own flag. Plain timeouts and connection
    failures are transient; everything else is treated as fatal.
    """
    if isinstance(error, AgentError):
        return error.recoverable
    if isinstance(error, asyncio.CancelledError):
        return False
    return isinstance(error, (TimeoutError, ConnectionError))


def error_code_of(error: BaseException) -> str:
    """Get a classification string for any exception."""
    if isinstance(error, AgentError):
        return error.code.value
    if isinstance(error, TimeoutError):
        return "TIMEOUT"
    return "UNKNOWN"
