"""
Agent Events.

Everything the runtime does is reported as an event on a lazily consumed
async stream. Events are immutable and carry a `type` discriminator the
UI/chat layer switches on.

Ordering within one turn:
    llm_stream_start
    -> content_delta / thinking_delta / tool_call_pending (as produced)
    -> llm_stream_end
    -> tool_call_start -> tool_call_complete | tool_call_error (request order)
    -> turn_complete

Terminal events of a run:
    execution_complete  (finished, max_turns, loop_detected, cancelled)
    execution_error     (a turn failed)

max_turns_reached and loop_detected are stop signals, emitted right before
the matching execution_complete. They are not errors.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, ClassVar, Union

from aipex.utils.errors import AgentError

if TYPE_CHECKING:
    from aipex.llm.base import TokenUsage
    from aipex.tools.base import ToolResult


def _utc_now() -> datetime:
    return datetime.now(UTC)


class CompletionReason(str, Enum):
    """Why a run stopped without failing."""

    FINISHED = "finished"
    MAX_TURNS = "max_turns"
    LOOP_DETECTED = "loop_detected"
    CANCELLED = "cancelled"


def _jsonable(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, AgentError):
        return value.to_dict()
    if isinstance(value, BaseException):
        return {"error_class": type(value).__name__, "message": str(value)}
    if hasattr(value, "to_dict"):
        return value.to_dict()
    return value


@dataclass(frozen=True, kw_only=True, slots=True)
class AgentEvent:
    """Base class for all runtime events."""

    type: ClassVar[str] = "event"

    timestamp: datetime = field(default_factory=_utc_now)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": self.type}
        for f in fields(self):
            data[f.name] = _jsonable(getattr(self, f.name))
        return data


# =============================================================================
# Session / Execution Events
# =============================================================================


@dataclass(frozen=True, kw_only=True, slots=True)
class SessionCreated(AgentEvent):
    type: ClassVar[str] = "session_created"

    session_id: str


@dataclass(frozen=True, kw_only=True, slots=True)
class ExecutionStart(AgentEvent):
    type: ClassVar[str] = "execution_start"

    session_id: str


@dataclass(frozen=True, kw_only=True, slots=True)
class ExecutionComplete(AgentEvent):
    type: ClassVar[str] = "execution_complete"

    reason: CompletionReason
    turns: int
    details: str = ""


@dataclass(frozen=True, kw_only=True, slots=True)
class ExecutionError(AgentEvent):
    type: ClassVar[str] = "execution_error"

    error: BaseException
    recoverable: bool = False


@dataclass(frozen=True, kw_only=True, slots=True)
class MaxTurnsReached(AgentEvent):
    type: ClassVar[str] = "max_turns_reached"

    turns: int
    max_turns: int


@dataclass(frozen=True, kw_only=True, slots=True)
class LoopDetected(AgentEvent):
    type: ClassVar[str] = "loop_detected"

    tool_name: str
    params: dict[str, Any]
    turns: int


# =============================================================================
# Turn Events
# =============================================================================


@dataclass(frozen=True, kw_only=True, slots=True)
class TurnStart(AgentEvent):
    type: ClassVar[str] = "turn_start"

    turn_id: str
    number: int


@dataclass(frozen=True, kw_only=True, slots=True)
class TurnComplete(AgentEvent):
    type: ClassVar[str] = "turn_complete"

    turn_id: str
    should_continue: bool


@dataclass(frozen=True, kw_only=True, slots=True)
class LLMStreamStart(AgentEvent):
    type: ClassVar[str] = "llm_stream_start"


@dataclass(frozen=True, kw_only=True, slots=True)
class LLMStreamEnd(AgentEvent):
    type: ClassVar[str] = "llm_stream_end"

    usage: TokenUsage | None = None


@dataclass(frozen=True, kw_only=True, slots=True)
class ContentDelta(AgentEvent):
    type: ClassVar[str] = "content_delta"

    delta: str


@dataclass(frozen=True, kw_only=True, slots=True)
class ThinkingDelta(AgentEvent):
    type: ClassVar[str] = "thinking_delta"

    delta: str


# =============================================================================
# Tool Events
# =============================================================================


@dataclass(frozen=True, kw_only=True, slots=True)
class ToolCallPending(AgentEvent):
    type: ClassVar[str] = "tool_call_pending"

    call_id: str
    tool_name: str
    params: dict[str, Any]


@dataclass(frozen=True, kw_only=True, slots=True)
class ToolCallStart(AgentEvent):
    type: ClassVar[str] = "tool_call_start"

    call_id: str
    tool_name: str


@dataclass(frozen=True, kw_only=True, slots=True)
class ToolCallComplete(AgentEvent):
    type: ClassVar[str] = "tool_call_complete"

    call_id: str
    tool_name: str
    result: ToolResult
    duration_ms: float


@dataclass(frozen=True, kw_only=True, slots=True)
class ToolCallError(AgentEvent):
    type: ClassVar[str] = "tool_call_error"

    call_id: str
    tool_name: str
    error: BaseException


TurnEvent = Union[
    LLMStreamStart,
    ContentDelta,
    ThinkingDelta,
    ToolCallPending,
    LLMStreamEnd,
    ToolCallStart,
    ToolCallComplete,
    ToolCallError,
    TurnComplete,
]
