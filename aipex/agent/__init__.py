"""
aipex Agent.

The orchestration loop: Agent (session map) -> AgentExecutor (turn
supervisor) -> Turn (one model request plus its tool calls). Everything
is reported through AgentEvents on lazily consumed async streams.
"""

from .agent import Agent
from .events import (
    AgentEvent,
    CompletionReason,
    ContentDelta,
    ExecutionComplete,
    ExecutionError,
    ExecutionStart,
    LLMStreamEnd,
    LLMStreamStart,
    LoopDetected,
    MaxTurnsReached,
    SessionCreated,
    ThinkingDelta,
    ToolCallComplete,
    ToolCallError,
    ToolCallPending,
    ToolCallStart,
    TurnComplete,
    TurnEvent,
    TurnStart,
)
from .executor import AgentExecutor
from .loop_detector import LoopDetector
from .turn import Turn, TurnOutcome, TurnState

__all__ = [
    "Agent",
    "AgentExecutor",
    "Turn",
    "TurnState",
    "TurnOutcome",
    "LoopDetector",
    # Events
    "AgentEvent",
    "TurnEvent",
    "CompletionReason",
    "SessionCreated",
    "ExecutionStart",
    "ExecutionComplete",
    "ExecutionError",
    "MaxTurnsReached",
    "LoopDetected",
    "TurnStart",
    "TurnComplete",
    "LLMStreamStart",
    "LLMStreamEnd",
    "ContentDelta",
    "ThinkingDelta",
    "ToolCallPending",
    "ToolCallStart",
    "ToolCallComplete",
    "ToolCallError",
]
