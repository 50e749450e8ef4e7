"""
Agent Executor (Turn Supervisor).

The AgentExecutor runs the turn loop for one session:
1. Append the user input to the session log
2. Run a Turn over the whole log, forwarding its events
3. Fold the assistant text, tool calls and tool results back into the log
4. If the model called tools, start another Turn; otherwise finish

Stop conditions (each ends the run with execution_complete):
    finished       the model answered without calling tools
    max_turns      turn ceiling reached (max_turns_reached is emitted first)
    loop_detected  the same tool call keeps repeating (loop_detected first)
    cancelled      interrupt() was called

A Turn failure ends the run with execution_error instead. There is no
automatic retry here; retrying is the model client's job.

Usage:
    executor = AgentExecutor("session-1", llm, registry, max_turns=10)

    async for event in executor.run("Open the settings page"):
        if event.type == "content_delta":
            print(event.delta, end="")

    history = executor.get_history()
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING

from aipex.conversation.items import user_message
from aipex.conversation.session import Session
from aipex.llm.base import LLMRequest
from aipex.observability import ExecutionLogger
from aipex.utils.errors import TurnCancelledError, error_code_of, is_recoverable
from aipex.utils.ids import generate_id
from aipex.utils.stream_buffer import StreamBuffer

from .events import (
    AgentEvent,
    CompletionReason,
    ExecutionComplete,
    ExecutionError,
    ExecutionStart,
    LoopDetected,
    MaxTurnsReached,
    ToolCallComplete,
    ToolCallError,
    TurnStart,
)
from .loop_detector import LoopDetector
from .turn import Turn

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from aipex.config.schemas import AgentSettings, StreamBufferSettings
    from aipex.conversation.items import ConversationItem
    from aipex.llm.base import LLMClient
    from aipex.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)


class AgentExecutor:
    """
    Supervises the sequence of Turns for one session.

    Turns of one run are strictly sequential: turn n completes before
    turn n+1 starts. Only one run may be active at a time; a second
    concurrent run() raises RuntimeError.

    Example:
        executor = AgentExecutor(
            "session-1",
            llm,
            registry,
            max_turns=5,
            system_prompt="You control a browser.",
        )

        async for event in executor.run("Find the pricing page"):
            ...

        # Stop the active turn from another task
        await executor.interrupt()
    """

    def __init__(
        self,
        session_id: str,
        llm: LLMClient,
        tools: ToolRegistry,
        *,
        max_turns: int = 10,
        system_prompt: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        session: Session | None = None,
        loop_detector: LoopDetector | None = None,
        content_buffer: StreamBufferSettings | None = None,
        thinking_buffer: StreamBufferSettings | None = None,
    ) -> None:
        """
        Initialize the executor.

        Args:
            session_id: Session this executor drives
            llm: Language-model client (usually a ResilientLLMClient)
            tools: Registry the turns execute tool calls against
            max_turns: Turn ceiling per run
            system_prompt: Sent ahead of the history on every request
            temperature: Sampling temperature forwarded to the model
            max_tokens: Generation limit forwarded to the model
            session: Existing session whose log becomes the history
            loop_detector: Detector for repeated tool calls
            content_buffer: Debounce settings for content deltas
            thinking_buffer: Debounce settings for thinking deltas
        """
        if session is not None and session.id != session_id:
            raise ValueError(f"Session id mismatch: {session.id} != {session_id}")

        self.session_id = session_id
        self._llm = llm
        self._tools = tools
        self._max_turns = max_turns
        self._system_prompt = system_prompt
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._session = session if session is not None else Session(session_id)
        self._loop_detector = loop_detector if loop_detector is not None else LoopDetector()
        self._content_buffer = content_buffer
        self._thinking_buffer = thinking_buffer
        self._log = ExecutionLogger(session_id=session_id)

        self._current_turn = 0
        self._active_turn: Turn | None = None
        self._interrupted = False
        self._running = False

    @classmethod
    def from_settings(
        cls,
        session_id: str,
        llm: LLMClient,
        tools: ToolRegistry,
        settings: AgentSettings,
        session: Session | None = None,
    ) -> AgentExecutor:
        return cls(
            session_id,
            llm,
            tools,
            max_turns=settings.max_turns,
            system_prompt=settings.system_prompt,
            temperature=settings.temperature,
            max_tokens=settings.max_tokens,
            session=session,
            content_buffer=settings.content_buffer,
            thinking_buffer=settings.thinking_buffer,
        )

    @property
    def session(self) -> Session:
        return self._session

    @property
    def current_turn(self) -> int:
        return self._current_turn

    @property
    def is_running(self) -> bool:
        return self._running

    async def run(self, input: str) -> AsyncIterator[AgentEvent]:
        """
        Run turns for one user input until a stop condition.

        Yields:
            execution_start, then per turn turn_start and the turn's
            events, then exactly one terminal event (execution_complete
            or execution_error), preceded by max_turns_reached or
            loop_detected when those stop the run.

        Raises:
            RuntimeError: If a run is already active on this executor
        """
        if self._running:
            raise RuntimeError(f"Session {self.session_id} already has an active run")

        self._running = True
        self._interrupted = False
        self._current_turn = 0
        started = time.perf_counter()

        try:
            self._log.execution_started(input_preview=input, max_turns=self._max_turns)
            yield ExecutionStart(session_id=self.session_id)

            self._session.add_item(user_message(input))
            self._session.record_turn()

            async for event in self._turn_loop():
                yield event
                if isinstance(event, ExecutionComplete):
                    self._log.execution_completed(
                        reason=event.reason.value,
                        turns=event.turns,
                        duration_ms=(time.perf_counter() - started) * 1000,
                    )

        except asyncio.CancelledError:
            logger.info(f"[agent_executor] Execution cancelled for session {self.session_id}")
            raise

        finally:
            self._active_turn = None
            self._running = False

    async def interrupt(self) -> None:
        """Cancel the active turn and stop the run after it."""
        self._interrupted = True
        turn = self._active_turn
        if turn is not None:
            logger.info(f"[agent_executor] Interrupting turn {turn.id}")
            await turn.cancel("Interrupted by caller")

    def get_history(self) -> list[ConversationItem]:
        return self._session.get_items()

    # =========================================================================
    # Loop
    # =========================================================================

    async def _turn_loop(self) -> AsyncIterator[AgentEvent]:
        while True:
            if self._interrupted:
                yield self._complete(CompletionReason.CANCELLED, "Interrupted before next turn")
                return

            self._current_turn += 1
            turn = self._build_turn()
            self._active_turn = turn

            logger.info(
                f"[agent_executor] Turn {self._current_turn}/{self._max_turns} "
                f"(session: {self.session_id})"
            )
            self._log.turn_started(turn_id=turn.id, number=self._current_turn)
            yield TurnStart(turn_id=turn.id, number=self._current_turn)

            try:
                async for event in turn.execute():
                    self._observe(event)
                    yield event

            except TurnCancelledError as e:
                yield self._complete(CompletionReason.CANCELLED, e.reason)
                return

            except Exception as e:
                recoverable = is_recoverable(e)
                logger.error(f"[agent_executor] Turn {turn.id} failed: {e}")
                self._log.execution_failed(
                    error=str(e),
                    error_code=error_code_of(e),
                    recoverable=recoverable,
                    turns=self._current_turn,
                )
                yield ExecutionError(error=e, recoverable=recoverable)
                return

            finally:
                self._active_turn = None

            outcome = turn.outcome
            self._session.add_items(outcome.to_items())
            self._log.turn_completed(
                turn_id=turn.id,
                should_continue=outcome.should_continue,
                tool_calls=len(outcome.function_calls),
            )

            if not outcome.should_continue:
                yield self._complete(CompletionReason.FINISHED)
                return

            if self._interrupted:
                yield self._complete(CompletionReason.CANCELLED, "Interrupted after turn")
                return

            if self._current_turn >= self._max_turns:
                logger.warning(f"[agent_executor] Max turns ({self._max_turns}) reached")
                self._log.stop_signal("max_turns", self._current_turn)
                yield MaxTurnsReached(turns=self._current_turn, max_turns=self._max_turns)
                yield self._complete(CompletionReason.MAX_TURNS)
                return

            for call in outcome.function_calls:
                if self._loop_detector.check_loop(call.name, call.params):
                    logger.warning(f"[agent_executor] Loop detected: {call.name} {call.params}")
                    self._log.stop_signal("loop_detected", self._current_turn, tool_name=call.name)
                    yield LoopDetected(
                        tool_name=call.name,
                        params=call.params,
                        turns=self._current_turn,
                    )
                    yield self._complete(
                        CompletionReason.LOOP_DETECTED,
                        f"Tool {call.name} called repeatedly with similar params",
                    )
                    return

    def _build_turn(self) -> Turn:
        request = LLMRequest(
            items=self._session.get_items(),
            tools=self._tools.to_llm_schemas(),
            system_prompt=self._system_prompt,
            temperature=self._temperature,
            max_tokens=self._max_tokens,
        )
        return Turn(
            self._llm,
            self._tools,
            request,
            self.session_id,
            turn_id=generate_id("turn"),
            content_buffer=self._make_buffer(self._content_buffer),
            thinking_buffer=self._make_buffer(self._thinking_buffer),
        )

    def _complete(self, reason: CompletionReason, details: str = "") -> ExecutionComplete:
        return ExecutionComplete(reason=reason, turns=self._current_turn, details=details)

    def _observe(self, event: AgentEvent) -> None:
        if isinstance(event, ToolCallComplete):
            self._log.tool_call_completed(event.tool_name, event.call_id, event.duration_ms)
        elif isinstance(event, ToolCallError):
            self._log.tool_call_failed(event.tool_name, event.call_id, str(event.error))

    @staticmethod
    def _make_buffer(settings: StreamBufferSettings | None) -> StreamBuffer | None:
        if settings is None:
            return None
        return StreamBuffer(delay=settings.delay_seconds, max_buffer_size=settings.max_buffer_size)

    def __repr__(self) -> str:
        return f"<AgentExecutor session={self.session_id} turns={self._current_turn}>"
