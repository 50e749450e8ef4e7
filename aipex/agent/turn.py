"""
Turn: one request/response cycle with the language model.

A Turn streams the model response, batches text deltas, collects the tool
calls the model asked for and runs them once the stream has ended:

    INIT -> LLM_CALLING -> TOOL_EXECUTING (only with tool calls) -> COMPLETED
                \\-> FAILED (uncaught error)        \\-> CANCELLED (cancel())

Design:
    - execute() is a single-use async generator of TurnEvents
    - Cancellation is cooperative: the token is checked before every
      stream chunk, before every tool call and before completing. A
      cancelled turn never reaches COMPLETED
    - Deltas flushed by a buffer timer are yielded right away, even while
      the model stream is quiet
    - Tool calls run sequentially in request order; a failing call yields
      tool_call_error and the remaining calls still run
    - Cleanup callbacks run exactly once on every exit path

Usage:
    turn = Turn(llm, registry, request, session_id="s1")

    async for event in turn.execute():
        print(event.type)

    if turn.outcome.should_continue:
        history.extend(turn.outcome.to_items())
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from aipex.conversation.items import (
    FunctionCallItem,
    FunctionResultItem,
    assistant_message,
)
from aipex.llm.base import (
    ContentChunk,
    DoneChunk,
    FunctionCallChunk,
    ThinkingChunk,
)
from aipex.tools.base import ToolContext
from aipex.utils.cancellation import CancellationToken
from aipex.utils.errors import TurnCancelledError
from aipex.utils.ids import generate_id
from aipex.utils.stream_buffer import StreamBuffer

from .events import (
    ContentDelta,
    LLMStreamEnd,
    LLMStreamStart,
    ThinkingDelta,
    ToolCallComplete,
    ToolCallError,
    ToolCallPending,
    ToolCallStart,
    TurnComplete,
    TurnEvent,
)

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Callable

    from aipex.conversation.items import ConversationItem
    from aipex.llm.base import FunctionCall, LLMClient, LLMRequest, TokenUsage
    from aipex.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)

_STREAM_END = object()


async def _read_chunk(stream: AsyncIterator[Any]) -> Any:
    try:
        return await anext(stream)
    except StopAsyncIteration:
        return _STREAM_END


class TurnState(str, Enum):
    INIT = "init"
    LLM_CALLING = "llm_calling"
    TOOL_EXECUTING = "tool_executing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class TurnOutcome:
    """
    What a turn produced, in the shape the conversation log needs.

    Attributes:
        text: Assistant text emitted through content deltas
        function_calls: Tool calls requested by the model, in order
        results: One result item per executed call (errors included)
        usage: Token usage reported by the final stream chunk
    """

    text: str = ""
    function_calls: list[FunctionCall] = field(default_factory=list)
    results: list[FunctionResultItem] = field(default_factory=list)
    usage: TokenUsage | None = None

    @property
    def should_continue(self) -> bool:
        return len(self.function_calls) > 0

    def to_items(self) -> list[ConversationItem]:
        """Assistant message, then the calls, then their results."""
        if not self.text and not self.function_calls:
            return []

        items: list[ConversationItem] = [assistant_message(self.text)]
        items.extend(
            FunctionCallItem(call_id=call.id, name=call.name, arguments=call.params)
            for call in self.function_calls
        )
        items.extend(self.results)
        return items


class Turn:
    """
    Executes exactly one model request and the tool calls it yields.

    A Turn is single-use: calling execute() a second time raises
    RuntimeError.
    """

    def __init__(
        self,
        llm: LLMClient,
        tools: ToolRegistry,
        request: LLMRequest,
        session_id: str,
        *,
        turn_id: str | None = None,
        content_buffer: StreamBuffer | None = None,
        thinking_buffer: StreamBuffer | None = None,
    ) -> None:
        self.id = turn_id or generate_id("turn")
        self.session_id = session_id

        self._llm = llm
        self._tools = tools
        self._request = request

        self._state = TurnState.INIT
        self._token = CancellationToken()
        self._cleanup_callbacks: list[Callable[[], Awaitable[None] | None]] = []
        self._cleaned_up = False
        self._started = False

        self._content_buffer = content_buffer or StreamBuffer(delay=0.05, max_buffer_size=1024)
        self._thinking_buffer = thinking_buffer or StreamBuffer(delay=0.1, max_buffer_size=512)

        # Deltas flushed by buffer timers or size limits, drained by execute()
        self._ready: list[TurnEvent] = []
        self._flushed = asyncio.Event()
        self._outcome = TurnOutcome()

    @property
    def state(self) -> TurnState:
        return self._state

    @property
    def outcome(self) -> TurnOutcome:
        return self._outcome

    @property
    def cancellation_token(self) -> CancellationToken:
        return self._token

    def on_cleanup(self, callback: Callable[[], Awaitable[None] | None]) -> None:
        """Register a callback run once when the turn ends, however it ends."""
        self._cleanup_callbacks.append(callback)

    async def execute(self) -> AsyncIterator[TurnEvent]:
        """
        Run the turn, yielding events in chronological order.

        Raises:
            RuntimeError: If the turn was already executed
            TurnCancelledError: If cancel() was called mid-turn
            LLMError: If the model stream fails
        """
        if self._started:
            raise RuntimeError(f"Turn {self.id} has already been executed")
        self._started = True

        try:
            self._state = TurnState.LLM_CALLING
            logger.debug(f"[turn] {self.id} calling LLM ({self._llm.name})")
            yield LLMStreamStart()

            stream = aiter(self._llm.generate_stream(self._request))
            next_chunk: asyncio.Future[Any] | None = None
            cancelled = asyncio.ensure_future(self._token.wait())
            try:
                while True:
                    self._token.raise_if_cancelled()
                    if next_chunk is None:
                        next_chunk = asyncio.ensure_future(_read_chunk(stream))

                    # Wake on a chunk, on a buffer timer flush or on cancel()
                    flushed = asyncio.ensure_future(self._flushed.wait())
                    try:
                        await asyncio.wait(
                            {next_chunk, flushed, cancelled},
                            return_when=asyncio.FIRST_COMPLETED,
                        )
                    finally:
                        flushed.cancel()
                    self._token.raise_if_cancelled()

                    for event in self._drain():
                        yield event
                    if not next_chunk.done():
                        continue

                    chunk, next_chunk = next_chunk.result(), None
                    if chunk is _STREAM_END:
                        break

                    pending = self._handle_chunk(chunk)

                    for event in self._drain():
                        yield event
                    if pending is not None:
                        yield pending
            finally:
                cancelled.cancel()
                if next_chunk is not None and not next_chunk.done():
                    next_chunk.cancel()
                    await asyncio.wait({next_chunk})
                aclose = getattr(stream, "aclose", None)
                if aclose is not None:
                    await aclose()

            self._flush_buffers()
            for event in self._drain():
                yield event
            yield LLMStreamEnd(usage=self._outcome.usage)

            if self._outcome.function_calls:
                self._state = TurnState.TOOL_EXECUTING
                for call in self._outcome.function_calls:
                    self._token.raise_if_cancelled()
                    async for event in self._run_tool(call):
                        yield event

            # cancel() may have landed while the last call or the stream end was in flight
            self._token.raise_if_cancelled()
            self._state = TurnState.COMPLETED
            yield TurnComplete(turn_id=self.id, should_continue=self._outcome.should_continue)

        except asyncio.CancelledError:
            self._state = TurnState.CANCELLED
            raise

        except TurnCancelledError:
            self._state = TurnState.CANCELLED
            logger.info(f"[turn] {self.id} cancelled")
            raise

        except Exception as e:
            if self._state is not TurnState.CANCELLED:
                self._state = TurnState.FAILED
            logger.error(f"[turn] {self.id} failed: {e}")
            raise

        finally:
            await self._cleanup()

    async def cancel(self, reason: str = "Turn was cancelled") -> None:
        """Cancel the turn. No-op once it has completed."""
        if self._state is TurnState.COMPLETED:
            return

        self._state = TurnState.CANCELLED
        self._token.cancel(reason)
        await self._cleanup()

    # =========================================================================
    # Streaming
    # =========================================================================

    def _handle_chunk(self, chunk: Any) -> ToolCallPending | None:
        """
        Route one stream chunk.

        Text goes to its buffer. Before text of the other channel or a
        tool call is accepted, pending text is flushed so the event order
        matches the order the model produced it in.
        """
        if isinstance(chunk, ContentChunk):
            self._thinking_buffer.flush(self._emit_thinking)
            self._content_buffer.add(chunk.delta, self._emit_content)
            return None

        if isinstance(chunk, ThinkingChunk):
            self._content_buffer.flush(self._emit_content)
            self._thinking_buffer.add(chunk.delta, self._emit_thinking)
            return None

        if isinstance(chunk, FunctionCallChunk):
            self._flush_buffers()
            call = chunk.call
            self._outcome.function_calls.append(call)
            return ToolCallPending(call_id=call.id, tool_name=call.name, params=call.params)

        if isinstance(chunk, DoneChunk):
            self._outcome.usage = chunk.usage
            self._flush_buffers()
            return None

        logger.warning(f"[turn] {self.id} ignoring unknown chunk: {type(chunk).__name__}")
        return None

    def _emit_content(self, text: str) -> None:
        self._outcome.text += text
        self._ready.append(ContentDelta(delta=text))
        self._flushed.set()

    def _emit_thinking(self, text: str) -> None:
        self._ready.append(ThinkingDelta(delta=text))
        self._flushed.set()

    def _flush_buffers(self) -> None:
        self._content_buffer.flush(self._emit_content)
        self._thinking_buffer.flush(self._emit_thinking)

    def _drain(self) -> list[TurnEvent]:
        self._flushed.clear()
        events, self._ready = self._ready, []
        return events

    # =========================================================================
    # Tools
    # =========================================================================

    async def _run_tool(self, call: FunctionCall) -> AsyncIterator[TurnEvent]:
        yield ToolCallStart(call_id=call.id, tool_name=call.name)

        context = ToolContext(
            call_id=call.id,
            turn_id=self.id,
            session_id=self.session_id,
            cancellation_token=self._token,
        )
        start = time.perf_counter()

        try:
            result = await self._tools.execute(call.name, call.params, context)

        except TurnCancelledError:
            raise

        except Exception as e:
            logger.warning(f"[turn] Tool {call.name} ({call.id}) failed: {e}")
            self._outcome.results.append(
                FunctionResultItem(call_id=call.id, name=call.name, output=str(e), is_error=True)
            )
            yield ToolCallError(call_id=call.id, tool_name=call.name, error=e)
            return

        duration_ms = (time.perf_counter() - start) * 1000
        self._outcome.results.append(
            FunctionResultItem(
                call_id=call.id,
                name=call.name,
                output=result.to_output(),
                is_error=result.is_error,
            )
        )
        yield ToolCallComplete(
            call_id=call.id,
            tool_name=call.name,
            result=result,
            duration_ms=duration_ms,
        )

    # =========================================================================
    # Cleanup
    # =========================================================================

    async def _cleanup(self) -> None:
        if self._cleaned_up:
            return
        self._cleaned_up = True

        self._content_buffer.dispose()
        self._thinking_buffer.dispose()

        for callback in self._cleanup_callbacks:
            try:
                result = callback()
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"[turn] Cleanup callback failed for {self.id}: {e}")

    def __repr__(self) -> str:
        return f"<Turn id={self.id} state={self._state.value}>"
