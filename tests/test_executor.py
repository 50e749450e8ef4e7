"""
Tests for AgentExecutor.

Tests cover:
- Multi-turn runs and history folding
- Stop conditions: finished, max turns, loop detection, interrupt
- Error events and their recoverable flag
- One active run per executor
"""

import asyncio

import pytest

from aipex.agent.events import CompletionReason, ExecutionComplete, ExecutionError, LoopDetected
from aipex.agent.executor import AgentExecutor
from aipex.agent.loop_detector import LoopDetector
from aipex.config.schemas import AgentSettings
from aipex.conversation.items import FunctionCallItem, FunctionResultItem, MessageItem
from aipex.conversation.session import Session
from aipex.llm.base import ContentChunk
from aipex.tools.registry import ToolRegistry
from aipex.utils.errors import LLMAuthError, LLMRateLimitError
from conftest import ScriptedLLM, WaitTool, text_reply, tool_reply

CLICK = ("c1", "click", {"x": 10, "y": 20})


async def run_all(executor, text="hi"):
    return [event async for event in executor.run(text)]


class TestExecutorRuns:
    """Complete runs through one or more turns."""

    @pytest.mark.asyncio
    async def test_tool_turn_then_answer(self, registry, event_types):
        llm = ScriptedLLM(tool_reply(CLICK), text_reply("Done"))
        executor = AgentExecutor("s1", llm, registry)

        events = await run_all(executor, "Click the button")

        assert event_types(events) == [
            "execution_start",
            "turn_start",
            "llm_stream_start",
            "tool_call_pending",
            "llm_stream_end",
            "tool_call_start",
            "tool_call_complete",
            "turn_complete",
            "turn_start",
            "llm_stream_start",
            "content_delta",
            "llm_stream_end",
            "turn_complete",
            "execution_complete",
        ]
        final = events[-1]
        assert final.reason == CompletionReason.FINISHED
        assert final.turns == 2

    @pytest.mark.asyncio
    async def test_history_is_folded_in_order(self, registry):
        llm = ScriptedLLM(tool_reply(CLICK), text_reply("Done"))
        executor = AgentExecutor("s1", llm, registry)

        await run_all(executor, "Click the button")
        history = executor.get_history()

        assert [type(item) for item in history] == [
            MessageItem,
            MessageItem,
            FunctionCallItem,
            FunctionResultItem,
            MessageItem,
        ]
        assert history[0].content == "Click the button"
        assert history[2].call_id == history[3].call_id == "c1"
        assert history[4].content == "Done"

    @pytest.mark.asyncio
    async def test_second_turn_sees_tool_results(self, registry):
        llm = ScriptedLLM(tool_reply(CLICK), text_reply("Done"))
        executor = AgentExecutor("s1", llm, registry)

        await run_all(executor)

        second_request = llm.requests[1]
        assert isinstance(second_request.items[-1], FunctionResultItem)
        assert second_request.items[-1].output == {"x": 10, "y": 20}

    @pytest.mark.asyncio
    async def test_request_carries_settings_and_tools(self, registry):
        llm = ScriptedLLM(text_reply("ok"))
        executor = AgentExecutor(
            "s1", llm, registry, system_prompt="Be brief", temperature=0.2, max_tokens=100
        )

        await run_all(executor)

        request = llm.requests[0]
        assert request.system_prompt == "Be brief"
        assert request.temperature == 0.2
        assert request.max_tokens == 100
        assert [tool["name"] for tool in request.tools] == ["click", "fail"]

    @pytest.mark.asyncio
    async def test_history_persists_and_turns_reset_between_runs(self, registry):
        llm = ScriptedLLM(text_reply("First"), text_reply("Second"))
        executor = AgentExecutor("s1", llm, registry)

        await run_all(executor, "one")
        events = await run_all(executor, "two")

        assert events[-1].turns == 1
        assert [item.content for item in executor.get_history()] == ["one", "First", "two", "Second"]
        assert executor.session.stats.total_turns == 2

    @pytest.mark.asyncio
    async def test_uses_given_session(self, registry):
        session = Session("s1")
        llm = ScriptedLLM(text_reply("ok"))
        executor = AgentExecutor("s1", llm, registry, session=session)

        await run_all(executor)

        assert executor.session is session
        assert session.item_count == 2

    def test_session_id_mismatch(self, registry):
        with pytest.raises(ValueError, match="mismatch"):
            AgentExecutor("s1", ScriptedLLM(), registry, session=Session("other"))

    @pytest.mark.asyncio
    async def test_from_settings(self, registry):
        llm = ScriptedLLM(text_reply("ok"))
        settings = AgentSettings(max_turns=3, system_prompt="Hello")

        executor = AgentExecutor.from_settings("s1", llm, registry, settings)
        await run_all(executor)

        assert llm.requests[0].system_prompt == "Hello"


class TestStopConditions:
    """Max turns, loop detection and interrupts."""

    @pytest.mark.asyncio
    async def test_max_turns(self, registry, event_types):
        llm = ScriptedLLM(tool_reply(("c1", "click", {"x": 1, "y": 1})), tool_reply(("c2", "click", {"x": 2, "y": 2})))
        executor = AgentExecutor("s1", llm, registry, max_turns=2)

        events = await run_all(executor)

        assert event_types(events)[-2:] == ["max_turns_reached", "execution_complete"]
        assert events[-2].max_turns == 2
        assert events[-1].reason == CompletionReason.MAX_TURNS
        assert events[-1].turns == 2
        assert len(llm.requests) == 2

    @pytest.mark.asyncio
    async def test_loop_detected_on_fourth_identical_call(self, registry, click_tool, event_types):
        llm = ScriptedLLM(tool_reply(CLICK))
        executor = AgentExecutor("s1", llm, registry, max_turns=10)

        events = await run_all(executor)

        assert event_types(events)[-2:] == ["loop_detected", "execution_complete"]
        loop = events[-2]
        assert isinstance(loop, LoopDetected)
        assert loop.tool_name == "click"
        assert loop.params == {"x": 10, "y": 20}
        assert events[-1].reason == CompletionReason.LOOP_DETECTED
        assert events[-1].turns == 4
        assert "click" in events[-1].details
        assert len(click_tool.calls) == 4

    @pytest.mark.asyncio
    async def test_injected_detector_is_used(self, registry, click_tool):
        detector = LoopDetector(repeat_threshold=1)
        llm = ScriptedLLM(tool_reply(CLICK))
        executor = AgentExecutor("s1", llm, registry, max_turns=10, loop_detector=detector)

        events = await run_all(executor)

        assert events[-1].reason == CompletionReason.LOOP_DETECTED
        assert events[-1].turns == 2

    @pytest.mark.asyncio
    async def test_varying_calls_do_not_loop(self, registry, event_types):
        llm = ScriptedLLM(*[tool_reply((f"c{i}", "click", {"x": i, "y": i})) for i in range(5)], text_reply("ok"))
        executor = AgentExecutor("s1", llm, registry, max_turns=10)

        events = await run_all(executor)

        assert "loop_detected" not in event_types(events)
        assert events[-1].reason == CompletionReason.FINISHED
        assert events[-1].turns == 6

    @pytest.mark.asyncio
    async def test_interrupt_mid_stream(self, registry, click_tool):
        llm = ScriptedLLM([ContentChunk("Let me"), *tool_reply(CLICK)])
        executor = AgentExecutor("s1", llm, registry)
        events = []

        async for event in executor.run("hi"):
            events.append(event)
            if event.type == "tool_call_pending":
                await executor.interrupt()

        final = events[-1]
        assert isinstance(final, ExecutionComplete)
        assert final.reason == CompletionReason.CANCELLED
        assert final.turns == 1
        assert click_tool.calls == []
        # Nothing from the cancelled turn is kept
        assert [item.content for item in executor.get_history()] == ["hi"]

    @pytest.mark.asyncio
    async def test_interrupt_during_tool(self, click_tool):
        registry = ToolRegistry()
        wait_tool = WaitTool(seconds=5.0)
        registry.register(wait_tool)
        registry.register(click_tool)
        llm = ScriptedLLM(tool_reply(("c1", "wait", {}), ("c2", "click", {"x": 1, "y": 1})))
        executor = AgentExecutor("s1", llm, registry)

        task = asyncio.create_task(run_all(executor))
        await wait_tool.started.wait()
        await executor.interrupt()
        events = await task

        assert events[-1].type == "execution_complete"
        assert events[-1].reason == CompletionReason.CANCELLED
        assert click_tool.calls == []
        assert not executor.is_running

    @pytest.mark.asyncio
    async def test_interrupt_between_turns(self, registry, event_types):
        llm = ScriptedLLM(tool_reply(CLICK), text_reply("never"))
        executor = AgentExecutor("s1", llm, registry)
        events = []

        async for event in executor.run("hi"):
            events.append(event)
            if event.type == "turn_complete":
                await executor.interrupt()

        assert event_types(events).count("turn_start") == 1
        assert events[-1].reason == CompletionReason.CANCELLED
        # The completed turn is kept
        assert len(executor.get_history()) == 4

    @pytest.mark.asyncio
    async def test_interrupt_when_idle_does_not_block_next_run(self, registry):
        executor = AgentExecutor("s1", ScriptedLLM(text_reply("ok")), registry)

        await executor.interrupt()
        events = await run_all(executor)

        assert events[-1].reason == CompletionReason.FINISHED


class TestExecutionErrors:
    """Turn failures end the run with execution_error."""

    @pytest.mark.asyncio
    async def test_auth_error_is_not_recoverable(self, registry):
        llm = ScriptedLLM([LLMAuthError("bad key", provider="scripted")])
        executor = AgentExecutor("s1", llm, registry)

        events = await run_all(executor)

        final = events[-1]
        assert isinstance(final, ExecutionError)
        assert isinstance(final.error, LLMAuthError)
        assert final.recoverable is False
        assert not executor.is_running

    @pytest.mark.asyncio
    async def test_rate_limit_is_recoverable(self, registry):
        llm = ScriptedLLM([LLMRateLimitError("slow down", provider="scripted")])
        executor = AgentExecutor("s1", llm, registry)

        events = await run_all(executor)

        assert events[-1].type == "execution_error"
        assert events[-1].recoverable is True

    @pytest.mark.asyncio
    async def test_unexpected_error_is_not_recoverable(self, registry):
        llm = ScriptedLLM([ValueError("bad chunk")])
        executor = AgentExecutor("s1", llm, registry)

        events = await run_all(executor)

        assert events[-1].type == "execution_error"
        assert events[-1].recoverable is False

    @pytest.mark.asyncio
    async def test_tool_failure_does_not_end_run(self, registry, event_types):
        llm = ScriptedLLM(tool_reply(("c1", "fail", {})), text_reply("Recovered"))
        executor = AgentExecutor("s1", llm, registry)

        events = await run_all(executor)

        assert "tool_call_error" in event_types(events)
        assert events[-1].reason == CompletionReason.FINISHED
        result = executor.get_history()[3]
        assert result.is_error is True
        assert "Boom" in result.output


class TestConcurrency:
    """One active run per executor."""

    @pytest.mark.asyncio
    async def test_overlapping_run_is_rejected(self, registry):
        executor = AgentExecutor("s1", ScriptedLLM(text_reply("ok")), registry)
        first = executor.run("one")
        await first.__anext__()
        assert executor.is_running

        second = executor.run("two")
        with pytest.raises(RuntimeError, match="active run"):
            await second.__anext__()

        await first.aclose()
        assert not executor.is_running

    @pytest.mark.asyncio
    async def test_executors_for_different_sessions_run_concurrently(self, registry):
        a = AgentExecutor("a", ScriptedLLM([0.02, *text_reply("A")]), registry)
        b = AgentExecutor("b", ScriptedLLM([0.02, *text_reply("B")]), registry)

        events_a, events_b = await asyncio.gather(run_all(a), run_all(b))

        assert events_a[-1].reason == CompletionReason.FINISHED
        assert events_b[-1].reason == CompletionReason.FINISHED
        assert a.get_history()[-1].content == "A"
        assert b.get_history()[-1].content == "B"
