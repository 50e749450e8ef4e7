"""
Pytest configuration and fixtures for aipex tests.
"""

import asyncio
import sys
from pathlib import Path

import pytest
from pydantic import BaseModel

# Add the repository root to path for imports
# This allows `from aipex.agent import ...` to work
repo_root = Path(__file__).parent.parent
if str(repo_root) not in sys.path:
    sys.path.insert(0, str(repo_root))

from aipex.llm.base import (  # noqa: E402
    ContentChunk,
    DoneChunk,
    FunctionCall,
    FunctionCallChunk,
    LLMResponse,
    TokenUsage,
)
from aipex.tools.base import Tool, ToolContext, ToolResult  # noqa: E402
from aipex.tools.registry import ToolRegistry  # noqa: E402


# =============================================================================
# Fake Language Model
# =============================================================================


class ScriptedLLM:
    """
    LLM client replaying scripted streams.

    Each call to generate_stream consumes the next script; the last one
    repeats forever. A script item is a chunk to yield, a float (seconds
    to sleep before the next item) or an exception to raise.
    """

    name = "scripted"

    def __init__(self, *scripts):
        self._scripts = [list(script) for script in scripts] or [[DoneChunk()]]
        self.requests = []

    async def generate_stream(self, request):
        self.requests.append(request)
        script = self._scripts.pop(0) if len(self._scripts) > 1 else self._scripts[0]
        for item in script:
            if isinstance(item, BaseException):
                raise item
            if isinstance(item, float):
                await asyncio.sleep(item)
                continue
            await asyncio.sleep(0)
            yield item

    async def generate_content(self, request):
        self.requests.append(request)
        return LLMResponse(text="ok", provider=self.name)

    async def count_tokens(self, request):
        return len(request.items)


def text_reply(text, usage=None):
    """Script: plain assistant text, then done."""
    return [ContentChunk(delta=text), DoneChunk(usage=usage or TokenUsage())]


def tool_reply(*calls):
    """Script: one function call chunk per (id, name, params), then done."""
    return [
        *(FunctionCallChunk(call=FunctionCall(id=cid, name=name, params=params)) for cid, name, params in calls),
        DoneChunk(),
    ]


# =============================================================================
# Fake Tools
# =============================================================================


class ClickArgs(BaseModel):
    x: int
    y: int


class ClickTool(Tool):
    """Records every click it receives."""

    args_model = ClickArgs

    def __init__(self):
        self.calls = []

    @property
    def name(self) -> str:
        return "click"

    @property
    def description(self) -> str:
        return "Click at page coordinates"

    async def execute(self, arguments: dict, context: ToolContext) -> ToolResult:
        self.calls.append(arguments)
        return ToolResult.success(
            f"Clicked at {arguments['x']},{arguments['y']}",
            structured={"x": arguments["x"], "y": arguments["y"]},
        )


class FailingTool(Tool):
    """Tool that always raises."""

    def __init__(self, name: str = "fail", error: Exception | None = None):
        self._name = name
        self._error = error or RuntimeError("Boom")
        self.call_count = 0

    @property
    def name(self) -> str:
        return self._name

    @property
    def description(self) -> str:
        return "A tool that always fails"

    @property
    def input_schema(self) -> dict:
        return {"type": "object", "properties": {}}

    async def execute(self, arguments: dict, context: ToolContext) -> ToolResult:
        self.call_count += 1
        raise self._error


class WaitTool(Tool):
    """Blocks until its turn is cancelled (or `seconds` pass)."""

    def __init__(self, seconds: float = 5.0, timeout: float | None = None):
        self._seconds = seconds
        self._timeout = timeout
        self.started = asyncio.Event()

    @property
    def name(self) -> str:
        return "wait"

    @property
    def description(self) -> str:
        return "Wait for a while"

    @property
    def input_schema(self) -> dict:
        return {"type": "object", "properties": {}}

    @property
    def timeout_seconds(self) -> float | None:
        return self._timeout

    async def execute(self, arguments: dict, context: ToolContext) -> ToolResult:
        self.started.set()
        token = context.cancellation_token
        if token is None:
            await asyncio.sleep(self._seconds)
        else:
            try:
                await asyncio.wait_for(token.wait(), timeout=self._seconds)
            except TimeoutError:
                return ToolResult.success("Waited")
        context.raise_if_cancelled()
        return ToolResult.success("Waited")


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def click_tool():
    return ClickTool()


@pytest.fixture
def registry(click_tool):
    """Registry with click and fail tools."""
    registry = ToolRegistry(default_timeout=5.0)
    registry.register(click_tool)
    registry.register(FailingTool())
    return registry


@pytest.fixture
def tool_context():
    return ToolContext(call_id="c1", turn_id="t1", session_id="s1")


@pytest.fixture
def make_llm():
    """Factory for ScriptedLLM instances."""
    return ScriptedLLM


@pytest.fixture
def event_types():
    """Helper turning a list of events into their type strings."""

    def _types(events):
        return [event.type for event in events]

    return _types
