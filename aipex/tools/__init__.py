"""
aipex Tools.

Tools are the "hands" of the agent: independent, testable units the model
can select and invoke. The registry executes them with validation,
timeouts and metrics; the turn executes requested calls one by one.

Usage:
    class MyTool(Tool):
        @property
        def name(self) -> str:
            return "my_tool"

        async def execute(self, arguments: dict, context: ToolContext) -> ToolResult:
            return ToolResult.success("Done!")

    registry = ToolRegistry()
    registry.register(MyTool())
"""

from .base import (
    ContentBlock,
    ContentType,
    Tool,
    ToolContext,
    ToolResult,
)
from .monitor import ToolMetrics, ToolMonitor
from .registry import ToolRegistry, ToolRegistryError

__all__ = [
    "Tool",
    "ToolResult",
    "ToolContext",
    "ContentBlock",
    "ContentType",
    "ToolRegistry",
    "ToolRegistryError",
    "ToolMonitor",
    "ToolMetrics",
]
