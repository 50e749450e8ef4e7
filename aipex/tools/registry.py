"""
Tool Registry.

The registry manages available tools for agents:
- Registration with validation
- Lookup by name
- Schema export for LLM
- Execution with argument validation, per-call timeout and metrics

The registry is shared across sessions, so its tool map is lock-guarded.

Usage:
    registry = ToolRegistry(default_timeout=30.0)
    registry.register(ClickTool())

    result = await registry.execute(
        "click",
        {"x": 1, "y": 2},
        ToolContext(call_id="c1", turn_id="t1", session_id="s1"),
    )

    # Get all schemas for LLM
    schemas = registry.to_llm_schemas()
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from aipex.utils.errors import (
    AgentError,
    ErrorCode,
    ToolError,
    ToolNotFoundError,
    ToolTimeoutError,
    ToolValidationError,
)

from .monitor import ToolMonitor

if TYPE_CHECKING:
    from collections.abc import Callable

    from aipex.config.schemas import AgentSettings

    from .base import Tool, ToolContext, ToolResult

logger = logging.getLogger(__name__)


class ToolRegistryError(Exception):
    """Error in tool registry operations."""

    pass


class ToolRegistry:
    """
    Registry of available tools for agents.

    Example:
        registry = ToolRegistry()
        unregister = registry.register(ClickTool())

        tool = registry.get("click")
        unregister()
    """

    def __init__(
        self,
        default_timeout: float = 30.0,
        monitor: ToolMonitor | None = None,
    ) -> None:
        self._tools: dict[str, Tool] = {}
        self._lock = threading.RLock()
        self._default_timeout = default_timeout
        self._monitor = monitor or ToolMonitor()

    @classmethod
    def from_settings(
        cls,
        settings: AgentSettings,
        monitor: ToolMonitor | None = None,
    ) -> ToolRegistry:
        """Registry whose default timeout is settings.tool_timeout_seconds."""
        return cls(default_timeout=settings.tool_timeout_seconds, monitor=monitor)

    @property
    def monitor(self) -> ToolMonitor:
        return self._monitor

    def register(self, tool: Tool) -> Callable[[], bool]:
        """
        Register a tool.

        Returns:
            Callable that unregisters the tool again

        Raises:
            ToolRegistryError: If tool name already registered or tool is invalid
        """
        self._validate_tool(tool)

        with self._lock:
            if tool.name in self._tools:
                raise ToolRegistryError(
                    f"Tool '{tool.name}' already registered. Use a unique name or unregister first."
                )
            self._tools[tool.name] = tool

        logger.info(f"[tool_registry] Registered tool: {tool.name}")
        return lambda: self.unregister(tool.name)

    def unregister(self, name: str) -> bool:
        """
        Unregister a tool by name.

        Returns:
            True if tool was unregistered, False if not found
        """
        with self._lock:
            removed = self._tools.pop(name, None)
        if removed is not None:
            logger.info(f"[tool_registry] Unregistered tool: {name}")
            return True
        return False

    def get(self, name: str) -> Tool | None:
        with self._lock:
            return self._tools.get(name)

    def get_required(self, name: str) -> Tool:
        """
        Get a tool by name, raising if not found.

        Raises:
            ToolNotFoundError: If tool not found
        """
        with self._lock:
            tool = self._tools.get(name)
            if tool is None:
                raise ToolNotFoundError(name, list(self._tools.keys()))
            return tool

    def list_tools(self) -> list[Tool]:
        with self._lock:
            return list(self._tools.values())

    def list_names(self) -> list[str]:
        with self._lock:
            return list(self._tools.keys())

    def to_llm_schemas(self) -> list[dict[str, Any]]:
        """Get all tool schemas for LLM tool use."""
        return [tool.to_llm_schema() for tool in self.list_tools()]

    async def execute(
        self,
        name: str,
        params: dict[str, Any],
        context: ToolContext,
    ) -> ToolResult:
        """
        Validate and run a tool under its timeout.

        Args:
            name: Tool name
            params: Raw arguments from the model
            context: Call ids and cancellation token

        Returns:
            ToolResult from the tool (may itself be an error result)

        Raises:
            ToolNotFoundError: Unknown tool
            ToolValidationError: Arguments rejected
            ToolTimeoutError: Tool exceeded its timeout
            ToolError: Tool raised an unexpected exception
            TurnCancelledError: Turn cancelled before the tool started
        """
        tool = self.get_required(name)
        context.raise_if_cancelled()

        try:
            arguments = tool.validate_arguments(params or {})
        except (ValidationError, KeyError, TypeError, ValueError) as e:
            raise ToolValidationError(name, str(e)) from e

        timeout = tool.timeout_seconds or self._default_timeout
        start = time.perf_counter()
        success = False

        try:
            result = await asyncio.wait_for(tool.execute(arguments, context), timeout=timeout)
            success = not result.is_error
            return result

        except TimeoutError as e:
            logger.warning(f"[tool_registry] Tool {name} timed out after {timeout:.1f}s")
            raise ToolTimeoutError(name, timeout) from e

        except AgentError:
            raise

        except Exception as e:
            logger.error(f"[tool_registry] Tool execution error in {name}: {e}")
            raise ToolError(str(e), ErrorCode.TOOL_EXECUTION_ERROR, name) from e

        finally:
            duration_ms = (time.perf_counter() - start) * 1000
            self._monitor.record_call(name, success, duration_ms)

    def _validate_tool(self, tool: Tool) -> None:
        """
        Validate tool has required properties.

        Raises:
            ToolRegistryError: If tool is invalid
        """
        if not tool.name or not isinstance(tool.name, str):
            raise ToolRegistryError(f"Tool must have a valid name: {tool}")

        if not tool.description or not isinstance(tool.description, str):
            raise ToolRegistryError(f"Tool '{tool.name}' must have a description")

        schema = tool.input_schema
        if not isinstance(schema, dict):
            raise ToolRegistryError(f"Tool '{tool.name}' input_schema must be a dict")

        if schema.get("type") != "object":
            raise ToolRegistryError(f"Tool '{tool.name}' input_schema must have type: 'object'")

        if "properties" not in schema:
            raise ToolRegistryError(f"Tool '{tool.name}' input_schema must have 'properties'")

    def __len__(self) -> int:
        with self._lock:
            return len(self._tools)

    def __contains__(self, name: str) -> bool:
        with self._lock:
            return name in self._tools

    def __repr__(self) -> str:
        return f"<ToolRegistry tools={self.list_names()}>"
