"""
aipex - An agent runtime for tool-using language models.

aipex drives a multi-turn loop against a streaming language model:

- **Turns**: stream a response, batch deltas, run requested tool calls
- **Executor**: chain turns with turn limits, loop detection and interrupts
- **Agent**: one executor per session, start/continue/interrupt
- **Conversations**: persisted sessions with forking, caching and compression
- **Tools**: MCP-aligned tools with validation, timeouts and metrics

Quick Start:
    >>> from aipex import Agent, ToolRegistry
    >>>
    >>> registry = ToolRegistry()
    >>> registry.register(ClickTool())
    >>> agent = Agent.create(llm, registry, max_turns=5)
    >>>
    >>> async for event in agent.execute("Open the settings page"):
    ...     print(event.type)
"""

__version__ = "0.1.0"

# Core exports for convenient imports
from aipex.agent import Agent, AgentEvent, AgentExecutor, LoopDetector, Turn
from aipex.config import AppSettings, get_settings
from aipex.conversation import ConversationManager, InMemorySessionStorage, Session
from aipex.llm import LLMClient, LLMRequest, ResilientLLMClient
from aipex.tools import Tool, ToolContext, ToolRegistry, ToolResult
from aipex.utils import AgentError, ErrorCode, retry

__all__ = [
    # Version info
    "__version__",
    # Agent
    "Agent",
    "AgentExecutor",
    "AgentEvent",
    "Turn",
    "LoopDetector",
    # Conversations
    "ConversationManager",
    "InMemorySessionStorage",
    "Session",
    # Models
    "LLMClient",
    "LLMRequest",
    "ResilientLLMClient",
    # Tools
    "Tool",
    "ToolContext",
    "ToolRegistry",
    "ToolResult",
    # Config / errors
    "AppSettings",
    "get_settings",
    "AgentError",
    "ErrorCode",
    "retry",
]
