"""
Agent: top-level entry point of the runtime.

The Agent owns one AgentExecutor per session id. The map is held by the
instance (or injected), never module-global, so independent agents can
coexist in one process.

With a ConversationManager attached, sessions are created and loaded
through it, each executor works directly on the Session log, and the
session is saved (and possibly compressed) when a run ends.

Usage:
    agent = Agent(llm, registry, settings=AgentSettings(max_turns=5))

    async for event in agent.execute("Summarize this page"):
        if event.type == "session_created":
            session_id = event.session_id

    async for event in agent.continue_conversation(session_id, "Now translate it"):
        ...
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from aipex.config.schemas import AgentSettings
from aipex.utils.ids import generate_id

from .events import SessionCreated
from .executor import AgentExecutor

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from aipex.conversation.manager import ConversationManager
    from aipex.llm.base import LLMClient
    from aipex.tools.registry import ToolRegistry

    from .events import AgentEvent

logger = logging.getLogger(__name__)


class Agent:
    """
    Session facade over AgentExecutors.

    Concurrency:
        Different sessions can run concurrently. Overlapping runs on the
        same session are rejected: the second run() raises RuntimeError
        instead of interleaving turns in one history.
    """

    def __init__(
        self,
        llm: LLMClient,
        tools: ToolRegistry,
        *,
        settings: AgentSettings | None = None,
        conversations: ConversationManager | None = None,
        executors: dict[str, AgentExecutor] | None = None,
    ) -> None:
        """
        Args:
            llm: Language-model client shared by all sessions
            tools: Tool registry shared by all sessions
            settings: Loop settings for new executors
            conversations: Optional manager persisting sessions
            executors: Session map to use (a new one by default)
        """
        self._llm = llm
        self._tools = tools
        self._settings = settings or AgentSettings()
        self._conversations = conversations
        self._executors: dict[str, AgentExecutor] = executors if executors is not None else {}

    @classmethod
    def create(
        cls,
        llm: LLMClient,
        tools: ToolRegistry,
        conversations: ConversationManager | None = None,
        **config,
    ) -> Agent:
        """Build an agent from AgentSettings fields, e.g. max_turns=5."""
        return cls(llm, tools, settings=AgentSettings(**config), conversations=conversations)

    @property
    def tool_registry(self) -> ToolRegistry:
        return self._tools

    @property
    def conversations(self) -> ConversationManager | None:
        return self._conversations

    async def execute(self, input: str) -> AsyncIterator[AgentEvent]:
        """Start a new session and run the input in it."""
        if self._conversations is not None:
            session = await self._conversations.create_session()
            session_id = session.id
        else:
            session_id = generate_id()

        logger.info(f"[agent] Created session {session_id}")
        yield SessionCreated(session_id=session_id)

        async for event in self.continue_conversation(session_id, input):
            yield event

    async def continue_conversation(self, session_id: str, input: str) -> AsyncIterator[AgentEvent]:
        """Run the input in an existing session, creating its executor if needed."""
        executor = await self._get_or_create_executor(session_id)

        started = False
        try:
            async for event in executor.run(input):
                started = True
                yield event
        finally:
            if started and self._conversations is not None:
                await self._conversations.save_session(executor.session)

    async def interrupt(self, session_id: str) -> None:
        """Interrupt the session's active run. Unknown ids are ignored."""
        executor = self._executors.get(session_id)
        if executor is not None:
            await executor.interrupt()

    def get_session(self, session_id: str) -> AgentExecutor | None:
        return self._executors.get(session_id)

    def delete_session(self, session_id: str) -> bool:
        return self._executors.pop(session_id, None) is not None

    def list_sessions(self) -> list[str]:
        return list(self._executors)

    async def _get_or_create_executor(self, session_id: str) -> AgentExecutor:
        executor = self._executors.get(session_id)
        if executor is not None:
            return executor

        session = None
        if self._conversations is not None:
            session = await self._conversations.get_session(session_id)
            if session is None:
                session = await self._conversations.create_session(session_id=session_id)

        executor = AgentExecutor.from_settings(
            session_id, self._llm, self._tools, self._settings, session=session
        )
        # Another task may have created one while we were awaiting storage
        return self._executors.setdefault(session_id, executor)

    def __repr__(self) -> str:
        return f"<Agent sessions={len(self._executors)} tools={len(self._tools)}>"
