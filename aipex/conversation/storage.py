"""
Session Storage.

Storage is the source of truth for sessions; the ConversationManager only
caches on top of it.

Design:
    - SessionStorageAdapter Protocol defines the interface
    - InMemorySessionStorage is the in-process backend (tests, single process)
    - Disk, browser or key-value backends implement the same Protocol

Usage:
    storage = InMemorySessionStorage()
    await storage.save(session)

    restored = await storage.load(session.id)
    trees = await storage.get_session_tree()
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from .session import Session, SessionTree

if TYPE_CHECKING:
    from collections.abc import Sequence

    from .session import SessionSummary

logger = logging.getLogger(__name__)


# =============================================================================
# Storage Protocol
# =============================================================================


@runtime_checkable
class SessionStorageAdapter(Protocol):
    """
    Protocol for session storage backends.

    Backends persist whole sessions keyed by id and answer listing
    queries with SessionSummary values.
    """

    async def save(self, session: Session) -> None:
        """Persist a session, replacing any stored version."""
        ...

    async def load(self, session_id: str) -> Session | None:
        """Load a session, or None if it does not exist."""
        ...

    async def delete(self, session_id: str) -> None:
        """Delete a session. Unknown ids are ignored."""
        ...

    async def list_all(self) -> list[SessionSummary]:
        """Summaries of every stored session."""
        ...

    async def get_children(self, parent_id: str) -> list[SessionSummary]:
        """Summaries of sessions forked directly from parent_id."""
        ...

    async def get_session_tree(self, root_id: str | None = None) -> list[SessionTree]:
        """Fork forest, or the single tree rooted at root_id."""
        ...


# =============================================================================
# Tree Building
# =============================================================================


def build_session_tree(
    summaries: Sequence[SessionSummary],
    root_id: str | None = None,
) -> list[SessionTree]:
    """
    Group summaries into parent -> children trees.

    Without root_id, every session whose parent is unset or no longer
    stored becomes a root. With root_id, returns that session's tree, or
    an empty list if it is unknown.
    """
    by_id = {summary.id: summary for summary in summaries}
    children: dict[str | None, list[SessionSummary]] = {}
    for summary in summaries:
        parent = summary.parent_session_id if summary.parent_session_id in by_id else None
        children.setdefault(parent, []).append(summary)

    def build(summary: SessionSummary, seen: frozenset[str]) -> SessionTree:
        kids = [
            build(child, seen | {child.id})
            for child in children.get(summary.id, [])
            if child.id not in seen
        ]
        return SessionTree(session=summary, children=kids)

    if root_id is not None:
        root = by_id.get(root_id)
        return [build(root, frozenset({root.id}))] if root else []

    return [build(summary, frozenset({summary.id})) for summary in children.get(None, [])]


# =============================================================================
# In-Memory Implementation
# =============================================================================


class InMemorySessionStorage:
    """
    In-memory session storage for testing and single-process use.

    Sessions are stored serialized, so every load returns a fresh copy and
    later mutations of a loaded session do not leak into storage until it
    is saved again.

    Example:
        storage = InMemorySessionStorage()
        await storage.save(session)
        copy = await storage.load(session.id)
    """

    def __init__(self) -> None:
        self._sessions: dict[str, dict[str, Any]] = {}

    async def save(self, session: Session) -> None:
        self._sessions[session.id] = session.to_dict()
        logger.debug(f"[storage:inmemory] Saved session {session.id}")

    async def load(self, session_id: str) -> Session | None:
        data = self._sessions.get(session_id)
        if data is None:
            return None
        return Session.from_dict(data)

    async def delete(self, session_id: str) -> None:
        if self._sessions.pop(session_id, None) is not None:
            logger.debug(f"[storage:inmemory] Deleted session {session_id}")

    async def list_all(self) -> list[SessionSummary]:
        return [Session.from_dict(data).get_summary() for data in self._sessions.values()]

    async def get_children(self, parent_id: str) -> list[SessionSummary]:
        return [
            summary
            for summary in await self.list_all()
            if summary.parent_session_id == parent_id
        ]

    async def get_session_tree(self, root_id: str | None = None) -> list[SessionTree]:
        return build_session_tree(await self.list_all(), root_id)

    def clear(self) -> None:
        self._sessions.clear()

    def session_count(self) -> int:
        """Get number of stored sessions (for testing)."""
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions
