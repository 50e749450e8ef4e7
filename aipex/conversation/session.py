"""
Session: the persisted conversation entity.

A session owns an ordered, append-oriented log of conversation items plus
metadata, lifecycle stats and fork lineage. The log is never reordered:
items are appended, truncated (pop/clear/compression) or copied (fork).

Forking:
    fork(i) creates a new session whose log is a copy of items[0:i]. The
    new session records parent_session_id and fork_at_item_index; the
    original is left untouched.

Serialization:
    to_dict() / from_dict() round-trip items, metadata, stats and lineage.
    Timestamps are ISO-8601 strings, items use their `type` discriminator.

Usage:
    session = Session()
    session.add_item(user_message("Open the settings page"))
    session.add_item(assistant_message("Done."))
    session.record_turn()

    branch = session.fork(at_index=1)
    assert branch.get_items() == session.get_items()[:1]
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from aipex.utils.ids import generate_id

from .items import (
    FunctionCallItem,
    FunctionResultItem,
    MessageItem,
    items_from_list,
    items_to_list,
)
from .preview import default_preview, extract_preview, first_user_message

if TYPE_CHECKING:
    from collections.abc import Iterable

    from .items import ConversationItem

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(UTC)


# =============================================================================
# Value Types
# =============================================================================


@dataclass
class SessionStats:
    """Lifecycle counters of a session."""

    created_at: datetime = field(default_factory=_utc_now)
    last_active_at: datetime = field(default_factory=_utc_now)
    total_turns: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "created_at": self.created_at.isoformat(),
            "last_active_at": self.last_active_at.isoformat(),
            "total_turns": self.total_turns,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SessionStats:
        return cls(
            created_at=datetime.fromisoformat(data["created_at"]),
            last_active_at=datetime.fromisoformat(data["last_active_at"]),
            total_turns=int(data.get("total_turns", 0)),
        )


@dataclass(frozen=True)
class CompletedTurn:
    """
    Denormalized record of one finished exchange.

    Attributes:
        id: Turn identifier
        user_message: The message that started the exchange
        assistant_message: Final assistant text (None if the model only called tools)
        function_calls: Tool calls issued during the exchange
        function_results: Results returned for those calls
        timestamp: When the exchange finished
    """

    user_message: MessageItem
    assistant_message: MessageItem | None = None
    function_calls: tuple[FunctionCallItem, ...] = ()
    function_results: tuple[FunctionResultItem, ...] = ()
    id: str = field(default_factory=lambda: generate_id("turn"))
    timestamp: datetime = field(default_factory=_utc_now)

    def to_items(self) -> list[ConversationItem]:
        items: list[ConversationItem] = [self.user_message]
        if self.assistant_message is not None:
            items.append(self.assistant_message)
        items.extend(self.function_calls)
        items.extend(self.function_results)
        return items


@dataclass(frozen=True)
class ForkInfo:
    parent_session_id: str | None = None
    fork_at_item_index: int | None = None

    @property
    def is_fork(self) -> bool:
        return self.parent_session_id is not None


@dataclass(frozen=True)
class SessionSummary:
    """Listing view of a session. Derived, never stored on its own."""

    id: str
    preview: str
    turn_count: int
    item_count: int
    created_at: datetime
    last_active_at: datetime
    parent_session_id: str | None = None
    fork_at_item_index: int | None = None
    tags: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "preview": self.preview,
            "turn_count": self.turn_count,
            "item_count": self.item_count,
            "created_at": self.created_at.isoformat(),
            "last_active_at": self.last_active_at.isoformat(),
            "parent_session_id": self.parent_session_id,
            "fork_at_item_index": self.fork_at_item_index,
            "tags": list(self.tags),
        }


@dataclass
class SessionTree:
    """A session summary and the forks branched from it."""

    session: SessionSummary
    children: list[SessionTree] = field(default_factory=list)

    def walk(self) -> Iterable[SessionSummary]:
        """Depth-first iteration over this tree's summaries."""
        yield self.session
        for child in self.children:
            yield from child.walk()


# =============================================================================
# Session
# =============================================================================


class Session:
    """Ordered conversation log with metadata, stats and fork lineage."""

    def __init__(
        self,
        id: str | None = None,
        *,
        items: Iterable[ConversationItem] | None = None,
        metadata: dict[str, Any] | None = None,
        stats: SessionStats | None = None,
        parent_session_id: str | None = None,
        fork_at_item_index: int | None = None,
    ) -> None:
        self.id = id or generate_id()
        self.parent_session_id = parent_session_id
        self.fork_at_item_index = fork_at_item_index
        self.stats = stats or SessionStats()
        self._items: list[ConversationItem] = list(items or [])
        self._metadata: dict[str, Any] = dict(metadata or {})

    # -------------------------------------------------------------------------
    # Item log
    # -------------------------------------------------------------------------

    @property
    def items(self) -> tuple[ConversationItem, ...]:
        return tuple(self._items)

    @property
    def item_count(self) -> int:
        return len(self._items)

    def add_item(self, item: ConversationItem) -> None:
        self._items.append(item)
        self._touch()

    def add_items(self, items: Iterable[ConversationItem]) -> None:
        self._items.extend(items)
        self._touch()

    def pop_item(self) -> ConversationItem | None:
        """Remove and return the last item, or None if the log is empty."""
        if not self._items:
            return None
        item = self._items.pop()
        self._touch()
        return item

    def get_items(self, limit: int | None = None) -> list[ConversationItem]:
        """Copy of the log, or of its last `limit` items."""
        if limit is None:
            return list(self._items)
        if limit <= 0:
            return []
        return self._items[-limit:]

    def clear(self) -> None:
        self._items.clear()
        self._touch()

    def replace_items(self, items: Iterable[ConversationItem]) -> None:
        """Swap the whole log. Used by compression."""
        self._items = list(items)
        self._touch()

    # -------------------------------------------------------------------------
    # Turns
    # -------------------------------------------------------------------------

    def add_turn(self, turn: CompletedTurn) -> None:
        self.add_items(turn.to_items())
        self.record_turn(turn.timestamp)

    def record_turn(self, at: datetime | None = None) -> None:
        """Count one finished exchange."""
        self.stats.total_turns += 1
        self.stats.last_active_at = at or _utc_now()

    def get_completed_turns(self) -> list[CompletedTurn]:
        """
        Rebuild turns from the item log.

        Each user message opens a turn. The first assistant message after
        it becomes the turn's reply; calls and results are collected until
        the next user message. Items before the first user message (system
        prompts, compression summaries) are skipped.
        """
        turns: list[CompletedTurn] = []
        current: dict[str, Any] | None = None

        def close() -> None:
            if current is not None:
                turns.append(
                    CompletedTurn(
                        id=f"{self.id}:{len(turns)}",
                        user_message=current["user"],
                        assistant_message=current["assistant"],
                        function_calls=tuple(current["calls"]),
                        function_results=tuple(current["results"]),
                        timestamp=self.stats.last_active_at,
                    )
                )

        for item in self._items:
            if isinstance(item, MessageItem) and item.role == "user":
                close()
                current = {"user": item, "assistant": None, "calls": [], "results": []}
            elif current is None:
                continue
            elif isinstance(item, MessageItem) and item.role == "assistant":
                if current["assistant"] is None:
                    current["assistant"] = item
            elif isinstance(item, FunctionCallItem):
                current["calls"].append(item)
            elif isinstance(item, FunctionResultItem):
                current["results"].append(item)

        close()
        return turns

    # -------------------------------------------------------------------------
    # Forking
    # -------------------------------------------------------------------------

    def fork(self, at_index: int | None = None) -> Session:
        """
        Branch a new session from the prefix items[0:at_index].

        Args:
            at_index: Number of items to copy (defaults to the whole log)

        Raises:
            ValueError: If at_index is outside 0..len(items)
        """
        index = len(self._items) if at_index is None else at_index
        if index < 0 or index > len(self._items):
            raise ValueError(
                f"Invalid fork index: {index}. Must be between 0 and {len(self._items)}"
            )

        prefix = self._items[:index]
        user_turns = sum(
            1 for item in prefix if isinstance(item, MessageItem) and item.role == "user"
        )
        forked = Session(
            items=prefix,
            metadata=copy.deepcopy(self._metadata),
            stats=SessionStats(total_turns=user_turns),
            parent_session_id=self.id,
            fork_at_item_index=index,
        )
        logger.debug(f"[session] Forked {self.id} at {index} -> {forked.id}")
        return forked

    def get_fork_info(self) -> ForkInfo:
        return ForkInfo(
            parent_session_id=self.parent_session_id,
            fork_at_item_index=self.fork_at_item_index,
        )

    # -------------------------------------------------------------------------
    # Metadata / summary
    # -------------------------------------------------------------------------

    @property
    def metadata(self) -> dict[str, Any]:
        return dict(self._metadata)

    def set_metadata(self, key: str, value: Any) -> None:
        self._metadata[key] = value

    def get_metadata(self, key: str, default: Any = None) -> Any:
        return self._metadata.get(key, default)

    def get_summary(self) -> SessionSummary:
        message = first_user_message(self._items)
        preview = (
            extract_preview(message) if message else default_preview(self.stats.created_at)
        )
        tags = self._metadata.get("tags")

        return SessionSummary(
            id=self.id,
            preview=preview,
            turn_count=self.stats.total_turns,
            item_count=len(self._items),
            created_at=self.stats.created_at,
            last_active_at=self.stats.last_active_at,
            parent_session_id=self.parent_session_id,
            fork_at_item_index=self.fork_at_item_index,
            tags=tuple(str(tag) for tag in tags) if isinstance(tags, list | tuple) else (),
        )

    # -------------------------------------------------------------------------
    # Serialization
    # -------------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "parent_session_id": self.parent_session_id,
            "fork_at_item_index": self.fork_at_item_index,
            "items": items_to_list(self._items),
            "metadata": copy.deepcopy(self._metadata),
            "stats": self.stats.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Session:
        """
        Restore a session from to_dict() output.

        Raises:
            ValueError: If required fields are missing
            pydantic.ValidationError: If an item is malformed
        """
        if not isinstance(data, dict) or not data.get("id"):
            raise ValueError("Invalid session data: missing required fields")

        stats = data.get("stats")
        return cls(
            id=data["id"],
            items=items_from_list(data.get("items", [])),
            metadata=copy.deepcopy(data.get("metadata") or {}),
            stats=SessionStats.from_dict(stats) if stats else None,
            parent_session_id=data.get("parent_session_id"),
            fork_at_item_index=data.get("fork_at_item_index"),
        )

    def _touch(self) -> None:
        self.stats.last_active_at = _utc_now()

    def __len__(self) -> int:
        return len(self._items)

    def __repr__(self) -> str:
        return f"<Session id={self.id} items={len(self._items)} turns={self.stats.total_turns}>"
