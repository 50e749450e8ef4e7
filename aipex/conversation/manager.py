"""
Conversation Manager.

Session lifecycle on top of a storage adapter:
- create / get / save / delete
- fork at an item index, with lineage
- fork tree reconstruction and listing
- compression before save, when the compressor asks for it

Caching:
    Sessions are kept in a bounded TTL cache (cachetools.TTLCache, LRU
    eviction). Storage stays the source of truth: an evicted or expired
    session is simply loaded again. The cache is shared by every caller of
    the manager, so access is lock-guarded.

Usage:
    manager = ConversationManager(InMemorySessionStorage(), cache_size=100)

    session = await manager.create_session(system_prompt="You are helpful.")
    session.add_item(user_message("Hi"))
    await manager.save_session(session)

    branch = await manager.fork_session(session.id, at_index=1)
    trees = await manager.get_session_tree()
"""

from __future__ import annotations

import logging
import threading
import time
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from cachetools import TTLCache

from aipex.utils.errors import SessionNotFoundError

from .compressor import SUMMARY_PREFIX
from .items import system_message
from .session import Session
from .storage import build_session_tree

if TYPE_CHECKING:
    from collections.abc import Callable

    from aipex.config.schemas import ConversationSettings

    from .compressor import Compressor
    from .session import SessionSummary, SessionTree
    from .storage import SessionStorageAdapter

logger = logging.getLogger(__name__)


class ConversationManager:
    """
    Cached access to persisted sessions.

    Example:
        manager = ConversationManager(storage, compressor=compressor)
        session = await manager.get_session("abc")
        if session is None:
            ...
    """

    def __init__(
        self,
        storage: SessionStorageAdapter,
        *,
        compressor: Compressor | None = None,
        cache_size: int = 100,
        cache_ttl_seconds: float = 1800.0,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Args:
            storage: Backend holding the sessions
            compressor: Optional compressor consulted on every save
            cache_size: Max sessions kept in memory
            cache_ttl_seconds: Lifetime of a cache entry since its last use
            timer: Clock for the cache (injectable for tests)
        """
        self._storage = storage
        self._compressor = compressor
        self._cache: TTLCache[str, Session] = TTLCache(
            maxsize=cache_size, ttl=cache_ttl_seconds, timer=timer
        )
        self._lock = threading.Lock()
        logger.debug(
            f"[conversation] Using TTLCache (maxsize={cache_size}, ttl={cache_ttl_seconds}s)"
        )

    @classmethod
    def from_settings(
        cls,
        storage: SessionStorageAdapter,
        settings: ConversationSettings,
        compressor: Compressor | None = None,
    ) -> ConversationManager:
        return cls(
            storage,
            compressor=compressor,
            cache_size=settings.cache_size,
            cache_ttl_seconds=settings.cache_ttl_seconds,
        )

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def create_session(
        self,
        system_prompt: str | None = None,
        metadata: dict[str, Any] | None = None,
        session_id: str | None = None,
    ) -> Session:
        """Create, persist and cache a new session."""
        session = Session(session_id, metadata=metadata)
        if system_prompt:
            session.add_item(system_message(system_prompt))

        await self._storage.save(session)
        self._cache_put(session)
        logger.info(f"[conversation] Created session {session.id}")
        return session

    async def get_session(self, session_id: str) -> Session | None:
        """Cached session, loading from storage on a miss."""
        session = self._cache_get(session_id)
        if session is not None:
            return session

        session = await self._storage.load(session_id)
        if session is not None:
            self._cache_put(session)
            logger.debug(f"[conversation] Loaded session {session_id} from storage")
        return session

    async def save_session(self, session: Session) -> None:
        """
        Persist a session, compressing it first when warranted.

        Compression replaces the log with an optional leading summary item
        followed by the items the compressor kept, and records the summary
        in metadata["compression_summary"].
        """
        if self._compressor is not None and self._compressor.should_compress(
            session.item_count
        ):
            await self._compress(session)

        self._cache_put(session)
        await self._storage.save(session)

    async def delete_session(self, session_id: str) -> None:
        with self._lock:
            self._cache.pop(session_id, None)
        await self._storage.delete(session_id)
        logger.info(f"[conversation] Deleted session {session_id}")

    # =========================================================================
    # Forking
    # =========================================================================

    async def fork_session(self, session_id: str, at_index: int | None = None) -> Session:
        """
        Branch a session at an item index.

        Raises:
            SessionNotFoundError: Unknown session id
            ValueError: Index outside 0..item_count
        """
        source = await self.get_session(session_id)
        if source is None:
            raise SessionNotFoundError(session_id)

        forked = source.fork(at_index)
        await self._storage.save(forked)
        self._cache_put(forked)
        logger.info(
            f"[conversation] Forked {session_id} at item {forked.fork_at_item_index} "
            f"-> {forked.id}"
        )
        return forked

    async def get_session_tree(self, root_id: str | None = None) -> list[SessionTree]:
        return build_session_tree(await self._storage.list_all(), root_id)

    async def get_children(self, parent_id: str) -> list[SessionSummary]:
        return await self._storage.get_children(parent_id)

    async def list_sessions(self) -> list[SessionSummary]:
        return await self._storage.list_all()

    # =========================================================================
    # Cache
    # =========================================================================

    def clear_cache(self) -> None:
        with self._lock:
            self._cache.clear()

    @property
    def cache_size(self) -> int:
        with self._lock:
            self._cache.expire()
            return len(self._cache)

    def is_cached(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._cache

    def _cache_get(self, session_id: str) -> Session | None:
        with self._lock:
            session = self._cache.get(session_id)
            if session is not None:
                # Re-insert so the TTL counts from this access
                self._cache[session_id] = session
            return session

    def _cache_put(self, session: Session) -> None:
        with self._lock:
            self._cache[session.id] = session

    # =========================================================================
    # Compression
    # =========================================================================

    async def _compress(self, session: Session) -> None:
        before = session.item_count
        result = await self._compressor.compress_items(session.get_items())

        items = list(result.compressed_items)
        if result.summary:
            items.insert(0, system_message(f"{SUMMARY_PREFIX}{result.summary}"))
            session.set_metadata("compression_summary", result.summary)
            session.set_metadata("compressed_at", datetime.now(UTC).isoformat())

        session.replace_items(items)
        logger.info(
            f"[conversation] Compressed session {session.id}: {before} -> {len(items)} items"
        )
