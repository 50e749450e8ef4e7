"""
Conversation compression contract.

The runtime decides WHEN to compress (ConversationManager.save_session asks
should_compress); a Compressor decides what survives and produces the
summary text. How the summary is written (usually a model call) is up to
the summarize callable handed to ThresholdCompressor.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from .items import MessageItem

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Sequence

    from .items import ConversationItem

logger = logging.getLogger(__name__)

SUMMARY_PREFIX = "Previous conversation summary: "


@dataclass(frozen=True)
class CompressionResult:
    """
    Attributes:
        summary: Summary of the dropped items ("" when nothing was dropped)
        compressed_items: Items kept verbatim, in their original order
    """

    summary: str
    compressed_items: list[ConversationItem] = field(default_factory=list)


@runtime_checkable
class Compressor(Protocol):
    def should_compress(self, item_count: int) -> bool:
        """Whether a log of item_count items warrants compression."""
        ...

    async def compress_items(self, items: Sequence[ConversationItem]) -> CompressionResult:
        """Summarize older items and return the ones to keep."""
        ...


class ThresholdCompressor:
    """
    Compress once the log grows past a fixed size.

    Keeps system messages and roughly the last `keep_recent` items. The cut
    is moved forward to the next user message so a tool call is never
    separated from its result.

    Example:
        compressor = ThresholdCompressor(summarize_with_llm, max_items=40, keep_recent=10)
        manager = ConversationManager(storage, compressor=compressor)
    """

    def __init__(
        self,
        summarize: Callable[[Sequence[ConversationItem]], Awaitable[str]],
        *,
        max_items: int = 40,
        keep_recent: int = 10,
    ) -> None:
        if keep_recent >= max_items:
            raise ValueError("keep_recent must be smaller than max_items")
        self._summarize = summarize
        self._max_items = max_items
        self._keep_recent = keep_recent

    def should_compress(self, item_count: int) -> bool:
        return item_count > self._max_items

    async def compress_items(self, items: Sequence[ConversationItem]) -> CompressionResult:
        cut = self._find_cut(items)
        if cut == 0:
            return CompressionResult(summary="", compressed_items=list(items))

        older = [item for item in items[:cut] if not self._is_system(item)]
        kept_system = [item for item in items[:cut] if self._is_system(item)]

        summary = (await self._summarize(older)).strip()
        logger.info(
            f"[compressor] Summarized {len(older)} items, keeping {len(items) - cut} recent"
        )
        return CompressionResult(
            summary=summary,
            compressed_items=kept_system + list(items[cut:]),
        )

    def _find_cut(self, items: Sequence[ConversationItem]) -> int:
        cut = max(len(items) - self._keep_recent, 0)
        while cut < len(items):
            item = items[cut]
            if isinstance(item, MessageItem) and item.role == "user":
                return cut
            cut += 1
        return 0

    @staticmethod
    def _is_system(item: ConversationItem) -> bool:
        # Earlier summaries are replaced, not carried forward
        return (
            isinstance(item, MessageItem)
            and item.role == "system"
            and not item.content.startswith(SUMMARY_PREFIX)
        )
