"""Session previews shown in conversation lists."""

from __future__ import annotations

from typing import TYPE_CHECKING

from .items import MessageItem

if TYPE_CHECKING:
    from collections.abc import Iterable
    from datetime import datetime

    from .items import ConversationItem

MAX_PREVIEW_LENGTH = 100


def extract_preview(message: str, max_length: int = MAX_PREVIEW_LENGTH) -> str:
    """Trimmed message, cut at max_length with a trailing ellipsis."""
    preview = (message or "").strip()
    if len(preview) > max_length:
        return f"{preview[:max_length]}..."
    return preview


def first_user_message(items: Iterable[ConversationItem]) -> str | None:
    for item in items:
        if isinstance(item, MessageItem) and item.role == "user":
            return item.content
    return None


def default_preview(created_at: datetime) -> str:
    """Fallback for sessions without a user message yet."""
    return f"Conversation {created_at:%b %d, %H:%M}"
