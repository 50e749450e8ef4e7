"""
aipex Conversation.

Persistence side of the runtime: conversation items, sessions with fork
lineage, storage adapters, compression and the cached ConversationManager.
"""

from .compressor import CompressionResult, Compressor, ThresholdCompressor
from .items import (
    ConversationItem,
    FunctionCallItem,
    FunctionResultItem,
    MessageItem,
    assistant_message,
    item_from_dict,
    item_to_dict,
    items_from_list,
    items_to_list,
    system_message,
    user_message,
)
from .manager import ConversationManager
from .preview import MAX_PREVIEW_LENGTH, extract_preview
from .session import (
    CompletedTurn,
    ForkInfo,
    Session,
    SessionStats,
    SessionSummary,
    SessionTree,
)
from .storage import InMemorySessionStorage, SessionStorageAdapter, build_session_tree

__all__ = [
    # Items
    "ConversationItem",
    "MessageItem",
    "FunctionCallItem",
    "FunctionResultItem",
    "user_message",
    "assistant_message",
    "system_message",
    "item_to_dict",
    "item_from_dict",
    "items_to_list",
    "items_from_list",
    # Sessions
    "Session",
    "SessionStats",
    "SessionSummary",
    "SessionTree",
    "CompletedTurn",
    "ForkInfo",
    "extract_preview",
    "MAX_PREVIEW_LENGTH",
    # Storage
    "SessionStorageAdapter",
    "InMemorySessionStorage",
    "build_session_tree",
    # Compression
    "Compressor",
    "CompressionResult",
    "ThresholdCompressor",
    # Manager
    "ConversationManager",
]
