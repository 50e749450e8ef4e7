"""
Conversation Items.

A conversation is an ordered log of items. Items form a closed tagged
union discriminated on `type`:

- MessageItem ("message"): user, assistant or system text
- FunctionCallItem ("function_call"): the model asked for a tool
- FunctionResultItem ("function_call_result"): what the tool returned

Items are immutable pydantic models, so they serialize and validate
without hand-written shape checks:

    data = item.model_dump(mode="json")
    restored = ITEM_ADAPTER.validate_python(data)
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

MessageRole = Literal["user", "assistant", "system"]


class _Item(BaseModel):
    model_config = ConfigDict(frozen=True)


class MessageItem(_Item):
    """A text message from the user, the assistant or the system."""

    type: Literal["message"] = "message"
    role: MessageRole
    content: str


class FunctionCallItem(_Item):
    """A tool invocation requested by the model."""

    type: Literal["function_call"] = "function_call"
    call_id: str
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)


class FunctionResultItem(_Item):
    """The outcome of a tool invocation, matched by call_id."""

    type: Literal["function_call_result"] = "function_call_result"
    call_id: str
    name: str
    output: Any = None
    is_error: bool = False


ConversationItem = Annotated[
    Union[MessageItem, FunctionCallItem, FunctionResultItem],
    Field(discriminator="type"),
]

ITEM_ADAPTER: TypeAdapter[ConversationItem] = TypeAdapter(ConversationItem)
ITEMS_ADAPTER: TypeAdapter[list[ConversationItem]] = TypeAdapter(list[ConversationItem])


def user_message(content: str) -> MessageItem:
    return MessageItem(role="user", content=content)


def assistant_message(content: str) -> MessageItem:
    return MessageItem(role="assistant", content=content)


def system_message(content: str) -> MessageItem:
    return MessageItem(role="system", content=content)


def item_to_dict(item: ConversationItem) -> dict[str, Any]:
    """Serialize one item to a JSON-compatible dict."""
    return item.model_dump(mode="json")


def item_from_dict(data: dict[str, Any]) -> ConversationItem:
    """Deserialize one item, dispatching on its `type` field."""
    return ITEM_ADAPTER.validate_python(data)


def items_to_list(items: list[ConversationItem]) -> list[dict[str, Any]]:
    return ITEMS_ADAPTER.dump_python(items, mode="json")


def items_from_list(data: list[dict[str, Any]]) -> list[ConversationItem]:
    return ITEMS_ADAPTER.validate_python(data)
