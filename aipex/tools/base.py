"""
Tool abstractions.

A tool is an async callable the model can request by name. It receives
validated arguments plus a ToolContext and answers with a ToolResult.
Tools never see the agent; the context carries the ids of the call and
the turn's cancellation token so slow tools can stop early.

Example:
    class ClickArgs(BaseModel):
        x: int
        y: int

    class ClickTool(Tool):
        args_model = ClickArgs

        @property
        def name(self) -> str:
            return "click"

        @property
        def description(self) -> str:
            return "Click at a screen coordinate"

        async def execute(self, arguments, context):
            return ToolResult.success(f"Clicked at {arguments['x']},{arguments['y']}")
"""

from __future__ import annotations

import base64
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, ClassVar

if TYPE_CHECKING:
    from pydantic import BaseModel

    from aipex.utils.cancellation import CancellationToken


class ContentType(str, Enum):
    TEXT = "text"
    IMAGE = "image"


@dataclass(frozen=True, slots=True)
class ContentBlock:
    """One piece of tool output: text, or an image such as a screenshot."""

    type: ContentType
    text: str | None = None
    data: bytes | None = None
    mime_type: str | None = None

    @classmethod
    def from_text(cls, text: str) -> ContentBlock:
        return cls(type=ContentType.TEXT, text=text)

    @classmethod
    def from_image(cls, data: bytes, mime_type: str = "image/png") -> ContentBlock:
        return cls(type=ContentType.IMAGE, data=data, mime_type=mime_type)

    def to_dict(self) -> dict[str, Any]:
        if self.type is ContentType.TEXT:
            return {"type": "text", "text": self.text or ""}
        return {
            "type": "image",
            "data": base64.b64encode(self.data or b"").decode("ascii"),
            "mimeType": self.mime_type,
        }


@dataclass(frozen=True, slots=True)
class ToolResult:
    """
    Outcome of one tool execution.

    Failures the model should reason about (element missing, page not
    loaded) belong in an error result. Raised exceptions are reserved for
    unexpected failures, which the registry wraps in ToolError.
    """

    content: tuple[ContentBlock, ...]
    is_error: bool = False
    structured_content: dict[str, Any] | None = None

    @classmethod
    def success(
        cls,
        text: str,
        *,
        structured: dict[str, Any] | None = None,
        images: tuple[ContentBlock, ...] = (),
    ) -> ToolResult:
        return cls(
            content=(ContentBlock.from_text(text), *images),
            structured_content=structured,
        )

    @classmethod
    def error(cls, message: str, *, structured: dict[str, Any] | None = None) -> ToolResult:
        return cls(
            content=(ContentBlock.from_text(f"Error: {message}"),),
            is_error=True,
            structured_content=structured,
        )

    @property
    def text(self) -> str:
        """Text of the first non-empty text block."""
        return next(
            (block.text for block in self.content if block.type is ContentType.TEXT and block.text),
            "",
        )

    def to_output(self) -> Any:
        """Value recorded as the call's output in the conversation."""
        if self.structured_content is not None:
            return self.structured_content
        return self.text

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"content": [block.to_dict() for block in self.content]}
        if self.is_error:
            data["isError"] = True
        if self.structured_content is not None:
            data["structuredContent"] = self.structured_content
        return data


@dataclass(frozen=True, slots=True)
class ToolContext:
    """
    Per-call context handed to Tool.execute.

    Attributes:
        call_id: Id the model assigned to the call
        turn_id: Turn that requested the call
        session_id: Owning session
        cancellation_token: Set when the turn is cancelled
        metadata: Free-form extras from the host
    """

    call_id: str
    turn_id: str
    session_id: str
    cancellation_token: CancellationToken | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def is_cancelled(self) -> bool:
        return self.cancellation_token is not None and self.cancellation_token.is_cancelled

    def raise_if_cancelled(self) -> None:
        if self.cancellation_token is not None:
            self.cancellation_token.raise_if_cancelled()


class Tool(ABC):
    """
    Base class for tools.

    Subclasses provide a name, a description and execute(). Arguments are
    described either by a pydantic args_model (schema and validation come
    from it) or by overriding input_schema with a JSON Schema dict.
    timeout_seconds overrides the registry default when not None.
    """

    args_model: ClassVar[type[BaseModel] | None] = None

    @property
    @abstractmethod
    def name(self) -> str: ...

    @property
    @abstractmethod
    def description(self) -> str: ...

    @property
    def input_schema(self) -> dict[str, Any]:
        if self.args_model is None:
            raise NotImplementedError(
                f"{type(self).__name__} must define args_model or override input_schema"
            )
        return self.args_model.model_json_schema()

    @property
    def timeout_seconds(self) -> float | None:
        return None

    def validate_arguments(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """
        Validate and normalize arguments.

        Raises pydantic.ValidationError when the args_model rejects them,
        KeyError when a required schema property is missing.
        """
        if self.args_model is not None:
            return self.args_model.model_validate(arguments).model_dump()

        missing = [key for key in self.input_schema.get("required", []) if key not in arguments]
        if missing:
            raise KeyError(f"missing required argument(s): {missing}")
        return arguments

    @abstractmethod
    async def execute(self, arguments: dict[str, Any], context: ToolContext) -> ToolResult:
        """Run the tool with already-validated arguments."""
        ...

    def to_llm_schema(self) -> dict[str, Any]:
        """Declaration sent to the model with each request."""
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.input_schema,
        }

    def __repr__(self) -> str:
        return f"<Tool {self.name}>"
