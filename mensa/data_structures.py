"""
Core data structures for the chat transcript.

This module defines the content model shared by the transcript accumulator,
the weight estimator and the renderer:

- ContentBlock: sum type of TextBlock | ImageBlock | ToolBlock
- ToolExecution: a tool call and its lifecycle status
- Message: one transcript entry (user, assistant or system)
- PendingImage: an image attached in the editor but not yet sent

All values are frozen. Streaming updates return a new Message that shares
every untouched block with the old one.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, replace
from enum import Enum
from typing import Never, NotRequired, TypeAlias, TypedDict

# =============================================================================
# JSON Type Aliases
# =============================================================================

JSONValue: TypeAlias = (
    str | int | float | bool | None | list["JSONValue"] | dict[str, "JSONValue"]
)


# =============================================================================
# Serialization TypedDicts (for to_dict/from_dict methods)
# =============================================================================


class TextBlockDict(TypedDict):
    """Serialized form of TextBlock."""

    type: str
    text: str


class ImageBlockDict(TypedDict):
    """Serialized form of ImageBlock."""

    type: str
    id: str
    media_type: str
    payload_ref: str


class ToolExecutionDict(TypedDict):
    """Serialized form of ToolExecution."""

    name: str
    input: JSONValue
    status: str
    id: NotRequired[str]


class ToolBlockDict(TypedDict):
    """Serialized form of ToolBlock."""

    type: str
    tool: ToolExecutionDict


ContentBlockDict = TextBlockDict | ImageBlockDict | ToolBlockDict


class MessageDict(TypedDict):
    """Serialized form of Message."""

    role: str
    content: str | list[ContentBlockDict]
    uuid: NotRequired[str]


# =============================================================================
# Exhaustiveness Helper
# =============================================================================


def assert_never(value: Never) -> Never:
    """Assert that a value is never reached (for exhaustive pattern matching)."""
    raise AssertionError(f"Unexpected value: {value!r}")


# =============================================================================
# Enums
# =============================================================================


class Role(str, Enum):
    """Message role in the transcript."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class ToolStatus(str, Enum):
    """Lifecycle of a tool execution. RUNNING moves to a terminal state once."""

    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self is not ToolStatus.RUNNING


# =============================================================================
# Content Blocks
# =============================================================================


@dataclass(frozen=True)
class TextBlock:
    """A run of text. The only block kind that grows while streaming."""

    text: str

    def __post_init__(self) -> None:
        if not isinstance(self.text, str):
            raise TypeError(f"text must be str, got {type(self.text).__name__}")

    def to_dict(self) -> TextBlockDict:
        return {"type": "text", "text": self.text}

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> "TextBlock":
        text = data.get("text")
        return cls(text=str(text) if text is not None else "")


@dataclass(frozen=True)
class ImageBlock:
    """An image attached to a user message.

    The payload itself is not kept in the transcript: ``payload_ref`` points at
    the temp file the image was persisted to for the agent to read.
    """

    id: str
    media_type: str
    payload_ref: str = ""

    def __post_init__(self) -> None:
        if not self.id:
            raise ValueError("id cannot be empty")

    def to_dict(self) -> ImageBlockDict:
        return {
            "type": "image",
            "id": self.id,
            "media_type": self.media_type,
            "payload_ref": self.payload_ref,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> "ImageBlock":
        return cls(
            id=str(data.get("id", "")),
            media_type=str(data.get("media_type", "image/png")),
            payload_ref=str(data.get("payload_ref", "")),
        )


@dataclass(frozen=True)
class ToolExecution:
    """A tool call made by the agent during a turn."""

    name: str
    input: JSONValue = None
    status: ToolStatus = ToolStatus.RUNNING
    id: str = ""

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("name cannot be empty")

    def finish(self, status: ToolStatus) -> "ToolExecution":
        """Return this execution moved to a terminal status.

        Raises:
            ValueError: If already terminal, or if ``status`` is RUNNING
        """
        if self.status.is_terminal:
            raise ValueError(f"tool {self.name!r} already {self.status.value}")
        if not status.is_terminal:
            raise ValueError("a tool can only finish with a terminal status")
        return replace(self, status=status)

    def to_dict(self) -> ToolExecutionDict:
        result: ToolExecutionDict = {
            "name": self.name,
            "input": self.input,
            "status": self.status.value,
        }
        if self.id:
            result["id"] = self.id
        return result

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> "ToolExecution":
        raw_status = data.get("status", ToolStatus.RUNNING.value)
        try:
            status = ToolStatus(raw_status)
        except ValueError:
            status = ToolStatus.ERROR
        tool_input = data.get("input")
        return cls(
            name=str(data.get("name", "")),
            input=tool_input,  # type: ignore[arg-type]
            status=status,
            id=str(data.get("id", "")),
        )


@dataclass(frozen=True)
class ToolBlock:
    """A tool execution embedded in an assistant message."""

    execution: ToolExecution

    def to_dict(self) -> ToolBlockDict:
        return {"type": "tool", "tool": self.execution.to_dict()}

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> "ToolBlock":
        raw = data.get("tool")
        if not isinstance(raw, Mapping):
            raise ValueError("tool block is missing its execution")
        return cls(execution=ToolExecution.from_dict(raw))


# Sum type for content blocks
# Use class-based pattern matching: match block: case TextBlock(): ...
ContentBlock = TextBlock | ImageBlock | ToolBlock


def block_from_dict(data: Mapping[str, object]) -> ContentBlock:
    """Deserialize one content block by its ``type`` tag."""
    block_type = data.get("type")
    if block_type == "text":
        return TextBlock.from_dict(data)
    if block_type == "image":
        return ImageBlock.from_dict(data)
    if block_type == "tool":
        return ToolBlock.from_dict(data)
    raise ValueError(f"Unknown content block type: {block_type!r}")


# =============================================================================
# Message
# =============================================================================


@dataclass(frozen=True)
class Message:
    """One transcript entry.

    User and system messages carry a single text payload (a plain string, or
    image blocks followed by text for multimodal input). Assistant messages
    carry text and tool blocks interleaved in the order the agent emitted them.
    """

    role: Role
    content: str | tuple[ContentBlock, ...]
    uuid: str | None = None

    def __post_init__(self) -> None:
        if isinstance(self.content, list):
            object.__setattr__(self, "content", tuple(self.content))
        if self.role is not Role.ASSISTANT and not isinstance(self.content, str):
            if any(isinstance(b, ToolBlock) for b in self.content):
                raise ValueError(f"{self.role.value} messages cannot hold tool blocks")

    @property
    def blocks(self) -> tuple[ContentBlock, ...]:
        """Content as a block sequence (a plain string becomes one text block)."""
        if isinstance(self.content, str):
            return (TextBlock(self.content),) if self.content else ()
        return self.content

    @property
    def text(self) -> str:
        """Concatenated text of all text blocks."""
        if isinstance(self.content, str):
            return self.content
        return "".join(b.text for b in self.content if isinstance(b, TextBlock))

    def tools(self) -> list[ToolExecution]:
        """Tool executions in emission order."""
        return [b.execution for b in self.blocks if isinstance(b, ToolBlock)]

    def to_dict(self) -> MessageDict:
        if isinstance(self.content, str):
            content_dict: str | list[ContentBlockDict] = self.content
        else:
            content_dict = [block.to_dict() for block in self.content]
        result: MessageDict = {"role": self.role.value, "content": content_dict}
        if self.uuid:
            result["uuid"] = self.uuid
        return result

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> "Message":
        role = Role(str(data.get("role", "")))
        raw_content = data.get("content", "")
        content: str | tuple[ContentBlock, ...]
        if isinstance(raw_content, str):
            content = raw_content
        elif isinstance(raw_content, list):
            content = tuple(
                block_from_dict(b) for b in raw_content if isinstance(b, Mapping)
            )
        else:
            content = str(raw_content)
        uuid = data.get("uuid")
        return cls(role=role, content=content, uuid=str(uuid) if uuid else None)


# =============================================================================
# Pending input
# =============================================================================


@dataclass(frozen=True)
class PendingImage:
    """An image attached in the editor and not yet submitted."""

    id: str
    data: str  # base64
    media_type: str = "image/png"

    @property
    def size_bytes(self) -> int:
        """Approximate decoded size of the base64 payload."""
        return (len(self.data) * 3) // 4


# =============================================================================
# Streaming merge operations
# =============================================================================


def append_text(message: Message, delta: str) -> Message:
    """Merge a streamed text fragment into a message.

    A plain-string message is concatenated. For a block sequence the delta
    extends the last block when it is text, otherwise it opens a new text
    block, so text that follows a tool call never merges with text before it.
    """
    if isinstance(message.content, str):
        return replace(message, content=message.content + delta)
    blocks = message.content
    if blocks and isinstance(blocks[-1], TextBlock):
        merged = TextBlock(blocks[-1].text + delta)
        return replace(message, content=blocks[:-1] + (merged,))
    return replace(message, content=blocks + (TextBlock(delta),))


def append_tool_block(message: Message, execution: ToolExecution) -> Message:
    """Append a tool block. Tool calls never merge with preceding content."""
    if isinstance(message.content, str):
        prefix: tuple[ContentBlock, ...] = (
            (TextBlock(message.content),) if message.content else ()
        )
    else:
        prefix = message.content
    return replace(message, content=prefix + (ToolBlock(execution),))


def update_tool(message: Message, tool_id: str, status: ToolStatus) -> Message:
    """Finish the running tool with ``tool_id``.

    Returns the message unchanged when no running tool matches.
    """
    if isinstance(message.content, str) or not tool_id:
        return message
    blocks = list(message.content)
    for i, block in enumerate(blocks):
        if (
            isinstance(block, ToolBlock)
            and block.execution.id == tool_id
            and not block.execution.status.is_terminal
        ):
            blocks[i] = ToolBlock(block.execution.finish(status))
            return replace(message, content=tuple(blocks))
    return message


def finish_running_tools(message: Message, status: ToolStatus) -> Message:
    """Move every running tool in the message to ``status``."""
    if isinstance(message.content, str):
        return message
    changed = False
    blocks: list[ContentBlock] = []
    for block in message.content:
        if isinstance(block, ToolBlock) and not block.execution.status.is_terminal:
            blocks.append(ToolBlock(block.execution.finish(status)))
            changed = True
        else:
            blocks.append(block)
    return replace(message, content=tuple(blocks)) if changed else message
