"""Typed agent events and the NDJSON parser that produces them.

The agent runtime reports a turn as an ordered stream of events. The
accumulator only understands the dataclasses below; anything else is dropped.

``parse_stream_line`` maps one object of the ``claude --output-format
stream-json`` protocol to zero or more events:

    system/init         -> InitEvent
    user (prompt echo)  -> UserEchoEvent
    user (tool_result)  -> ToolResultEvent (one per result block)
    stream_event delta  -> AssistantDeltaEvent
    assistant           -> AssistantToolCallEvent (and text, without partials)
    result              -> ResultEvent
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field

from .data_structures import JSONValue

logger = logging.getLogger(__name__)

__all__ = [
    "McpServerStatus",
    "UsageStats",
    "InitEvent",
    "UserEchoEvent",
    "AssistantDeltaEvent",
    "AssistantToolCallEvent",
    "ToolResultEvent",
    "ResultEvent",
    "AgentEvent",
    "parse_stream_line",
]

MCP_STATUSES = ("connected", "failed", "needs-auth", "pending")


def _safe_int(value: object, default: int = 0) -> int:
    """Safely convert an object to int, returning default if not possible."""
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, (float, str)):
        try:
            return int(value)
        except (ValueError, TypeError):
            return default
    return default


def _safe_float(value: object, default: float = 0.0) -> float:
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return default
    return default


@dataclass(frozen=True)
class McpServerStatus:
    """Connection status of one MCP server as reported by the runtime."""

    name: str
    status: str = "pending"
    error: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> "McpServerStatus":
        status = str(data.get("status", "pending"))
        if status not in MCP_STATUSES:
            status = "failed"
        error = data.get("error")
        return cls(
            name=str(data.get("name", "")),
            status=status,
            error=str(error) if error else None,
        )


@dataclass(frozen=True)
class UsageStats:
    """Token and cost counters reported with a turn's result."""

    input_tokens: int = 0
    output_tokens: int = 0
    cache_read_input_tokens: int = 0
    cache_creation_input_tokens: int = 0
    total_cost_usd: float = 0.0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    @classmethod
    def from_dict(
        cls, data: Mapping[str, object], total_cost_usd: float = 0.0
    ) -> "UsageStats":
        return cls(
            input_tokens=_safe_int(data.get("input_tokens")),
            output_tokens=_safe_int(data.get("output_tokens")),
            cache_read_input_tokens=_safe_int(data.get("cache_read_input_tokens")),
            cache_creation_input_tokens=_safe_int(
                data.get("cache_creation_input_tokens")
            ),
            total_cost_usd=total_cost_usd,
        )


# =============================================================================
# Events
# =============================================================================


@dataclass(frozen=True)
class InitEvent:
    """The runtime session is up."""

    session_id: str
    mcp_servers: tuple[McpServerStatus, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class UserEchoEvent:
    """The runtime acknowledged a user turn and assigned it an identifier."""

    uuid: str


@dataclass(frozen=True)
class AssistantDeltaEvent:
    """A fragment of streamed assistant text."""

    text: str


@dataclass(frozen=True)
class AssistantToolCallEvent:
    """The agent invoked a tool."""

    name: str
    input: JSONValue = None
    id: str = ""


@dataclass(frozen=True)
class ToolResultEvent:
    """A previously announced tool call finished."""

    tool_use_id: str
    is_error: bool = False


@dataclass(frozen=True)
class ResultEvent:
    """The turn is over."""

    usage: UsageStats = field(default_factory=UsageStats)
    total_cost_usd: float = 0.0
    is_error: bool = False
    error: str | None = None


# Sum type for agent events
AgentEvent = (
    InitEvent
    | UserEchoEvent
    | AssistantDeltaEvent
    | AssistantToolCallEvent
    | ToolResultEvent
    | ResultEvent
)


# =============================================================================
# stream-json parsing
# =============================================================================


def _content_blocks(data: Mapping[str, object]) -> list[Mapping[str, object]]:
    message = data.get("message")
    if not isinstance(message, Mapping):
        return []
    content = message.get("content")
    if isinstance(content, str):
        return [{"type": "text", "text": content}]
    if not isinstance(content, list):
        return []
    return [b for b in content if isinstance(b, Mapping)]


def _parse_system(data: Mapping[str, object]) -> list[AgentEvent]:
    if data.get("subtype") != "init":
        return []
    session_id = data.get("session_id")
    if not isinstance(session_id, str) or not session_id:
        return []
    raw_servers = data.get("mcp_servers")
    servers: tuple[McpServerStatus, ...] = ()
    if isinstance(raw_servers, list):
        servers = tuple(
            McpServerStatus.from_dict(s)
            for s in raw_servers
            if isinstance(s, Mapping) and s.get("name")
        )
    return [InitEvent(session_id=session_id, mcp_servers=servers)]


def _parse_user(data: Mapping[str, object]) -> list[AgentEvent]:
    blocks = _content_blocks(data)
    results = [b for b in blocks if b.get("type") == "tool_result"]
    if results:
        return [
            ToolResultEvent(
                tool_use_id=str(b.get("tool_use_id", "")),
                is_error=bool(b.get("is_error", False)),
            )
            for b in results
        ]
    uuid = data.get("uuid")
    if isinstance(uuid, str) and uuid:
        return [UserEchoEvent(uuid=uuid)]
    return []


def _parse_assistant(
    data: Mapping[str, object], partial_messages: bool
) -> list[AgentEvent]:
    events: list[AgentEvent] = []
    for block in _content_blocks(data):
        block_type = block.get("type")
        if block_type == "text" and not partial_messages:
            text = block.get("text")
            if isinstance(text, str) and text:
                events.append(AssistantDeltaEvent(text=text))
        elif block_type == "tool_use":
            name = block.get("name")
            if not isinstance(name, str) or not name:
                continue
            events.append(
                AssistantToolCallEvent(
                    name=name,
                    input=block.get("input"),  # type: ignore[arg-type]
                    id=str(block.get("id", "")),
                )
            )
    return events


def _parse_stream_event(data: Mapping[str, object]) -> list[AgentEvent]:
    event = data.get("event")
    if not isinstance(event, Mapping) or event.get("type") != "content_block_delta":
        return []
    delta = event.get("delta")
    if not isinstance(delta, Mapping) or delta.get("type") != "text_delta":
        return []
    text = delta.get("text")
    if not isinstance(text, str) or not text:
        return []
    return [AssistantDeltaEvent(text=text)]


def _parse_result(data: Mapping[str, object]) -> list[AgentEvent]:
    cost = _safe_float(data.get("total_cost_usd"))
    raw_usage = data.get("usage")
    usage = (
        UsageStats.from_dict(raw_usage, total_cost_usd=cost)
        if isinstance(raw_usage, Mapping)
        else UsageStats(total_cost_usd=cost)
    )
    is_error = bool(data.get("is_error", False))
    error: str | None = None
    if is_error:
        subtype = data.get("subtype")
        result_text = data.get("result")
        if isinstance(result_text, str) and result_text:
            error = result_text
        elif isinstance(subtype, str):
            error = subtype.replace("_", " ")
        else:
            error = "Unknown error"
    return [ResultEvent(usage=usage, total_cost_usd=cost, is_error=is_error, error=error)]


def parse_stream_line(
    data: object, *, partial_messages: bool = True
) -> list[AgentEvent]:
    """Translate one decoded stream-json object into agent events.

    Args:
        data: The decoded JSON value of one NDJSON line
        partial_messages: True when the runtime emits token-level
            ``stream_event`` deltas. Full assistant messages then only
            contribute tool calls, so text is not counted twice.

    Returns:
        Events in the order they appear in the object. Unknown or malformed
        shapes produce an empty list.
    """
    if not isinstance(data, Mapping):
        logger.debug("Dropping non-object stream line: %r", data)
        return []
    msg_type = data.get("type")
    if msg_type == "system":
        return _parse_system(data)
    if msg_type == "user":
        return _parse_user(data)
    if msg_type == "assistant":
        return _parse_assistant(data, partial_messages)
    if msg_type == "stream_event":
        return _parse_stream_event(data) if partial_messages else []
    if msg_type == "result":
        return _parse_result(data)
    logger.debug("Dropping stream line of unknown type %r", msg_type)
    return []
