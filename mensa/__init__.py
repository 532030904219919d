"""mensa: a minimal terminal chat client for coding agents

The core library behind the ``mensa`` terminal app. It keeps the transcript
of a chat with an agent runtime as an append-only list of frozen messages,
estimates how many lines each message occupies, and works out which slice of
the transcript fits a fixed-height viewport.
"""

# Content model
from .data_structures import (
    ContentBlock,
    ContentBlockDict,
    ImageBlock,
    JSONValue,
    Message,
    MessageDict,
    PendingImage,
    Role,
    TextBlock,
    ToolBlock,
    ToolExecution,
    ToolStatus,
    append_text,
    append_tool_block,
    assert_never,
    block_from_dict,
    finish_running_tools,
    update_tool,
)

# Errors
from .errors import (
    ConfigError,
    ImageCaptureError,
    MensaError,
    StreamError,
    TurnInProgressError,
    UndoUnavailable,
)

# Agent events
from .events import (
    AgentEvent,
    AssistantDeltaEvent,
    AssistantToolCallEvent,
    InitEvent,
    McpServerStatus,
    ResultEvent,
    ToolResultEvent,
    UsageStats,
    UserEchoEvent,
    parse_stream_line,
)

# Runtime and session
from .runtime import (
    ALLOWED_TOOLS,
    DEFAULT_MODEL,
    AgentRuntime,
    ClaudeCliRuntime,
    RewindResult,
    RuntimeOptions,
)
from .session import ChatSession

# Transcript, weights and viewport
from .transcript import TranscriptAccumulator, TurnState
from .viewport import SCROLL_STEP, ScrollState, Viewport, max_scroll, visible_range
from .weights import WeightCache, estimate_weight

__version__ = "0.1.0"

__all__ = [
    # Content model
    "ContentBlock",
    "ContentBlockDict",
    "ImageBlock",
    "JSONValue",
    "Message",
    "MessageDict",
    "PendingImage",
    "Role",
    "TextBlock",
    "ToolBlock",
    "ToolExecution",
    "ToolStatus",
    "append_text",
    "append_tool_block",
    "assert_never",
    "block_from_dict",
    "finish_running_tools",
    "update_tool",
    # Errors
    "ConfigError",
    "ImageCaptureError",
    "MensaError",
    "StreamError",
    "TurnInProgressError",
    "UndoUnavailable",
    # Events
    "AgentEvent",
    "AssistantDeltaEvent",
    "AssistantToolCallEvent",
    "InitEvent",
    "McpServerStatus",
    "ResultEvent",
    "ToolResultEvent",
    "UsageStats",
    "UserEchoEvent",
    "parse_stream_line",
    # Runtime and session
    "ALLOWED_TOOLS",
    "DEFAULT_MODEL",
    "AgentRuntime",
    "ClaudeCliRuntime",
    "RewindResult",
    "RuntimeOptions",
    "ChatSession",
    # Transcript, weights and viewport
    "TranscriptAccumulator",
    "TurnState",
    "SCROLL_STEP",
    "ScrollState",
    "Viewport",
    "max_scroll",
    "visible_range",
    "WeightCache",
    "estimate_weight",
]
