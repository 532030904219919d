"""Transcript accumulator for the chat session.

The accumulator owns the authoritative message list and the per-turn state
machine:

    IDLE --begin_turn--> AWAITING_INIT --InitEvent--> STREAMING --ResultEvent--> IDLE
                              |                           |
                              +------ fail / interrupted -+--> IDLE

Every step replaces a frozen Message with a merged copy; earlier messages are
never touched, and the list itself only grows.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from enum import Enum

from .data_structures import (
    ContentBlock,
    Message,
    Role,
    TextBlock,
    ToolExecution,
    ToolStatus,
    append_text,
    append_tool_block,
    finish_running_tools,
    update_tool,
)
from .errors import TurnInProgressError
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
)

logger = logging.getLogger(__name__)

__all__ = ["TurnState", "TranscriptAccumulator"]


class TurnState(str, Enum):
    """Where the accumulator is within the current turn."""

    IDLE = "idle"
    AWAITING_INIT = "awaiting_init"
    STREAMING = "streaming"


class TranscriptAccumulator:
    """Maintains the ordered message list from user input and agent events.

    Attributes:
        session_id: Runtime session id from the latest init event
        mcp_status: MCP server statuses from the latest init event
        usage: Usage counters from the latest result event
        current_tool: Name of the most recent tool still running, for display
        revision: Incremented on every change, so renderers can skip work
    """

    def __init__(self, messages: Iterable[Message] = ()) -> None:
        self._messages: list[Message] = list(messages)
        self._state = TurnState.IDLE
        # Index of this turn's assistant message, None until first output
        self._assistant_index: int | None = None
        self._current_tool_id: str | None = None
        self._turn_ids: list[str] = []
        self.session_id: str | None = None
        self.mcp_status: tuple[McpServerStatus, ...] = ()
        self.usage: UsageStats | None = None
        self.current_tool: str | None = None
        self.revision = 0

    # -------------------------------------------------------------------------
    # Read access
    # -------------------------------------------------------------------------

    @property
    def messages(self) -> Sequence[Message]:
        return tuple(self._messages)

    @property
    def state(self) -> TurnState:
        return self._state

    @property
    def is_active(self) -> bool:
        return self._state is not TurnState.IDLE

    @property
    def turn_ids(self) -> tuple[str, ...]:
        return tuple(self._turn_ids)

    @property
    def can_undo(self) -> bool:
        return len(self._turn_ids) >= 2

    def __len__(self) -> int:
        return len(self._messages)

    # -------------------------------------------------------------------------
    # Turn lifecycle
    # -------------------------------------------------------------------------

    def begin_turn(self, content: str | Sequence[ContentBlock]) -> Message:
        """Append the user's message and wait for the runtime.

        Args:
            content: Prompt text, or image blocks followed by a text block

        Returns:
            The appended user message

        Raises:
            TurnInProgressError: If a turn is already active
        """
        if self.is_active:
            raise TurnInProgressError("a turn is already in progress")
        if not isinstance(content, str):
            content = tuple(content)
        message = Message(role=Role.USER, content=content)
        self._append(message)
        self._state = TurnState.AWAITING_INIT
        self._assistant_index = None
        self.current_tool = None
        self._current_tool_id = None
        return message

    def apply(self, event: AgentEvent) -> bool:
        """Apply one agent event.

        Events that do not fit the current state are dropped.

        Returns:
            True if the event changed the transcript or its side state
        """
        if not self.is_active:
            logger.debug("Dropping %s while idle", type(event).__name__)
            return False

        if isinstance(event, InitEvent):
            self.session_id = event.session_id
            self.mcp_status = event.mcp_servers
            self._state = TurnState.STREAMING
            self.revision += 1
            return True

        if isinstance(event, UserEchoEvent):
            if event.uuid in self._turn_ids:
                return False
            self._turn_ids.append(event.uuid)
            self.revision += 1
            return True

        if isinstance(event, ResultEvent):
            self._finish_turn(event)
            return True

        if self._state is not TurnState.STREAMING:
            logger.debug("Dropping %s before init", type(event).__name__)
            return False

        if isinstance(event, AssistantDeltaEvent):
            if not event.text:
                return False
            self._merge(lambda m: append_text(m, event.text), first=TextBlock(event.text))
            return True

        if isinstance(event, AssistantToolCallEvent):
            execution = ToolExecution(name=event.name, input=event.input, id=event.id)
            self._merge(lambda m: append_tool_block(m, execution))
            self.current_tool = event.name
            self._current_tool_id = event.id or None
            return True

        if isinstance(event, ToolResultEvent):
            return self._complete_tool(event)

        logger.debug("Dropping unrecognised event %r", event)
        return False

    def fail(self, error: BaseException | str) -> bool:
        """Abort the active turn with an ``Error:`` system message.

        Returns:
            False when no turn was active (nothing changes)
        """
        if not self.is_active:
            return False
        text = str(error) or type(error).__name__
        self._abort(f"Error: {text}")
        return True

    def interrupted(self) -> bool:
        """Abort the active turn after a user interrupt.

        Returns:
            False when no turn was active (nothing changes)
        """
        if not self.is_active:
            return False
        self._abort("Interrupted.")
        return True

    def add_system(self, text: str) -> Message:
        """Append a system message (command output, notices)."""
        message = Message(role=Role.SYSTEM, content=text)
        self._append(message)
        return message

    def pop_turn_id(self) -> str | None:
        """Forget the most recent turn id after a successful rewind."""
        if not self._turn_ids:
            return None
        turn_id = self._turn_ids.pop()
        self.revision += 1
        return turn_id

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _append(self, message: Message) -> None:
        self._messages.append(message)
        self.revision += 1

    def _merge(self, step, first: ContentBlock | None = None) -> None:
        """Apply ``step`` to this turn's assistant message, creating it if needed."""
        index = self._assistant_index
        if index is None:
            if first is not None:
                self._append(Message(role=Role.ASSISTANT, content=(first,)))
                self._assistant_index = len(self._messages) - 1
                return
            self._append(Message(role=Role.ASSISTANT, content=()))
            index = self._assistant_index = len(self._messages) - 1
        self._messages[index] = step(self._messages[index])
        self.revision += 1

    def _complete_tool(self, event: ToolResultEvent) -> bool:
        index = self._assistant_index
        if index is None:
            return False
        status = ToolStatus.ERROR if event.is_error else ToolStatus.COMPLETED
        before = self._messages[index]
        after = update_tool(before, event.tool_use_id, status)
        if after is before:
            logger.debug("No running tool matches result %s", event.tool_use_id)
            return False
        self._messages[index] = after
        if self._current_tool_id == event.tool_use_id:
            self.current_tool = None
            self._current_tool_id = None
        self.revision += 1
        return True

    def _finish_running(self, status: ToolStatus) -> None:
        index = self._assistant_index
        if index is None:
            return
        self._messages[index] = finish_running_tools(self._messages[index], status)

    def _finish_turn(self, event: ResultEvent) -> None:
        self.usage = event.usage
        self._finish_running(ToolStatus.ERROR if event.is_error else ToolStatus.COMPLETED)
        self._reset_turn()
        if event.is_error:
            self._append(
                Message(role=Role.SYSTEM, content=f"Error: {event.error or 'Unknown error'}")
            )
        self.revision += 1

    def _abort(self, notice: str) -> None:
        self._finish_running(ToolStatus.ERROR)
        self._reset_turn()
        self._append(Message(role=Role.SYSTEM, content=notice))

    def _reset_turn(self) -> None:
        self._state = TurnState.IDLE
        self._assistant_index = None
        self.current_tool = None
        self._current_tool_id = None
