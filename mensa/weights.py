"""Rendered-height estimates for transcript messages.

The viewport only needs an approximate line count per message to decide what
fits on screen. Estimates are computed from character widths, never by
rendering, and are cached per message object so a streaming delta only costs
one recomputation.
"""

from __future__ import annotations

from collections.abc import Sequence

import wcwidth

from .data_structures import ImageBlock, Message, TextBlock, ToolBlock, assert_never

__all__ = [
    "GUTTER_COLUMNS",
    "EDIT_TOOL_WEIGHT",
    "TOOL_WEIGHT",
    "IMAGE_WEIGHT",
    "estimate_weight",
    "WeightCache",
]

# Messages render with a 2-column prefix ("> ", "* ", "  ")
GUTTER_COLUMNS = 2
# Edit tools render a diff preview
EDIT_TOOL_WEIGHT = 12
TOOL_WEIGHT = 2
IMAGE_WEIGHT = 1
# Blank line above every message
MESSAGE_MARGIN = 1


def _char_width(char: str) -> int:
    width = wcwidth.wcwidth(char)
    # Control characters such as tabs report -1; they still take a column
    return width if width >= 0 else 1


def _display_width(line: str) -> int:
    return sum(_char_width(c) for c in line)


def _text_lines(text: str, usable: int) -> int:
    total = 0
    for line in text.split("\n"):
        width = _display_width(line)
        total += max(1, -(-width // usable))
    return total


def estimate_weight(message: Message, columns: int = 80) -> int:
    """Estimate how many terminal lines a message occupies.

    Args:
        message: The message to measure
        columns: Terminal width

    Returns:
        A line count >= 1 that never decreases as content is appended
    """
    usable = max(1, columns - GUTTER_COLUMNS)
    if isinstance(message.content, str):
        return MESSAGE_MARGIN + _text_lines(message.content, usable)

    lines = 0
    for block in message.content:
        if isinstance(block, TextBlock):
            lines += _text_lines(block.text, usable)
        elif isinstance(block, ImageBlock):
            lines += IMAGE_WEIGHT
        elif isinstance(block, ToolBlock):
            lines += EDIT_TOOL_WEIGHT if block.execution.name == "Edit" else TOOL_WEIGHT
        else:
            assert_never(block)
    return MESSAGE_MARGIN + max(1, lines)


class WeightCache:
    """Index-aligned weights, recomputed only for messages that changed.

    Messages are frozen, so a changed message is a different object. ``sync``
    compares by identity and leaves every other entry alone.
    """

    def __init__(self, columns: int = 80) -> None:
        self._columns = columns
        self._messages: list[Message] = []
        self._weights: list[int] = []

    @property
    def columns(self) -> int:
        return self._columns

    @property
    def weights(self) -> tuple[int, ...]:
        return tuple(self._weights)

    def set_columns(self, columns: int) -> None:
        """Change the assumed terminal width; every entry is recomputed on next sync."""
        if columns != self._columns:
            self._columns = columns
            self._messages = []
            self._weights = []

    def sync(self, messages: Sequence[Message]) -> tuple[int, ...]:
        """Bring the cache in line with ``messages`` and return the weights."""
        del self._messages[len(messages) :]
        del self._weights[len(messages) :]
        for i, message in enumerate(messages):
            if i < len(self._messages):
                if self._messages[i] is message:
                    continue
                self._messages[i] = message
                self._weights[i] = estimate_weight(message, self._columns)
            else:
                self._messages.append(message)
                self._weights.append(estimate_weight(message, self._columns))
        return tuple(self._weights)
