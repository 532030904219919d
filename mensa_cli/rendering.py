"""High-level message rendering helpers.

Each transcript message becomes one contiguous group of renderables, blocks in
stored order, preceded by a blank margin line. ``render_visible`` turns the
viewport's visible slice into exactly the terminal lines to show.
"""

from __future__ import annotations

from collections.abc import Sequence

from rich.console import Console, ConsoleOptions, Group, RenderableType, RenderResult
from rich.segment import Segment
from rich.text import Text

from mensa.data_structures import ImageBlock, Message, Role, TextBlock, ToolBlock, assert_never
from mensa.viewport import VisibleSlice

from . import display


class MessageRenderer:
    """Renderer for transcript messages."""

    def user(self, message: Message) -> list[RenderableType]:
        items: list[RenderableType] = []
        for block in message.blocks:
            if isinstance(block, ImageBlock):
                items.append(display.format_image_block(block))
            elif isinstance(block, TextBlock):
                items.append(display.format_user_message(block.text))
        return items

    def assistant(self, message: Message) -> list[RenderableType]:
        items: list[RenderableType] = []
        for block in message.blocks:
            if isinstance(block, TextBlock):
                if block.text.strip():
                    items.append(display.format_assistant_text(block.text))
            elif isinstance(block, ToolBlock):
                items.append(display.format_tool_block(block.execution))
            elif isinstance(block, ImageBlock):
                items.append(display.format_image_block(block))
            else:
                assert_never(block)
        return items

    def system(self, message: Message) -> list[RenderableType]:
        return [display.format_system_message(message.text)]

    def render(self, message: Message) -> RenderableType:
        """One message as a group: margin line, then its blocks in order."""
        if message.role is Role.USER:
            items = self.user(message)
        elif message.role is Role.ASSISTANT:
            items = self.assistant(message)
        elif message.role is Role.SYSTEM:
            items = self.system(message)
        else:
            assert_never(message.role)
        return Group(Text(""), *items)


class RenderedLines:
    """A fixed list of pre-rendered lines, emitted as-is."""

    def __init__(self, lines: Sequence[list[Segment]]) -> None:
        self.lines = lines

    def __rich_console__(self, console: Console, options: ConsoleOptions) -> RenderResult:
        new_line = Segment.line()
        for line in self.lines:
            yield from line
            yield new_line


def render_visible(
    console: Console,
    renderer: MessageRenderer,
    messages: Sequence[Message],
    window: VisibleSlice,
    height: int,
    width: int,
    follow: bool,
) -> RenderedLines:
    """Render the messages in ``window`` and cut them to ``height`` lines.

    Weights are estimates, so the cut is anchored where it matters: the last
    ``height`` lines while following, otherwise ``window.skip`` lines into
    the first message. Messages past ``window.end`` are rendered only while
    the estimate fell short of filling the screen.
    """
    options = console.options.update(width=width, height=None)
    lines: list[list[Segment]] = []
    needed = window.skip + height
    for index in range(window.start, len(messages)):
        if index >= window.end and len(lines) >= needed and not follow:
            break
        lines.extend(console.render_lines(renderer.render(messages[index]), options, pad=False))
    if follow:
        return RenderedLines(lines[-height:] if height > 0 else [])
    return RenderedLines(lines[window.skip : window.skip + height])
