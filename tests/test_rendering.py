"""Tests for transcript rendering in mensa_cli/rendering.py.

Covers:
- Blocks rendered in stored order within one message
- Cutting the visible slice to the viewport height
"""

from __future__ import annotations

from rich.console import Console

from mensa.data_structures import (
    ImageBlock,
    Message,
    Role,
    TextBlock,
    ToolBlock,
    ToolExecution,
)
from mensa.viewport import VisibleSlice
from mensa_cli.rendering import MessageRenderer, RenderedLines, render_visible


def _console() -> Console:
    return Console(width=60, color_system=None, force_terminal=False)


def _text(rendered: RenderedLines) -> list[str]:
    return ["".join(segment.text for segment in line).rstrip() for line in rendered.lines]


MESSAGES = [
    Message(role=Role.USER, content="hello"),
    Message(
        role=Role.ASSISTANT,
        content=(
            TextBlock("Hi there"),
            ToolBlock(ToolExecution(name="Read", input={"file_path": "a.py"})),
            TextBlock("Done"),
        ),
    ),
    Message(role=Role.SYSTEM, content="Interrupted."),
]


class TestMessageRenderer:
    """Tests for MessageRenderer."""

    def test_assistant_blocks_in_order(self) -> None:
        """Text, tool and text render in stored order."""
        lines = _text(
            render_visible(_console(), MessageRenderer(), MESSAGES, VisibleSlice(0, 3, 0), 50, 60, False)
        )
        joined = "\n".join(lines)
        assert joined.index("> hello") < joined.index("Hi there")
        assert joined.index("Hi there") < joined.index("Read a.py")
        assert joined.index("Read a.py") < joined.index("Done")
        assert joined.index("Done") < joined.index("Interrupted.")

    def test_blank_text_blocks_skipped(self) -> None:
        """Whitespace-only text produces no renderable."""
        msg = Message(role=Role.ASSISTANT, content=(TextBlock("  "),))
        assert MessageRenderer().assistant(msg) == []

    def test_user_images(self) -> None:
        """Image attachments are shown before the prompt text."""
        msg = Message(
            role=Role.USER,
            content=(ImageBlock(id="i", media_type="image/png"), TextBlock("look")),
        )
        rendered = render_visible(
            _console(), MessageRenderer(), [msg], VisibleSlice(0, 1, 0), 10, 60, False
        )
        lines = [line for line in _text(rendered) if line]
        assert lines == ["> [PNG]", "> look"]


class TestRenderVisible:
    """Tests for render_visible()."""

    def test_follow_keeps_last_lines(self) -> None:
        """While following, the bottom of the transcript is shown."""
        rendered = render_visible(
            _console(), MessageRenderer(), MESSAGES, VisibleSlice(0, 3, 0), 2, 60, True
        )
        lines = _text(rendered)
        assert len(lines) == 2
        assert "Interrupted." in lines[-1]

    def test_skip_lines_of_first_message(self) -> None:
        """Scrolled views start skip lines into the first message."""
        rendered = render_visible(
            _console(), MessageRenderer(), MESSAGES, VisibleSlice(0, 1, 1), 1, 60, False
        )
        assert _text(rendered) == ["> hello"]

    def test_height_limits_output(self) -> None:
        """No more than height lines are returned."""
        rendered = render_visible(
            _console(), MessageRenderer(), MESSAGES, VisibleSlice(0, 3, 0), 3, 60, False
        )
        assert len(rendered.lines) == 3
