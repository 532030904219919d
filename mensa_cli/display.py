"""Message display formatting for the chat screen using Rich.

This module provides simple formatting functions that return Rich renderables
for transcript blocks, tool executions, the status bar and the various
command screens.
"""

from __future__ import annotations

import difflib
import re
from typing import Any, Iterable, Iterator, Mapping, TypeVar

from rich import box
from rich.console import Console, ConsoleOptions, Group, RenderableType, RenderResult
from rich.markdown import (
    ListItem,
    Markdown,
    MarkdownContext,
    MarkdownElement,
    TableBodyElement,
    TableHeaderElement,
    TextElement,
)
from rich.segment import Segment
from rich.syntax import Syntax
from rich.table import Table
from rich.text import Text

from mensa.data_structures import ImageBlock, ToolExecution, ToolStatus
from mensa.events import McpServerStatus, UsageStats

T = TypeVar("T")


def _loop_first(iterable: Iterable[T]) -> Iterator[tuple[bool, T]]:
    """Yield (is_first, item) for each element."""
    iterator = iter(iterable)
    try:
        first_item = next(iterator)
    except StopIteration:
        return
    yield True, first_item
    for item in iterator:
        yield False, item


GUTTER = "│ "
USER_PROMPT = "> "
EDIT_CONTEXT_LINES = 3

LOGO = """\
  ███╗   ███╗███████╗███╗   ██╗███████╗ █████╗
  ████╗ ████║██╔════╝████╗  ██║██╔════╝██╔══██╗
  ██╔████╔██║█████╗  ██╔██╗ ██║███████╗███████║
  ██║╚██╔╝██║██╔══╝  ██║╚██╗██║╚════██║██╔══██║
  ██║ ╚═╝ ██║███████╗██║ ╚████║███████║██║  ██║
  ╚═╝     ╚═╝╚══════╝╚═╝  ╚═══╝╚══════╝╚═╝  ╚═╝"""

HELP_TEXT = """Available commands:
/config, /settings - Open settings
/mcp - Manage MCP servers
/undo - Undo last action (revert file changes)
/clear - Clear the screen
/help - Show this help
exit, quit - Exit mensa

Shortcuts:
Ctrl+C - Interrupt current operation (exit when idle)
Ctrl+D - Exit
Ctrl+V - Paste image from clipboard
PageUp/PageDown, Shift+Up/Down - Scroll"""


# =============================================================================
# Markdown
# =============================================================================


class WideListItem(ListItem):
    """ListItem that wraps long lines instead of truncating them.

    Rich's default ListItem constrains content to (max_width - 3) and the
    viewport math assumes every line wraps at the available width, so the
    bullet text is rendered at that width and trailing padding is stripped.
    """

    @staticmethod
    def _strip_trailing_spaces(line: list[Segment]) -> list[Segment]:
        """Remove trailing whitespace segments from a line."""
        result = list(line)
        while result and result[-1].text.isspace():
            result.pop()
        if result and result[-1].text.endswith(" "):
            last = result[-1]
            result[-1] = Segment(last.text.rstrip(), last.style, last.control)
        return result

    def render_bullet(self, console: Console, options: ConsoleOptions) -> RenderResult:
        render_options = options.update(width=max(1, options.max_width - 3))
        lines = console.render_lines(self.elements, render_options, style=self.style)
        bullet_style = console.get_style("markdown.item.bullet", default="none")

        bullet = Segment(" • ", bullet_style)
        padding = Segment(" " * 3, bullet_style)
        new_line = Segment("\n")
        for first, line in _loop_first(lines):
            yield bullet if first else padding
            yield from self._strip_trailing_spaces(line)
            yield new_line

    def render_number(
        self,
        console: Console,
        options: ConsoleOptions,
        number: int,
        last_number: int,
    ) -> RenderResult:
        number_width = len(str(last_number)) + 2
        render_options = options.update(width=max(1, options.max_width - number_width))
        lines = console.render_lines(self.elements, render_options, style=self.style)
        number_style = console.get_style("markdown.item.number", default="none")

        number_str = f"{number}".rjust(number_width - 1) + " "
        number_seg = Segment(number_str, number_style)
        padding = Segment(" " * number_width, number_style)
        new_line = Segment("\n")
        for first, line in _loop_first(lines):
            yield number_seg if first else padding
            yield from self._strip_trailing_spaces(line)
            yield new_line


class SimpleHeading(TextElement):
    """Renders headings with the # prefix preserved, bold, left-aligned."""

    @classmethod
    def create(cls, markdown: Markdown, token: object) -> "SimpleHeading":
        return cls(getattr(token, "tag", "h1"))

    def __init__(self, tag: str) -> None:
        self.tag = tag
        self.level = int(tag[1])
        super().__init__()

    def __rich_console__(self, console: Console, options: ConsoleOptions) -> RenderResult:
        text = Text("#" * self.level + " ", style="bold")
        text.append_text(self.text)
        text.stylize("bold")
        yield text


class SimpleCodeBlock(TextElement):
    """Renders code blocks without left padding, so copied code keeps its indentation."""

    style_name = "markdown.code_block"

    @classmethod
    def create(cls, markdown: Markdown, token: object) -> "SimpleCodeBlock":
        node_info = getattr(token, "info", "") or ""
        lexer_name = node_info.partition(" ")[0]
        return cls(lexer_name or "text", markdown.code_theme)

    def __init__(self, lexer_name: str, theme: str) -> None:
        self.lexer_name = lexer_name
        self.theme = theme

    def __rich_console__(self, console: Console, options: ConsoleOptions) -> RenderResult:
        code = str(self.text).rstrip()
        yield Syntax(
            code,
            self.lexer_name,
            theme=self.theme,
            word_wrap=True,
            padding=0,
            background_color="default",
        )


class SimpleTableElement(MarkdownElement):
    """Table element with a plain square box."""

    def __init__(self) -> None:
        self.header: TableHeaderElement | None = None
        self.body: TableBodyElement | None = None

    def on_child_close(self, context: MarkdownContext, child: MarkdownElement) -> bool:
        if isinstance(child, TableHeaderElement):
            self.header = child
        elif isinstance(child, TableBodyElement):
            self.body = child
        return False

    def __rich_console__(self, console: Console, options: ConsoleOptions) -> RenderResult:
        table = Table(box=box.SQUARE)
        if self.header is not None and self.header.row is not None:
            for column in self.header.row.cells:
                table.add_column(column.content)
        if self.body is not None:
            for row in self.body.rows:
                table.add_row(*[element.content for element in row.cells])
        yield table


class LimitedMarkdown(Markdown):
    """Markdown with simplified header, code block, table and list styles."""

    elements = {
        **Markdown.elements,
        "heading_open": SimpleHeading,
        "code_block": SimpleCodeBlock,
        "fence": SimpleCodeBlock,
        "table_open": SimpleTableElement,
        "list_item_open": WideListItem,
    }


class Gutter:
    """Prefix every rendered line of a renderable with a fixed-width gutter."""

    def __init__(self, renderable: RenderableType, prefix: str = GUTTER, style: str = "dim") -> None:
        self.renderable = renderable
        self.prefix = prefix
        self.style = style

    def __rich_console__(self, console: Console, options: ConsoleOptions) -> RenderResult:
        width = max(1, options.max_width - len(self.prefix))
        lines = console.render_lines(self.renderable, options.update(width=width), pad=False)
        prefix = Segment(self.prefix, console.get_style(self.style))
        new_line = Segment.line()
        for line in lines:
            yield prefix
            yield from line
            yield new_line


# =============================================================================
# Messages
# =============================================================================


def format_user_message(text: str) -> RenderableType:
    """Format a user message with prompt prefix and subtle background."""
    lines = text.split("\n")
    padded = [f"{USER_PROMPT}{lines[0]}"]
    indent = " " * len(USER_PROMPT)
    for line in lines[1:]:
        padded.append(f"{indent}{line}")
    return Text("\n".join(padded), style="bold on grey23", overflow="fold")


def format_assistant_text(text: str) -> RenderableType:
    """Format assistant text as markdown behind the gutter."""
    return Gutter(LimitedMarkdown(text.rstrip(), code_theme="native"))


def format_system_message(text: str) -> RenderableType:
    """Format a system message with dim styling."""
    style = "red" if text.startswith(("Error:", "Undo failed:", "Cannot undo:")) else "dim"
    return Gutter(Text(text, style=style, overflow="fold"), style=style)


def format_size(num_bytes: int) -> str:
    """Format a byte count as B, KB or MB."""
    if num_bytes < 1024:
        return f"{num_bytes}B"
    if num_bytes < 1024 * 1024:
        return f"{num_bytes / 1024:.1f}KB"
    return f"{num_bytes / (1024 * 1024):.1f}MB"


def format_image_label(media_type: str, size: str | None = None) -> Text:
    """Format an image chip like ``[PNG] 12.3KB``."""
    ext = media_type.split("/")[-1] if "/" in media_type else "image"
    result = Text()
    result.append(f"[{ext.upper()}]", style="cyan")
    if size:
        result.append(f" {size}", style="dim")
    return result


def format_image_block(block: ImageBlock) -> Text:
    result = Text(USER_PROMPT)
    result.append_text(format_image_label(block.media_type))
    return result


# =============================================================================
# Tools
# =============================================================================


def format_tool_summary(name: str, tool_input: Any) -> str:
    """One-line summary of a tool call's most telling argument."""
    if isinstance(tool_input, str):
        return tool_input[:60]
    if isinstance(tool_input, Mapping):
        if "file_path" in tool_input:
            return str(tool_input["file_path"])
        if "command" in tool_input:
            cmd = str(tool_input["command"])
            return cmd[:47] + "..." if len(cmd) > 50 else cmd
        for key in ("pattern", "path", "url", "query"):
            if key in tool_input:
                return str(tool_input[key])
    return ""


def _is_edit_input(tool_input: Any) -> bool:
    return isinstance(tool_input, Mapping) and all(
        k in tool_input for k in ("file_path", "old_string", "new_string")
    )


def _is_task_input(tool_input: Any) -> bool:
    return isinstance(tool_input, Mapping) and "description" in tool_input and "prompt" in tool_input


def format_edit_diff(
    file_path: str, old: str, new: str, context_lines: int = EDIT_CONTEXT_LINES
) -> Text:
    """Render an Edit call as a compact line diff.

    Unchanged runs longer than twice ``context_lines`` are elided to their
    first and last ``context_lines`` lines.
    """
    old_lines = old.split("\n")
    new_lines = new.split("\n")
    result = Text(overflow="fold")
    result.append(f"  {file_path}\n", style="dim")
    result.append("  " + "─" * min(40, len(file_path) + 4), style="dim")

    matcher = difflib.SequenceMatcher(a=old_lines, b=new_lines, autojunk=False)
    opcodes = matcher.get_opcodes()
    if all(tag == "equal" for tag, *_ in opcodes):
        result.append("\n  (no changes)", style="dim")
        return result

    for tag, i1, i2, j1, j2 in opcodes:
        if tag == "equal":
            lines = old_lines[i1:i2]
            if len(lines) > context_lines * 2:
                lines = lines[:context_lines] + ["..."] + lines[-context_lines:]
            for line in lines:
                result.append(f"\n  {line}", style="dim")
            continue
        for line in old_lines[i1:i2]:
            result.append(f"\n- {line}", style="red")
        for line in new_lines[j1:j2]:
            result.append(f"\n+ {line}", style="green")
    return result


def format_tool_block(execution: ToolExecution) -> RenderableType:
    """Format one tool execution as it appears inside an assistant message."""
    name = execution.name
    tool_input = execution.input
    header = Text(overflow="fold")

    if name == "Edit" and _is_edit_input(tool_input):
        assert isinstance(tool_input, Mapping)
        header.append(name, style="cyan")
        header.append(f" {tool_input['file_path']}", style="dim")
        _append_status(header, execution.status)
        diff = format_edit_diff(
            str(tool_input["file_path"]),
            str(tool_input["old_string"]),
            str(tool_input["new_string"]),
        )
        return Gutter(Group(header, diff))

    if name == "Task" and _is_task_input(tool_input):
        assert isinstance(tool_input, Mapping)
        header.append(name, style="magenta")
        header.append(f": {tool_input['description']}", style="dim")
        _append_status(header, execution.status)
        return Gutter(header)

    header.append(name, style="yellow")
    summary = format_tool_summary(name, tool_input)
    if summary:
        header.append(f" {summary}", style="dim")
    _append_status(header, execution.status)
    return Gutter(header)


def _append_status(text: Text, status: ToolStatus) -> None:
    if status is ToolStatus.RUNNING:
        text.append(" ...", style="dim")
    elif status is ToolStatus.ERROR:
        text.append(" ✗", style="red")


def format_tool_indicator(name: str) -> Text:
    """Spinner line shown while a tool runs."""
    return Text(f"Using {name}...", style="dim")


# =============================================================================
# Status bar
# =============================================================================


def format_cost(usd: float) -> str:
    """Format a dollar amount: 4 decimals below one cent, otherwise 2."""
    if usd == 0:
        return "$0.00"
    if usd < 0.01:
        return f"${usd:.4f}"
    return f"${usd:.2f}"


def format_tokens(count: int) -> str:
    """Format a token count as 950, 1.2K or 3.4M."""
    if count >= 1_000_000:
        return f"{count / 1_000_000:.1f}M"
    if count >= 1000:
        return f"{count / 1000:.1f}K"
    return str(count)


_DATE_SUFFIX = re.compile(r"^\d{8}$")


def format_model_name(model: str) -> str:
    """Turn a model id into a short display name.

    Examples:
        >>> format_model_name("claude-sonnet-4-5-20250929")
        'Sonnet 4.5'
        >>> format_model_name("claude-opus-4-20250514")
        'Opus 4'
    """
    parts = model.split("-")
    if len(parts) >= 4:
        name = parts[1].capitalize()
        major = parts[2]
        minor = parts[3]
        if _DATE_SUFFIX.match(minor):
            return f"{name} {major}"
        return f"{name} {major}.{minor}"
    return model


def format_status_bar(
    model: str,
    usage: UsageStats | None = None,
    max_budget_usd: float | None = None,
    can_undo: bool = False,
    mcp_count: int = 0,
) -> Text:
    """Format the bottom status line."""
    parts = [f"mensa | {format_model_name(model)}"]
    if usage is not None and (usage.input_tokens > 0 or usage.output_tokens > 0):
        parts.append(f"{format_tokens(usage.total_tokens)} tokens")
        if usage.total_cost_usd > 0:
            cost = format_cost(usage.total_cost_usd)
            if max_budget_usd:
                cost += f"/{format_cost(max_budget_usd)}"
            parts.append(cost)
    if mcp_count > 0:
        parts.append(f"{mcp_count} MCP")
    if can_undo:
        parts.append("/undo")
    return Text(" | ".join(parts), style="dim", no_wrap=True, overflow="ellipsis")


def format_scroll_indicator(lines_below: int) -> Text:
    return Text(f"↓ {lines_below} more lines (PageDown / Shift+↓)", style="dim italic")


# =============================================================================
# Screens
# =============================================================================


MCP_INDICATORS: dict[str, tuple[str, str]] = {
    "connected": ("*", "green"),
    "failed": ("x", "red"),
    "pending": ("~", "yellow"),
    "needs-auth": ("!", "yellow"),
}


def mcp_indicator(status: McpServerStatus | None) -> tuple[str, str]:
    """Return ``(glyph, color)`` for a server's live status."""
    if status is None:
        return ("o", "grey50")
    return MCP_INDICATORS.get(status.status, ("o", "grey50"))


def format_mcp_server(
    name: str, transport: str, detail: str, status: McpServerStatus | None = None
) -> Text:
    glyph, color = mcp_indicator(status)
    result = Text()
    result.append(f"{glyph} ", style=color)
    result.append(name, style="bold")
    result.append(f" ({transport}) ", style="dim")
    result.append(detail, style="dim")
    return result


def format_welcome() -> RenderableType:
    """Logo and tagline shown on first run."""
    return Group(
        Text(LOGO, style="bold"),
        Text("  your minimal coding companion", style="dim"),
        Text(""),
    )


def to_ansi(console: Console, text: Text) -> str:
    """Render styled text as one ANSI-escaped string for the input elements."""
    return "".join(
        segment.style.render(segment.text) if segment.style else segment.text
        for segment in text.render(console, end="")
    )
