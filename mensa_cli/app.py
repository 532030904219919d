"""Full-screen chat application for mensa.

The screen is one Rich ``Live`` display in the alternate screen:

    Transcript area (viewport over the message list)
    ├── visible slice of messages, cut to the viewport height
    └── "more lines below" indicator while scrolled up
    Footer
    ├── activity line while a turn runs
    ├── input editor (or the active settings element)
    └── status bar

Keystrokes are read in raw mode on a worker thread and handled on the event
loop. Turns and commands run as tasks so input keeps flowing to the
interrupt key and to settings elements while they are pending.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine, Sequence
from dataclasses import dataclass, field, replace
from typing import Any, TypeVar

from rich.console import Console, Group, RenderableType
from rich.live import Live
from rich.segment import Segment
from rich.text import Text
from rich.theme import Theme

from mensa.data_structures import PendingImage
from mensa.errors import ConfigError, ImageCaptureError, TurnInProgressError
from mensa.images import get_clipboard_image
from mensa.runtime import AgentRuntime, ClaudeCliRuntime
from mensa.session import ChatSession
from mensa.transcript import TranscriptAccumulator
from mensa.viewport import SCROLL_STEP, Viewport
from mensa.weights import WeightCache

from . import display
from .commands import EXIT_COMMANDS, CommandContext, CommandRouter
from .config import (
    MODELS,
    Config,
    add_mcp_server,
    describe_mcp_server,
    load_config,
    remove_mcp_server,
    save_config,
    save_last_session_id,
)
from .elements import (
    ANSI,
    ActiveElement,
    EditorBase,
    ElementManager,
    InputEvent,
    LineEditor,
    MenuSelect,
    RawInputReader,
    Submission,
    TextPrompt,
    VimEditor,
)
from .rendering import MessageRenderer, RenderedLines, render_visible

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Seconds between keyboard polls; bounds how long shutdown waits for the reader
POLL_INTERVAL = 0.05
# Redraw at least this often so terminal resizes are picked up
REDRAW_INTERVAL = 0.5

SERVER_TYPES: list[tuple[str, str]] = [
    ("stdio", "stdio (local command)"),
    ("sse", "sse (server-sent events)"),
    ("http", "http (HTTP endpoint)"),
]


async def run_onboarding(
    console: Console,
    config_file: str | None = None,
    manager: ElementManager | None = None,
) -> Config | None:
    """First-run setup: show the welcome banner and pick a model.

    Returns:
        The saved config, or None if the user cancelled
    """
    console.print(display.format_welcome())
    manager = manager or ElementManager()
    model = await manager.run(
        MenuSelect(
            title="Select your preferred model:",
            options=[m["label"] for m in MODELS],
            values=[m["value"] for m in MODELS],
        )
    )
    if model is None:
        return None
    config = Config.new(model)
    save_config(config, config_file)
    return config


@dataclass
class ChatApp:
    """The chat screen: transcript viewport, input editor and status bar."""

    config: Config
    runtime: AgentRuntime | None = None
    config_file: str | None = None
    editor: EditorBase | None = None
    # Custom theme removes background from inline code (markdown.code)
    console: Console = field(
        default_factory=lambda: Console(theme=Theme({"markdown.code": "cyan"}))
    )

    session: ChatSession = field(init=False)
    renderer: MessageRenderer = field(init=False, default_factory=MessageRenderer)
    router: CommandRouter = field(init=False, default_factory=CommandRouter)
    weights: WeightCache = field(init=False, default_factory=WeightCache)
    viewport: Viewport = field(init=False, default_factory=lambda: Viewport(height=1))

    _first_message: int = field(default=0, init=False, repr=False)
    _overlay: ActiveElement[Any] | None = field(default=None, init=False, repr=False)
    _overlay_future: asyncio.Future[Any] | None = field(default=None, init=False, repr=False)
    _tasks: set[asyncio.Task[None]] = field(default_factory=set, init=False, repr=False)
    _dirty: asyncio.Event = field(default_factory=asyncio.Event, init=False, repr=False)
    _running: bool = field(default=False, init=False, repr=False)

    def __post_init__(self) -> None:
        if self.editor is None:
            if self.config.editor_mode == "vim":
                self.editor = VimEditor()
            else:
                self.editor = LineEditor.with_file_history()
        self.session = ChatSession(
            self.runtime,
            on_update=self.invalidate,
            on_session_id=self._on_session_id,
        )

    @property
    def transcript(self) -> TranscriptAccumulator:
        return self.session.transcript

    @property
    def input(self) -> EditorBase:
        assert self.editor is not None
        return self.editor

    @property
    def running(self) -> bool:
        return self._running

    def invalidate(self) -> None:
        """Request a redraw."""
        self._dirty.set()

    # =========================================================================
    # Rendering
    # =========================================================================

    def _footer(self, width: int) -> list[Text]:
        rows: list[Text] = []
        if self._overlay is not None:
            lines = self._overlay.get_lines(width)
        else:
            if self.transcript.is_active:
                if self.transcript.current_tool:
                    rows.append(display.format_tool_indicator(self.transcript.current_tool))
                else:
                    rows.append(Text("Thinking... (Ctrl+C to interrupt)", style="dim"))
            lines = self.input.get_lines(width)
        rows.extend(Text.from_ansi(line, no_wrap=True, overflow="crop") for line in lines)
        rows.append(
            display.format_status_bar(
                self.config.model,
                self.transcript.usage,
                self.config.max_budget_usd,
                self.transcript.can_undo,
                len(self.config.mcp_servers),
            )
        )
        for row in rows:
            row.no_wrap = True
        return rows

    def _body(self, width: int, height: int) -> list[list[Segment]]:
        messages = self.transcript.messages[self._first_message :]
        self.weights.set_columns(width)
        self.viewport.resize(height)
        self.viewport.recompute(self.weights.sync(messages))
        if self.viewport.show_indicator and height > 1:
            self.viewport.resize(height - 1)

        if not messages:
            options = self.console.options.update(width=width, height=None)
            lines = self.console.render_lines(display.format_welcome(), options, pad=False)
            return lines[: self.viewport.height]
        rendered = render_visible(
            self.console,
            self.renderer,
            messages,
            self.viewport.visible_slice(),
            self.viewport.height,
            width,
            self.viewport.auto_follow,
        )
        return list(rendered.lines)

    def render(self) -> RenderableType:
        """The whole screen for the current state."""
        width, height = self.console.size
        footer = self._footer(width)
        body = self._body(width, max(1, height - len(footer)))
        # Pad so the footer stays at the bottom
        body.extend([] for _ in range(self.viewport.height - len(body)))
        rows: list[RenderableType] = [RenderedLines(body)]
        if self.viewport.show_indicator:
            rows.append(display.format_scroll_indicator(self.viewport.max_scroll - self.viewport.offset))
        rows.extend(footer)
        return Group(*rows)

    # =========================================================================
    # Input
    # =========================================================================

    async def handle_event(self, event: InputEvent) -> bool:
        """Handle one keystroke. Returns False when the app should exit."""
        if self._overlay is not None:
            done, result = self._overlay.handle_input(event)
            if done and self._overlay_future is not None and not self._overlay_future.done():
                self._overlay_future.set_result(result)
            return True

        if event.ctrl and event.char == "c":
            if self.transcript.is_active:
                await self.session.interrupt()
                return True
            return False
        if event.ctrl and event.char == "d":
            return False
        if self._scroll(event):
            return True
        if event.ctrl and event.char == "v":
            await self.paste_image()
            return True

        editor = self.input
        editor.submit_enabled = not self.transcript.is_active
        done, submission = editor.handle_input(event)
        if done and submission is not None:
            return self.submit(submission)
        return True

    def _scroll(self, event: InputEvent) -> bool:
        if event.key == "PageUp":
            self.viewport.page_up()
        elif event.key == "PageDown":
            self.viewport.page_down()
        elif event.key == "Up" and event.shift:
            self.viewport.scroll_up(SCROLL_STEP)
        elif event.key == "Down" and event.shift:
            self.viewport.scroll_down(SCROLL_STEP)
        else:
            return False
        return True

    async def paste_image(self) -> None:
        """Attach the clipboard image to the editor, or show why not."""
        try:
            image = await get_clipboard_image()
        except ImageCaptureError as e:
            self.input.notice = str(e)
        else:
            self.input.attach_image(image)
        self.invalidate()

    def submit(self, submission: Submission) -> bool:
        """Start a command or a turn for submitted input.

        Returns:
            False for the exit commands
        """
        text = submission.text
        if not submission.images and self.router.is_command(text):
            if text.lower().strip() in EXIT_COMMANDS:
                return False
            self._spawn(self._run_command(text))
            return True
        self.viewport.scroll_to_bottom()
        self._spawn(self._run_turn(text, submission.images))
        return True

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> asyncio.Task[None]:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Background task failed", exc_info=task.exception())
        self.invalidate()

    async def _run_turn(self, text: str, images: Sequence[PendingImage]) -> None:
        try:
            await self.session.send(text, images)
        except TurnInProgressError:
            self.input.notice = "Wait for the current response to finish"
        except ImageCaptureError as e:
            self.input.notice = str(e)

    async def _run_command(self, text: str) -> None:
        ctx = CommandContext(
            session=self.session,
            open_settings=self.open_settings,
            open_mcp=self.open_mcp,
            clear_screen=self.clear_screen,
        )
        if not await self.router.handle(text, ctx):
            self._running = False

    # =========================================================================
    # Screens
    # =========================================================================

    async def _run_overlay(self, element: ActiveElement[T]) -> T | None:
        """Show ``element`` in place of the editor until it completes."""
        if self._overlay is not None:
            raise RuntimeError("Another element is already active")
        future: asyncio.Future[T | None] = asyncio.get_running_loop().create_future()
        self._overlay = element
        self._overlay_future = future
        element.on_activate()
        self.invalidate()
        try:
            return await future
        finally:
            element.on_deactivate()
            self._overlay = None
            self._overlay_future = None
            self.invalidate()

    def clear_screen(self) -> None:
        """Hide earlier messages. The transcript itself is kept."""
        self._first_message = len(self.transcript)
        self.viewport.scroll_to_bottom()

    async def open_settings(self) -> None:
        model = await self._run_overlay(
            MenuSelect(
                title="Settings",
                header=[],
                options=[m["label"] for m in MODELS],
                values=[m["value"] for m in MODELS],
                current=self.config.model,
            )
        )
        if model is None or model == self.config.model:
            return
        self.config.model = model
        try:
            save_config(self.config, self.config_file)
        except ConfigError as e:
            self.transcript.add_system(f"Error: {e}")
        self._apply_config()
        self.transcript.add_system(f"Model set to {display.format_model_name(model)}")

    def _mcp_header(self) -> list[str]:
        statuses = {s.name: s for s in self.transcript.mcp_status}
        header = [f"{ANSI.BOLD}MCP Servers{ANSI.RESET}", ""]
        if not self.config.mcp_servers:
            header.append(f"{ANSI.DIM}No MCP servers configured{ANSI.RESET}")
        for name, server in self.config.mcp_servers.items():
            transport, detail = describe_mcp_server(server)
            line = display.format_mcp_server(name, transport, detail, statuses.get(name))
            header.append(display.to_ansi(self.console, line))
        header.append("")
        return header

    async def open_mcp(self) -> None:
        """Server list with live status, plus add and remove flows."""
        while True:
            options = ["Add server"]
            values = ["add"]
            if self.config.mcp_servers:
                options.append("Remove server")
                values.append("remove")
            options.append("Back")
            values.append("back")
            choice = await self._run_overlay(
                MenuSelect(title="", header=self._mcp_header(), options=options, values=values)
            )
            if choice == "add":
                await self._add_mcp_server()
            elif choice == "remove":
                await self._remove_mcp_server()
            else:
                return

    async def _add_mcp_server(self) -> None:
        name = await self._run_overlay(
            TextPrompt(
                title="Add MCP Server",
                label="Server name: ",
                placeholder="my-server",
                required=True,
                error="Server name is required",
            )
        )
        if name is None:
            return
        transport = await self._run_overlay(
            MenuSelect(
                title=f"Add MCP Server: {name}",
                header=[],
                options=[label for _, label in SERVER_TYPES],
                values=[value for value, _ in SERVER_TYPES],
            )
        )
        if transport is None:
            return

        server: dict[str, Any]
        if transport == "stdio":
            command = await self._run_overlay(
                TextPrompt(
                    title=f"Add MCP Server: {name}",
                    label="Command: ",
                    placeholder="npx @modelcontextprotocol/server-filesystem",
                    required=True,
                    error="Command is required",
                )
            )
            if command is None:
                return
            args = await self._run_overlay(
                TextPrompt(
                    title=f"Add MCP Server: {name}",
                    label="Arguments: ",
                    placeholder="(optional, space-separated)",
                )
            )
            if args is None:
                return
            server = {"command": command, "args": args.split() or None}
        else:
            url = await self._run_overlay(
                TextPrompt(
                    title=f"Add MCP Server: {name}",
                    label="URL: ",
                    placeholder="https://example.com/mcp",
                    required=True,
                    error="URL is required",
                )
            )
            if url is None:
                return
            server = {"type": transport, "url": url}

        try:
            add_mcp_server(name, server, self.config_file)
        except ConfigError as e:
            self.transcript.add_system(f"Error: {e}")
            return
        self._reload_config()
        self.transcript.add_system(f"Added MCP server: {name}")

    async def _remove_mcp_server(self) -> None:
        names = list(self.config.mcp_servers)
        name = await self._run_overlay(MenuSelect(title="Remove which server?", options=names))
        if name is None:
            return
        try:
            removed = remove_mcp_server(name, self.config_file)
        except ConfigError as e:
            self.transcript.add_system(f"Error: {e}")
            return
        if removed:
            self._reload_config()
            self.transcript.add_system(f"Removed MCP server: {name}")

    # =========================================================================
    # Config
    # =========================================================================

    def _reload_config(self) -> None:
        config = load_config(self.config_file)
        if config is not None:
            config.editor_mode = self.config.editor_mode
            self.config = config
        self._apply_config()

    def _apply_config(self) -> None:
        """Carry settings changes over to the runtime's next turn."""
        if isinstance(self.runtime, ClaudeCliRuntime):
            self.runtime.options = replace(
                self.runtime.options,
                model=self.config.model,
                mcp_servers=dict(self.config.mcp_servers),
                max_budget_usd=self.config.max_budget_usd,
            )

    def _on_session_id(self, session_id: str) -> None:
        self.config.last_session_id = session_id
        try:
            save_last_session_id(session_id, self.config_file)
        except ConfigError as e:
            logger.warning("Could not save session id: %s", e)

    # =========================================================================
    # Main loop
    # =========================================================================

    async def _input_loop(self, reader: RawInputReader) -> None:
        loop = asyncio.get_running_loop()
        while self._running:
            event = await loop.run_in_executor(None, reader.read_nonblocking, POLL_INTERVAL)
            if event is None:
                continue
            if not await self.handle_event(event):
                self._running = False
            self.invalidate()

    async def _wait_for_redraw(self) -> None:
        try:
            await asyncio.wait_for(self._dirty.wait(), timeout=REDRAW_INTERVAL)
        except asyncio.TimeoutError:
            pass
        self._dirty.clear()

    async def run(self, reader: RawInputReader | None = None) -> None:
        """Run the chat screen until the user exits."""
        reader = reader or RawInputReader()
        reader.start()
        self._running = True
        input_task: asyncio.Task[None] | None = None
        try:
            with Live(
                self.render(),
                console=self.console,
                screen=True,
                auto_refresh=False,
                redirect_stdout=False,
                redirect_stderr=False,
            ) as live:
                input_task = asyncio.create_task(self._input_loop(reader))
                while self._running and not input_task.done():
                    await self._wait_for_redraw()
                    live.update(self.render(), refresh=True)
            if input_task.done() and not input_task.cancelled():
                # Surface unexpected errors from the input loop
                input_task.result()
        finally:
            self._running = False
            if input_task is not None and not input_task.done():
                input_task.cancel()
                try:
                    await input_task
                except asyncio.CancelledError:
                    pass
            reader.stop()
            await self.shutdown()

    async def shutdown(self) -> None:
        """Stop any running turn and release the runtime."""
        if self.transcript.is_active:
            await self.session.interrupt()
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        await self.session.close()
