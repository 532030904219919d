"""Tests for ChatApp in mensa_cli/app.py.

Covers:
- Screen rendering (welcome, transcript, footer, scroll indicator)
- Key handling: exit keys, interrupt, scrolling, submission
- Slash commands run from the editor
- Settings and MCP screens shown in place of the editor
- First-run onboarding
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest
from rich.console import Console

from mensa.data_structures import Role
from mensa.errors import ImageCaptureError
from mensa.events import (
    AgentEvent,
    AssistantDeltaEvent,
    InitEvent,
    ResultEvent,
    UserEchoEvent,
)
from mensa.runtime import ClaudeCliRuntime, RewindResult, RuntimeOptions
from mensa_cli.app import ChatApp, run_onboarding
from mensa_cli.config import MODELS, Config, load_config, save_config
from mensa_cli.elements import InputEvent, LineEditor, MenuSelect, VimEditor

ENTER = InputEvent(key="Enter")
ESC = InputEvent(key="Escape")
DOWN = InputEvent(key="Down")


class FakeRuntime:
    """Runtime that answers every prompt with a fixed reply."""

    def __init__(self, reply: str = "Hello!") -> None:
        self.reply = reply
        self.prompts: list[str] = []

    async def stream(self, prompt: str) -> AsyncIterator[AgentEvent]:
        self.prompts.append(prompt)
        yield UserEchoEvent(uuid=f"u{len(self.prompts)}")
        yield InitEvent(session_id="s1")
        yield AssistantDeltaEvent(text=self.reply)
        yield ResultEvent()

    async def interrupt(self) -> None:
        pass

    async def rewind_files(self, turn_id: str) -> RewindResult:
        return RewindResult(can_rewind=True)

    async def close(self) -> None:
        pass


def _console() -> Console:
    return Console(width=80, height=24, color_system=None, force_terminal=False)


def _app(tmp_path: Path, runtime: object | None = None) -> ChatApp:
    config_file = str(tmp_path / "config.json")
    config = Config.new(MODELS[0]["value"])
    save_config(config, config_file)
    return ChatApp(
        config=config,
        runtime=runtime if runtime is not None else FakeRuntime(),
        config_file=config_file,
        editor=LineEditor(),
        console=_console(),
    )


def _screen(app: ChatApp) -> str:
    console = app.console
    with console.capture() as capture:
        console.print(app.render())
    return capture.get()


async def _type(app: ChatApp, text: str) -> None:
    for c in text:
        await app.handle_event(InputEvent(key=c, char=c))


async def _settle(app: ChatApp) -> None:
    for _ in range(5):
        await asyncio.sleep(0)
    if app._tasks:
        await asyncio.wait(list(app._tasks), timeout=0.01)


class TestRender:
    """Tests for ChatApp.render()."""

    def test_welcome_and_status(self, tmp_path: Path) -> None:
        """An empty transcript shows the welcome banner and status bar."""
        screen = _screen(_app(tmp_path))
        assert "your minimal coding companion" in screen
        assert "mensa | Sonnet 4.5" in screen
        assert screen.count("\n") == 24

    def test_transcript_shown(self, tmp_path: Path) -> None:
        """Messages replace the welcome banner."""
        app = _app(tmp_path)
        app.transcript.add_system("note to self")
        screen = _screen(app)
        assert "note to self" in screen
        assert "coding companion" not in screen

    def test_thinking_line(self, tmp_path: Path) -> None:
        """An active turn shows the activity line."""
        app = _app(tmp_path)
        app.transcript.begin_turn("hi")
        assert "Thinking..." in _screen(app)

    def test_vim_editor_from_config(self, tmp_path: Path) -> None:
        """editorMode vim selects the modal editor."""
        config = Config(model=MODELS[0]["value"], editor_mode="vim")
        app = ChatApp(config=config, console=_console())
        assert isinstance(app.input, VimEditor)


class TestKeys:
    """Tests for ChatApp.handle_event()."""

    @pytest.mark.asyncio
    async def test_ctrl_d_exits(self, tmp_path: Path) -> None:
        """Ctrl+D exits."""
        app = _app(tmp_path)
        assert not await app.handle_event(InputEvent(key="d", char="d", ctrl=True))

    @pytest.mark.asyncio
    async def test_ctrl_c_idle_exits(self, tmp_path: Path) -> None:
        """Ctrl+C exits when no turn is running."""
        app = _app(tmp_path)
        assert not await app.handle_event(InputEvent(key="c", char="c", ctrl=True))

    @pytest.mark.asyncio
    async def test_ctrl_c_interrupts_turn(self, tmp_path: Path) -> None:
        """Ctrl+C during a turn interrupts it and keeps the app open."""
        app = _app(tmp_path)
        app.transcript.begin_turn("hi")
        assert await app.handle_event(InputEvent(key="c", char="c", ctrl=True))
        assert not app.transcript.is_active
        assert app.transcript.messages[-1].content == "Interrupted."

    @pytest.mark.asyncio
    async def test_submit_runs_turn(self, tmp_path: Path) -> None:
        """Enter sends the prompt and the reply is rendered."""
        runtime = FakeRuntime("Hi from the agent")
        app = _app(tmp_path, runtime)
        await _type(app, "hello")
        assert await app.handle_event(ENTER)
        await _settle(app)
        assert runtime.prompts == ["hello"]
        assert [m.role for m in app.transcript.messages] == [Role.USER, Role.ASSISTANT]
        assert "Hi from the agent" in _screen(app)
        assert load_config(app.config_file).last_session_id == "s1"

    @pytest.mark.asyncio
    async def test_enter_disabled_during_turn(self, tmp_path: Path) -> None:
        """Input typed during a turn is kept, not sent."""
        runtime = FakeRuntime()
        app = _app(tmp_path, runtime)
        app.transcript.begin_turn("first")
        await _type(app, "second")
        await app.handle_event(ENTER)
        await _settle(app)
        assert runtime.prompts == []
        assert app.input.text == "second"

    @pytest.mark.asyncio
    async def test_exit_word(self, tmp_path: Path) -> None:
        """Typing exit closes the app."""
        app = _app(tmp_path)
        await _type(app, "exit")
        assert not await app.handle_event(ENTER)

    @pytest.mark.asyncio
    async def test_scrolling(self, tmp_path: Path) -> None:
        """PageUp leaves follow mode and shows the indicator."""
        app = _app(tmp_path)
        for i in range(30):
            app.transcript.add_system(f"line {i}")
        _screen(app)
        assert app.viewport.auto_follow
        await app.handle_event(InputEvent(key="PageUp"))
        assert not app.viewport.auto_follow
        assert "more lines" in _screen(app)
        await app.handle_event(InputEvent(key="Down", shift=True))
        for _ in range(20):
            await app.handle_event(InputEvent(key="PageDown"))
        assert app.viewport.auto_follow

    @pytest.mark.asyncio
    async def test_paste_image_failure(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Clipboard failures are shown as an editor notice."""
        monkeypatch.setattr(
            "mensa_cli.app.get_clipboard_image",
            AsyncMock(side_effect=ImageCaptureError("No image in clipboard")),
        )
        app = _app(tmp_path)
        await app.handle_event(InputEvent(key="v", char="v", ctrl=True))
        assert app.input.notice == "No image in clipboard"


class TestCommands:
    """Tests for slash commands submitted from the editor."""

    @pytest.mark.asyncio
    async def test_help(self, tmp_path: Path) -> None:
        """/help adds the help text."""
        app = _app(tmp_path)
        await _type(app, "/help")
        await app.handle_event(ENTER)
        await _settle(app)
        assert app.transcript.messages[-1].text.startswith("Available commands:")

    @pytest.mark.asyncio
    async def test_clear_hides_messages(self, tmp_path: Path) -> None:
        """/clear hides earlier messages but keeps the transcript."""
        app = _app(tmp_path)
        app.transcript.add_system("old news")
        await _type(app, "/clear")
        await app.handle_event(ENTER)
        await _settle(app)
        assert len(app.transcript) == 1
        assert "old news" not in _screen(app)

    @pytest.mark.asyncio
    async def test_settings_changes_model(self, tmp_path: Path) -> None:
        """Picking a model saves it and updates the runtime."""
        runtime = ClaudeCliRuntime(RuntimeOptions())
        app = _app(tmp_path, runtime)
        task = asyncio.create_task(app.open_settings())
        await _settle(app)
        assert isinstance(app._overlay, MenuSelect)
        assert "Settings" in _screen(app)
        await app.handle_event(DOWN)
        await app.handle_event(ENTER)
        await task
        assert app.config.model == MODELS[1]["value"]
        assert runtime.options.model == MODELS[1]["value"]
        assert load_config(app.config_file).model == MODELS[1]["value"]
        assert app.transcript.messages[-1].content == "Model set to Opus 4.5"

    @pytest.mark.asyncio
    async def test_settings_cancel(self, tmp_path: Path) -> None:
        """Escape leaves the model unchanged."""
        app = _app(tmp_path)
        task = asyncio.create_task(app.open_settings())
        await _settle(app)
        await app.handle_event(ESC)
        await task
        assert app.config.model == MODELS[0]["value"]
        assert len(app.transcript) == 0

    @pytest.mark.asyncio
    async def test_mcp_add_stdio_server(self, tmp_path: Path) -> None:
        """The MCP screen adds a stdio server to the config."""
        app = _app(tmp_path)
        task = asyncio.create_task(app.open_mcp())
        await _settle(app)
        assert "No MCP servers configured" in _screen(app)
        await app.handle_event(ENTER)  # Add server
        await _settle(app)
        await _type(app, "fs")
        await app.handle_event(ENTER)
        await _settle(app)
        await app.handle_event(ENTER)  # stdio
        await _settle(app)
        await _type(app, "npx")
        await app.handle_event(ENTER)
        await _settle(app)
        await app.handle_event(ENTER)  # no arguments
        await _settle(app)
        assert app.config.mcp_servers == {"fs": {"command": "npx"}}
        assert app.transcript.messages[-1].content == "Added MCP server: fs"
        await app.handle_event(ESC)
        await task
        assert app._overlay is None

    @pytest.mark.asyncio
    async def test_mcp_remove_server(self, tmp_path: Path) -> None:
        """The MCP screen removes a configured server."""
        app = _app(tmp_path)
        app.config.mcp_servers = {"fs": {"command": "npx"}}
        save_config(app.config, app.config_file)
        task = asyncio.create_task(app.open_mcp())
        await _settle(app)
        await app.handle_event(DOWN)  # Remove server
        await app.handle_event(ENTER)
        await _settle(app)
        await app.handle_event(ENTER)  # fs
        await _settle(app)
        assert app.config.mcp_servers == {}
        assert app.transcript.messages[-1].content == "Removed MCP server: fs"
        await app.handle_event(ESC)
        await task


class TestOnboarding:
    """Tests for run_onboarding()."""

    @pytest.mark.asyncio
    async def test_saves_selected_model(self, tmp_path: Path) -> None:
        """The chosen model is written to a new config."""
        manager = MagicMock()
        manager.run = AsyncMock(return_value=MODELS[2]["value"])
        path = str(tmp_path / "config.json")
        config = await run_onboarding(_console(), path, manager)
        assert config is not None
        assert config.model == MODELS[2]["value"]
        assert load_config(path).model == MODELS[2]["value"]

    @pytest.mark.asyncio
    async def test_cancel(self, tmp_path: Path) -> None:
        """Cancelling writes nothing."""
        manager = MagicMock()
        manager.run = AsyncMock(return_value=None)
        path = tmp_path / "config.json"
        assert await run_onboarding(_console(), str(path), manager) is None
        assert not path.exists()
