"""Tests for the interactive elements in mensa_cli/elements.

Covers:
- SlashCompleter filtering, selection and Enter behaviour
- MenuSelect navigation and results
- TextPrompt input and validation
- ElementManager driving an element with fake terminal I/O
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from mensa_cli.elements.base import InputEvent
from mensa_cli.elements.manager import ElementManager
from mensa_cli.elements.menu_select import MenuSelect
from mensa_cli.elements.slash import SlashCompleter
from mensa_cli.elements.terminal import ANSI
from mensa_cli.elements.text_prompt import TextPrompt

ENTER = InputEvent(key="Enter")
ESC = InputEvent(key="Escape")
UP = InputEvent(key="Up")
DOWN = InputEvent(key="Down")


def char(c: str) -> InputEvent:
    return InputEvent(key=c, char=c)


class TestSlashCompleter:
    """Tests for SlashCompleter."""

    def test_inactive_without_slash(self) -> None:
        """Suggestions need a leading slash."""
        completer = SlashCompleter()
        completer.update("help")
        assert not completer.active

    def test_inactive_after_space(self) -> None:
        """A space ends the command word."""
        completer = SlashCompleter()
        completer.update("/help me")
        assert completer.suggestions == []

    def test_prefix_filter_case_insensitive(self) -> None:
        """Suggestions are prefix matches, ignoring case."""
        completer = SlashCompleter()
        completer.update("/S")
        assert [s.command for s in completer.suggestions] == ["/settings"]

    def test_all_commands_for_bare_slash(self) -> None:
        """A bare slash lists every command."""
        completer = SlashCompleter()
        completer.update("/")
        assert len(completer.suggestions) == len(completer.commands)

    def test_move_wraps(self) -> None:
        """Selection wraps around both ends."""
        completer = SlashCompleter()
        completer.update("/c")
        completer.move(-1)
        assert completer.selection is not None
        assert completer.selection.command == "/clear"
        completer.move(1)
        assert completer.selection.command == "/config"

    def test_selection_resets_when_list_changes(self) -> None:
        """Narrowing the list resets the selection."""
        completer = SlashCompleter()
        completer.update("/")
        completer.move(3)
        completer.update("/u")
        assert completer.selected == 0

    def test_enter_action(self) -> None:
        """Enter completes a partial command and submits an exact one."""
        completer = SlashCompleter()
        completer.update("/cl")
        assert completer.enter_action() == "complete"
        completer.update("/clear")
        assert completer.enter_action() == "submit"

    def test_no_match(self) -> None:
        """Unknown commands have no completion."""
        completer = SlashCompleter()
        completer.update("/zzz")
        assert completer.complete() is None
        assert completer.enter_action() == "submit"
        assert completer.get_lines() == []


class TestMenuSelect:
    """Tests for MenuSelect."""

    def test_navigate_and_select(self) -> None:
        """Down moves the selection; Enter returns the value."""
        menu = MenuSelect(title="Pick", options=["A", "B"], values=["a", "b"])
        assert menu.handle_input(DOWN) == (False, None)
        assert menu.handle_input(ENTER) == (True, "b")

    def test_selection_clamps(self) -> None:
        """Selection stops at the ends."""
        menu = MenuSelect(options=["A", "B"])
        menu.handle_input(UP)
        assert menu.selected == 0
        for _ in range(3):
            menu.handle_input(char("j"))
        assert menu.selected == 1

    def test_labels_without_values(self) -> None:
        """Without values the label is returned."""
        menu = MenuSelect(options=["Only"])
        assert menu.handle_input(ENTER) == (True, "Only")

    def test_escape_cancels(self) -> None:
        """Escape returns None."""
        menu = MenuSelect(options=["A"])
        assert menu.handle_input(ESC) == (True, None)

    def test_current_preselected(self) -> None:
        """The current value starts selected and is marked."""
        menu = MenuSelect(options=["A", "B"], values=["a", "b"], current="b")
        assert menu.selected == 1
        plain = [ANSI.strip_ansi(line) for line in menu.get_lines(80)]
        assert "→ B (current)" in plain

    def test_mismatched_values(self) -> None:
        """values must line up with options."""
        with pytest.raises(ValueError):
            MenuSelect(options=["A"], values=["a", "b"])

    def test_header_first(self) -> None:
        """Header lines come before the title."""
        menu = MenuSelect(title="T", options=["A"], header=["head"])
        lines = menu.get_lines(80)
        assert lines[0] == "head"
        assert ANSI.strip_ansi(lines[1]) == "T"


class TestTextPrompt:
    """Tests for TextPrompt."""

    def test_type_and_submit(self) -> None:
        """Enter returns the stripped buffer."""
        prompt = TextPrompt(label="Name: ")
        for c in " fs ":
            prompt.handle_input(char(c))
        assert prompt.handle_input(ENTER) == (True, "fs")

    def test_required(self) -> None:
        """A required prompt refuses blank input and shows the error."""
        prompt = TextPrompt(required=True, error="Name is required")
        assert prompt.handle_input(ENTER) == (False, None)
        assert any("Name is required" in line for line in prompt.get_lines(80))
        prompt.handle_input(char("x"))
        assert not any("Name is required" in line for line in prompt.get_lines(80))

    def test_paste_joins_lines(self) -> None:
        """Pasted newlines become spaces."""
        prompt = TextPrompt()
        prompt.handle_input(InputEvent(key="Paste", char="a\nb"))
        assert prompt.buffer == "a b"

    def test_backspace_and_clear(self) -> None:
        """Backspace removes one character; Ctrl+U clears."""
        prompt = TextPrompt(buffer="abc")
        prompt.handle_input(InputEvent(key="Backspace"))
        assert prompt.buffer == "ab"
        prompt.handle_input(InputEvent(key="u", char="u", ctrl=True))
        assert prompt.buffer == ""

    def test_escape(self) -> None:
        """Escape cancels."""
        assert TextPrompt(buffer="x").handle_input(ESC) == (True, None)


class TestElementManager:
    """Tests for ElementManager.run()."""

    def _manager(self, events: list[InputEvent]) -> tuple[ElementManager, MagicMock, MagicMock]:
        region = MagicMock()
        region.num_lines = 100
        reader = MagicMock()
        reader.read = AsyncMock(side_effect=events)
        return ElementManager(region=region, input_reader=reader), region, reader

    @pytest.mark.asyncio
    async def test_runs_until_done(self) -> None:
        """Events are fed until the element completes."""
        manager, region, reader = self._manager([DOWN, ENTER])
        result = await manager.run(MenuSelect(options=["A", "B"]))
        assert result == "B"
        reader.start.assert_called_once()
        reader.stop.assert_called_once()
        region.deactivate.assert_called_once()
        assert manager.active is None

    @pytest.mark.asyncio
    async def test_cancel_returns_none(self) -> None:
        """A cancelled element yields None."""
        manager, _, _ = self._manager([ESC])
        assert await manager.run(MenuSelect(options=["A"])) is None

    @pytest.mark.asyncio
    async def test_one_element_at_a_time(self) -> None:
        """A second element cannot start while one is active."""
        manager, _, _ = self._manager([])
        manager._active = MenuSelect(options=["A"])
        with pytest.raises(RuntimeError):
            await manager.run(MenuSelect(options=["B"]))
