"""Slash command autocomplete for the input editors."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal, NamedTuple

from .terminal import ANSI


class SlashCommand(NamedTuple):
    command: str
    description: str


SLASH_COMMANDS: tuple[SlashCommand, ...] = (
    SlashCommand("/config", "Open settings"),
    SlashCommand("/settings", "Open settings"),
    SlashCommand("/mcp", "Manage MCP servers"),
    SlashCommand("/undo", "Undo last file changes"),
    SlashCommand("/clear", "Clear the screen"),
    SlashCommand("/help", "Show help"),
)

EnterAction = Literal["complete", "submit"]


@dataclass
class SlashCompleter:
    """Tracks suggestions for the current editor text.

    Suggestions are shown while the text starts with ``/`` and contains no
    space. The selection resets whenever the number of suggestions changes.
    """

    commands: tuple[SlashCommand, ...] = SLASH_COMMANDS
    selected: int = 0
    _text: str = field(default="", init=False, repr=False)
    _count: int = field(default=0, init=False, repr=False)

    def update(self, text: str) -> None:
        """Recompute suggestions for ``text``."""
        self._text = text
        count = len(self.suggestions)
        if count != self._count:
            self.selected = 0
            self._count = count

    @property
    def suggestions(self) -> list[SlashCommand]:
        text = self._text
        if not text.startswith("/") or " " in text:
            return []
        query = text.lower()
        return [c for c in self.commands if c.command.lower().startswith(query)]

    @property
    def active(self) -> bool:
        return bool(self.suggestions)

    @property
    def selection(self) -> SlashCommand | None:
        suggestions = self.suggestions
        if not suggestions:
            return None
        return suggestions[min(self.selected, len(suggestions) - 1)]

    def move(self, delta: int) -> None:
        """Move the selection by ``delta``, wrapping at both ends."""
        count = len(self.suggestions)
        if count:
            self.selected = (self.selected + delta) % count

    def complete(self) -> str | None:
        """Text to replace the editor contents with, if anything is selected."""
        selection = self.selection
        return selection.command if selection else None

    def enter_action(self) -> EnterAction:
        """What Enter should do with the current text.

        ``"complete"`` when the text is a strict prefix of the selected command,
        ``"submit"`` otherwise.
        """
        selection = self.selection
        if (
            selection is not None
            and selection.command.startswith(self._text)
            and selection.command != self._text
        ):
            return "complete"
        return "submit"

    def get_lines(self) -> list[str]:
        suggestions = self.suggestions
        if not suggestions:
            return []
        lines = []
        current = self.selection
        for suggestion in suggestions:
            if suggestion is current:
                head = f"{ANSI.CYAN}{ANSI.BOLD}> {suggestion.command}{ANSI.RESET}"
            else:
                head = f"  {suggestion.command}"
            lines.append(f"{head}{ANSI.DIM} - {suggestion.description}{ANSI.RESET}")
        lines.append(f"{ANSI.DIM}up/down navigate | tab complete | enter select{ANSI.RESET}")
        return lines
