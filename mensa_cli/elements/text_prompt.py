"""Single-line text prompt element, used by the settings screens."""

from __future__ import annotations

from dataclasses import dataclass, field

from .base import ActiveElement, InputEvent
from .terminal import ANSI


@dataclass
class TextPrompt(ActiveElement[str | None]):
    """Ask for one line of text.

    Returns the stripped text on Enter, or None on Escape. When ``required``
    is set, Enter on blank input shows ``error`` instead of completing.
    """

    title: str = ""
    label: str = ""
    placeholder: str = ""
    required: bool = False
    error: str = "A value is required"
    buffer: str = ""
    _show_error: bool = field(default=False, init=False, repr=False)

    def get_lines(self, width: int | None = None) -> list[str]:
        terminal_width = max(1, width or ANSI.get_terminal_width())
        result: list[str] = []
        if self.title:
            result.append(f"{ANSI.BOLD}{self.title}{ANSI.RESET}")
            result.append("")
        if self.buffer:
            value = self.buffer + ANSI.REVERSE + " " + ANSI.RESET
        else:
            value = ANSI.REVERSE + " " + ANSI.RESET + f"{ANSI.GRAY}{self.placeholder}{ANSI.RESET}"
        result.extend(ANSI.wrap_to_width(f"{self.label}{value}", terminal_width))
        if self._show_error:
            result.append(f"{ANSI.RED}{self.error}{ANSI.RESET}")
        result.append("")
        result.append(f"{ANSI.DIM}enter to continue, esc to cancel{ANSI.RESET}")
        return result

    def handle_input(self, event: InputEvent) -> tuple[bool, str | None]:
        if event.key == "Enter":
            value = self.buffer.strip()
            if self.required and not value:
                self._show_error = True
                return (False, None)
            return (True, value)
        if event.key == "Escape" or (event.ctrl and event.char == "c"):
            return (True, None)
        self._show_error = False
        if event.key == "Backspace":
            self.buffer = "" if (event.ctrl or event.alt) else self.buffer[:-1]
        elif event.key == "Paste" and event.char:
            self.buffer += event.char.replace("\r", "").replace("\n", " ")
        elif event.ctrl and event.char == "u":
            self.buffer = ""
        elif not event.ctrl and not event.alt and event.char and event.char.isprintable():
            self.buffer += event.char
        return (False, None)
