"""Menu selection element.

Allows user to select from a list of options using arrow keys.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from .base import ActiveElement, InputEvent
from .terminal import ANSI


@dataclass
class MenuSelect(ActiveElement[str | None]):
    """Menu selection with arrow keys.

    Navigate with j/k or up/down arrows; Enter selects the highlighted item.
    Returns the selected item's value (its label when ``values`` is not
    given), or None on Escape.
    """

    title: str = "Select:"
    options: list[str] = field(default_factory=list)
    values: list[str] | None = None
    selected: int = 0
    header: list[str] = field(default_factory=list)
    current: str | None = None  # value shown with a "(current)" mark

    def __post_init__(self) -> None:
        if self.values is not None and len(self.values) != len(self.options):
            raise ValueError("values must match options")
        if self.current is not None and self.current in self._values():
            self.selected = self._values().index(self.current)

    def _values(self) -> list[str]:
        return self.values if self.values is not None else self.options

    def get_lines(self, width: int | None = None) -> list[str]:
        terminal_width = max(1, width or ANSI.get_terminal_width())

        result: list[str] = list(self.header)
        if self.title:
            result.extend(
                ANSI.wrap_to_width(f"{ANSI.BOLD}{self.title}{ANSI.RESET}", terminal_width)
            )

        values = self._values()
        for i, opt in enumerate(self.options):
            mark = f" {ANSI.DIM}(current){ANSI.RESET}" if values[i] == self.current else ""
            if i == self.selected:
                line = f"{ANSI.CYAN}→ {opt}{ANSI.RESET}{mark}"
            else:
                line = f"  {opt}{mark}"
            result.extend(ANSI.wrap_to_width(line, terminal_width))

        result.append("")
        hint = f"{ANSI.DIM}[↑/↓] move  [Enter] select  [Esc] cancel{ANSI.RESET}"
        result.extend(ANSI.wrap_to_width(hint, terminal_width))
        return result

    def handle_input(self, event: InputEvent) -> tuple[bool, str | None]:
        if event.key == "Enter":
            if not self.options:
                return (True, None)
            return (True, self._values()[self.selected])
        elif event.key == "Escape" or (event.ctrl and event.char == "c"):
            return (True, None)
        elif event.char == "j" or event.key == "Down":
            self.selected = min(self.selected + 1, len(self.options) - 1)
            return (False, None)
        elif event.char == "k" or event.key == "Up":
            self.selected = max(self.selected - 1, 0)
            return (False, None)
        return (False, None)
