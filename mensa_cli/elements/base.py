"""Key events and the interactive element protocol."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class InputEvent:
    """A single keystroke or paste.

    Attributes:
        key: Key name ("Enter", "Up", "PageDown", "Paste", ...) or the character
        char: The character typed, or the pasted text for "Paste"
        ctrl: Control modifier
        alt: Alt/Option (meta) modifier
        shift: Shift modifier, only reported for keys where it changes meaning
    """

    key: str
    char: str | None = None
    ctrl: bool = False
    alt: bool = False
    shift: bool = False


class ActiveElement(Generic[T]):
    """An interactive element that owns input until it completes.

    ``get_lines`` returns ANSI-styled rows for the given width and
    ``handle_input`` returns ``(done, result)``; a None result on completion
    means the element was cancelled. The chat screen and ElementManager both
    drive elements through these two calls.
    """

    def on_activate(self) -> None:
        """Called when the element gains input focus."""

    def on_deactivate(self) -> None:
        """Called when the element gives up input focus."""

    def get_lines(self, width: int | None = None) -> list[str]:
        raise NotImplementedError

    def handle_input(self, event: InputEvent) -> tuple[bool, T | None]:
        raise NotImplementedError
