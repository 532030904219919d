"""Modal (vim-style) chat editor."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Literal

from .base import InputEvent
from .line_editor import EditorBase, Submission
from .terminal import ANSI


class VimMode(str, Enum):
    NORMAL = "normal"
    INSERT = "insert"


# =============================================================================
# Word motions
# =============================================================================


def next_word_start(text: str, pos: int) -> int:
    """Index of the next word start after ``pos`` (``w``)."""
    while pos < len(text) and not text[pos].isspace():
        pos += 1
    while pos < len(text) and text[pos].isspace():
        pos += 1
    return min(pos, len(text))


def prev_word_start(text: str, pos: int) -> int:
    """Index of the start of the word before ``pos`` (``b``)."""
    if pos <= 0:
        return 0
    pos -= 1
    while pos > 0 and text[pos].isspace():
        pos -= 1
    while pos > 0 and not text[pos - 1].isspace():
        pos -= 1
    return max(pos, 0)


def word_end(text: str, pos: int) -> int:
    """Index just past the end of the next word (``e``).

    >>> word_end("foo bar", 0)
    3
    >>> word_end("foo bar", 2)
    7
    """
    if pos >= len(text):
        return len(text)
    pos += 1
    while pos < len(text) and text[pos].isspace():
        pos += 1
    while pos < len(text) and not text[pos].isspace():
        pos += 1
    return pos


# =============================================================================
# Composite commands
# =============================================================================

Operator = Literal["d", "c"]

# Motion -> (start, end) span of ``text`` it covers from ``pos``
_MOTION_SPANS: dict[str, Callable[[str, int], tuple[int, int]]] = {
    "line": lambda text, pos: (0, len(text)),
    "word": lambda text, pos: (pos, word_end(text, pos)),
    "back": lambda text, pos: (prev_word_start(text, pos), pos),
    "eol": lambda text, pos: (pos, len(text)),
    "bol": lambda text, pos: (0, pos),
}

COMPOSITES: dict[str, tuple[Operator, str]] = {
    "dd": ("d", "line"),
    "dw": ("d", "word"),
    "db": ("d", "back"),
    "de": ("d", "word"),
    "d$": ("d", "eol"),
    "d0": ("d", "bol"),
    "cc": ("c", "line"),
    "cw": ("c", "word"),
    "cb": ("c", "back"),
    "ce": ("c", "word"),
    "c$": ("c", "eol"),
    "c0": ("c", "bol"),
}

OPERATORS = frozenset(op for op, _ in COMPOSITES.values())


@dataclass
class VimEditor(EditorBase):
    """Modal editor. Starts in INSERT mode.

    Escape always enters NORMAL mode. Operators (``d``, ``c``) wait in
    ``pending_prefix`` for the next key; a pair not in ``COMPOSITES`` is
    discarded without any other effect.
    """

    mode: VimMode = VimMode.INSERT
    pending_prefix: str | None = None

    def reset(self) -> None:
        super().reset()
        self.mode = VimMode.INSERT
        self.pending_prefix = None

    def _last_index(self) -> int:
        return max(0, len(self.text) - 1)

    def _handle_key(self, event: InputEvent) -> tuple[bool, Submission | None]:
        if event.key == "Escape":
            if self.mode is VimMode.INSERT and self.cursor_pos > 0:
                self.cursor_pos -= 1
            self.mode = VimMode.NORMAL
            self.pending_prefix = None
            return (False, None)
        if event.key == "Enter":
            self.pending_prefix = None
            return self._submit()
        if self.mode is VimMode.INSERT:
            self._insert_mode(event)
        else:
            self._normal_mode(event)
        return (False, None)

    # =========================================================================
    # INSERT mode
    # =========================================================================

    def _insert_mode(self, event: InputEvent) -> None:
        text, pos = self.text, self.cursor_pos
        if event.key == "Backspace":
            if pos > 0:
                self.text = text[: pos - 1] + text[pos:]
                self.cursor_pos = pos - 1
        elif event.key == "Delete":
            if pos < len(text):
                self.text = text[:pos] + text[pos + 1 :]
        elif event.key == "Left":
            self.cursor_pos = max(0, pos - 1)
        elif event.key == "Right":
            self.cursor_pos = min(len(text), pos + 1)
        elif event.ctrl or event.alt:
            return
        elif event.char and event.char.isprintable():
            self._insert_text(event.char)

    # =========================================================================
    # NORMAL mode
    # =========================================================================

    def _normal_mode(self, event: InputEvent) -> None:
        if self.pending_prefix is not None:
            command = self.pending_prefix + (event.char or "")
            self.pending_prefix = None
            if command in COMPOSITES:
                self._apply_composite(*COMPOSITES[command])
            return

        if event.key == "Left":
            self.cursor_pos = max(0, self.cursor_pos - 1)
            return
        if event.key == "Right":
            self.cursor_pos = min(self._last_index(), self.cursor_pos + 1)
            return
        if event.ctrl or event.alt or not event.char:
            return

        key = event.char
        if key in OPERATORS:
            self.pending_prefix = key
            return
        action = _NORMAL_KEYS.get(key)
        if action is not None:
            action(self)

    def _apply_composite(self, operator: Operator, motion: str) -> None:
        start, end = _MOTION_SPANS[motion](self.text, self.cursor_pos)
        self.text = self.text[:start] + self.text[end:]
        self.cursor_pos = start
        if operator == "c":
            self.mode = VimMode.INSERT
        else:
            self.cursor_pos = min(start, self._last_index())

    def _enter_insert(self, cursor_pos: int | None = None) -> None:
        self.mode = VimMode.INSERT
        if cursor_pos is not None:
            self.cursor_pos = cursor_pos

    def _delete_char(self) -> None:
        pos = self.cursor_pos
        if self.text:
            self.text = self.text[:pos] + self.text[pos + 1 :]
            self.cursor_pos = min(pos, self._last_index())

    def _delete_char_before(self) -> None:
        pos = self.cursor_pos
        if pos > 0:
            self.text = self.text[: pos - 1] + self.text[pos:]
            self.cursor_pos = pos - 1

    def _delete_to_end(self) -> None:
        self.text = self.text[: self.cursor_pos]
        self.cursor_pos = self._last_index()

    def _change_to_end(self) -> None:
        self.text = self.text[: self.cursor_pos]
        self._enter_insert()

    def _substitute_char(self) -> None:
        if self.text:
            pos = self.cursor_pos
            self.text = self.text[:pos] + self.text[pos + 1 :]
            self._enter_insert()

    def _substitute_line(self) -> None:
        self.text = ""
        self._enter_insert(0)

    def _first_non_blank(self) -> None:
        stripped = len(self.text) - len(self.text.lstrip())
        self.cursor_pos = min(stripped, self._last_index())

    # =========================================================================
    # Rendering
    # =========================================================================

    def get_lines(self, width: int | None = None) -> list[str]:
        lines = super().get_lines(width)
        if self.mode is VimMode.NORMAL:
            label = "-- NORMAL --"
            if self.pending_prefix:
                label += f" {self.pending_prefix}"
        else:
            label = "-- INSERT --"
        lines.append(f"{ANSI.DIM}{label}{ANSI.RESET}")
        return lines


_NORMAL_KEYS: dict[str, Callable[[VimEditor], None]] = {
    "i": lambda e: e._enter_insert(),
    "a": lambda e: e._enter_insert(min(e.cursor_pos + 1, len(e.text))),
    "A": lambda e: e._enter_insert(len(e.text)),
    "I": lambda e: e._enter_insert(0),
    "h": lambda e: setattr(e, "cursor_pos", max(0, e.cursor_pos - 1)),
    "l": lambda e: setattr(e, "cursor_pos", min(e._last_index(), e.cursor_pos + 1)),
    "w": lambda e: setattr(e, "cursor_pos", next_word_start(e.text, e.cursor_pos)),
    "b": lambda e: setattr(e, "cursor_pos", prev_word_start(e.text, e.cursor_pos)),
    "e": lambda e: setattr(e, "cursor_pos", max(0, word_end(e.text, e.cursor_pos) - 1)),
    "0": lambda e: setattr(e, "cursor_pos", 0),
    "$": lambda e: setattr(e, "cursor_pos", e._last_index()),
    "^": lambda e: e._first_non_blank(),
    "x": lambda e: e._delete_char(),
    "X": lambda e: e._delete_char_before(),
    "D": lambda e: e._delete_to_end(),
    "C": lambda e: e._change_to_end(),
    "s": lambda e: e._substitute_char(),
    "S": lambda e: e._substitute_line(),
}
