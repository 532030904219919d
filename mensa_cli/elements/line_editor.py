"""Text input for the chat prompt.

This module provides:
- Submission: what Enter hands to the app
- EditorBase: state and behaviour shared by both editor flavours (slash
  autocomplete, attached images, notices, rendering)
- LineEditor: the linear, readline-style editor with persistent history
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Callable

from prompt_toolkit.history import FileHistory, History

from mensa.data_structures import PendingImage
from mensa.errors import ImageCaptureError
from mensa.images import clean_image_path, image_from_path, is_image_path

from ..display import format_size
from .base import ActiveElement, InputEvent
from .slash import SlashCompleter
from .terminal import ANSI

logger = logging.getLogger(__name__)

HISTORY_FILE = "~/.mensa/history"


@dataclass(frozen=True)
class Submission:
    """Text and images submitted with Enter."""

    text: str
    images: tuple[PendingImage, ...] = ()


@dataclass
class EditorBase(ActiveElement[Submission]):
    """Shared editor state: ``(text, cursor_pos)``, attached images and notice.

    Subclasses implement ``_handle_key`` for everything the base does not
    claim: the base handles slash autocomplete and pasted image paths.
    """

    prompt: str = "> "
    text: str = ""
    cursor_pos: int = 0
    cursor_char: str = " "  # Shown in reverse video when cursor at end
    images: list[PendingImage] = field(default_factory=list)
    notice: str | None = None
    submit_enabled: bool = True
    completer: SlashCompleter = field(default_factory=SlashCompleter)
    image_loader: Callable[[str], PendingImage] = image_from_path

    # =========================================================================
    # Shared operations
    # =========================================================================

    def reset(self) -> None:
        """Clear text, cursor and attached images."""
        self.text = ""
        self.cursor_pos = 0
        self.images = []
        self.completer.update("")

    def set_text(self, text: str) -> None:
        self.text = text
        self.cursor_pos = len(text)

    def attach_image(self, image: PendingImage) -> None:
        self.images.append(image)
        self.notice = None

    def _insert_text(self, text: str) -> None:
        self.text = self.text[: self.cursor_pos] + text + self.text[self.cursor_pos :]
        self.cursor_pos += len(text)

    def _normalize_paste(self, text: str) -> str:
        """Normalize line endings and expand tabs in pasted text."""
        normalized = text.replace("\r\n", "\n").replace("\r", "\n")
        return normalized.replace("\t", "    ")

    def _paste(self, text: str) -> None:
        """Insert pasted text, or attach the image when it names an image file."""
        if "\n" not in text.strip() and is_image_path(clean_image_path(text)):
            try:
                self.attach_image(self.image_loader(text))
            except ImageCaptureError as e:
                self.notice = str(e)
            return
        self._insert_text(self._normalize_paste(text))

    def _submit(self) -> tuple[bool, Submission | None]:
        if not self.submit_enabled:
            return (False, None)
        text = self.text.strip()
        if not text:
            return (False, None)
        submission = Submission(text=text, images=tuple(self.images))
        self._on_submit(submission)
        self.reset()
        return (True, submission)

    def _on_submit(self, submission: Submission) -> None:
        """Hook for subclasses, called before the editor is cleared."""

    # =========================================================================
    # Input
    # =========================================================================

    def handle_input(self, event: InputEvent) -> tuple[bool, Submission | None]:
        self.notice = None
        if self.completer.active and not event.shift:
            if event.key == "Up":
                self.completer.move(-1)
                return (False, None)
            if event.key == "Down":
                self.completer.move(1)
                return (False, None)
            if event.key == "Tab":
                self._complete()
                return (False, None)
            if event.key == "Enter" and self.completer.enter_action() == "complete":
                self._complete()
                return (False, None)

        if event.key == "Paste" and event.char:
            self._paste(event.char)
            self.completer.update(self.text)
            return (False, None)

        result = self._handle_key(event)
        self.completer.update(self.text)
        return result

    def _complete(self) -> None:
        command = self.completer.complete()
        if command is not None:
            self.set_text(command)
            self.completer.update(self.text)

    def _handle_key(self, event: InputEvent) -> tuple[bool, Submission | None]:
        raise NotImplementedError

    # =========================================================================
    # Rendering
    # =========================================================================

    def _render_text_with_cursor(self) -> str:
        """Return text with the cursor position highlighted in reverse video."""
        if self.cursor_pos < len(self.text):
            char_at_cursor = self.text[self.cursor_pos]
            if char_at_cursor == "\n":
                char_at_cursor = self.cursor_char + "\n"
            return (
                self.text[: self.cursor_pos]
                + ANSI.REVERSE
                + char_at_cursor
                + ANSI.RESET
                + self.text[self.cursor_pos + 1 :]
            )
        return self.text + ANSI.REVERSE + self.cursor_char + ANSI.RESET

    def _image_lines(self) -> list[str]:
        if not self.images:
            return []
        chips = []
        for image in self.images:
            ext = image.media_type.split("/")[-1].upper()
            chips.append(
                f"{ANSI.CYAN}[{ext}]{ANSI.RESET} {ANSI.DIM}{format_size(image.size_bytes)}{ANSI.RESET}"
            )
        return ["  ".join(chips)]

    def _prompt_lines(self, width: int) -> list[str]:
        prompt = f"{ANSI.GREEN}{ANSI.BOLD}{self.prompt}{ANSI.RESET}"
        prompt_width = ANSI.visual_len(self.prompt)
        result: list[str] = []
        for idx, logical_line in enumerate(self._render_text_with_cursor().split("\n")):
            if idx == 0:
                wrapped = ANSI.wrap_to_width(logical_line, max(1, width - prompt_width))
                result.append(prompt + (wrapped[0] if wrapped else ""))
                result.extend(wrapped[1:])
            else:
                result.extend(ANSI.wrap_to_width(logical_line, max(1, width)) or [""])
        return result

    def get_lines(self, width: int | None = None) -> list[str]:
        """Lines for the input area: images, prompt, notice, suggestions."""
        width = width or ANSI.get_terminal_width()
        lines = self._image_lines()
        lines.extend(self._prompt_lines(width))
        if self.notice:
            lines.append(f"{ANSI.YELLOW}{self.notice}{ANSI.RESET}")
        lines.extend(self.completer.get_lines())
        return lines


@dataclass
class LineEditor(EditorBase):
    """Linear editor with readline-style keys and history.

    Features:
    - Basic line editing (Backspace, Delete, Left/Right, Ctrl+A/E/B/F/K/U/W/Y)
    - Alt+Backspace deletes the previous word, Ctrl+Backspace clears the line
    - Multiline input via backslash + Enter
    - History navigation (Up/Down), persisted by prompt_toolkit
    """

    kill_buffer: str = ""
    history: History | None = None
    _entries: list[str] | None = field(default=None, init=False, repr=False)
    _history_index: int = field(default=-1, init=False, repr=False)
    _temp_text: str = field(default="", init=False, repr=False)

    @classmethod
    def with_file_history(cls, path: str = HISTORY_FILE, **kwargs: Any) -> "LineEditor":
        history_path = os.path.expanduser(path)
        os.makedirs(os.path.dirname(history_path), exist_ok=True)
        return cls(history=FileHistory(history_path), **kwargs)

    def on_activate(self) -> None:
        self._history_index = -1
        self._temp_text = ""

    # =========================================================================
    # History
    # =========================================================================

    def _history_entries(self) -> list[str]:
        """History entries, oldest first, loaded on first use."""
        if self._entries is None:
            self._entries = []
            if self.history is not None:
                try:
                    # load_history_strings yields newest first
                    self._entries = list(reversed(list(self.history.load_history_strings())))
                except OSError as e:
                    logger.warning("Could not load input history: %s", e)
        return self._entries

    def _on_submit(self, submission: Submission) -> None:
        self._history_index = -1
        entries = self._history_entries()
        if submission.text in entries:
            entries.remove(submission.text)
        entries.append(submission.text)
        if self.history is not None:
            try:
                self.history.store_string(submission.text)
            except OSError as e:
                logger.warning("Could not save input history: %s", e)

    def _history_prev(self) -> None:
        entries = self._history_entries()
        if not entries:
            return
        if self._history_index == -1:
            self._temp_text = self.text
        if self._history_index < len(entries) - 1:
            self._history_index += 1
            self.set_text(entries[len(entries) - 1 - self._history_index])

    def _history_next(self) -> None:
        entries = self._history_entries()
        if self._history_index > 0:
            self._history_index -= 1
            self.set_text(entries[len(entries) - 1 - self._history_index])
        elif self._history_index == 0:
            self._history_index = -1
            self.set_text(self._temp_text)

    # =========================================================================
    # Editing
    # =========================================================================

    def _delete_before_cursor(self) -> None:
        if self.cursor_pos > 0:
            self.text = self.text[: self.cursor_pos - 1] + self.text[self.cursor_pos :]
            self.cursor_pos -= 1

    def _delete_at_cursor(self) -> None:
        if self.cursor_pos < len(self.text):
            self.text = self.text[: self.cursor_pos] + self.text[self.cursor_pos + 1 :]

    def _delete_prev_word(self) -> None:
        if self.cursor_pos == 0:
            return
        i = self.cursor_pos
        while i > 0 and self.text[i - 1].isspace():
            i -= 1
        while i > 0 and not self.text[i - 1].isspace():
            i -= 1
        self.kill_buffer = self.text[i : self.cursor_pos]
        self.text = self.text[:i] + self.text[self.cursor_pos :]
        self.cursor_pos = i

    def _handle_key(self, event: InputEvent) -> tuple[bool, Submission | None]:
        if event.key == "Enter" and event.shift:
            self._insert_text("\n")
            return (False, None)
        if event.key == "Enter":
            if self.cursor_pos == len(self.text) and self.text.endswith("\\"):
                # Backslash + Enter inserts newline
                self._delete_before_cursor()
                self._insert_text("\n")
                return (False, None)
            return self._submit()

        if event.key == "Up":
            self._history_prev()
            return (False, None)
        if event.key == "Down":
            self._history_next()
            return (False, None)

        if event.key == "Backspace":
            if event.ctrl:
                self.kill_buffer = self.text
                self.text = ""
                self.cursor_pos = 0
            elif event.alt:
                self._delete_prev_word()
            else:
                self._delete_before_cursor()
            return (False, None)
        if event.key == "Delete":
            self._delete_at_cursor()
            return (False, None)

        # Cursor movement
        if event.key == "Left" or (event.ctrl and event.char == "b"):
            self.cursor_pos = max(0, self.cursor_pos - 1)
            return (False, None)
        if event.key == "Right" or (event.ctrl and event.char == "f"):
            self.cursor_pos = min(len(self.text), self.cursor_pos + 1)
            return (False, None)
        if event.key == "Home" or (event.ctrl and event.char == "a"):
            self.cursor_pos = 0
            return (False, None)
        if event.key == "End" or (event.ctrl and event.char == "e"):
            self.cursor_pos = len(self.text)
            return (False, None)

        # Kill and yank
        if event.ctrl and event.char == "w":
            self._delete_prev_word()
            return (False, None)
        if event.ctrl and event.char == "k":
            self.kill_buffer = self.text[self.cursor_pos :]
            self.text = self.text[: self.cursor_pos]
            return (False, None)
        if event.ctrl and event.char == "u":
            self.kill_buffer = self.text[: self.cursor_pos]
            self.text = self.text[self.cursor_pos :]
            self.cursor_pos = 0
            return (False, None)
        if event.ctrl and event.char == "y":
            if self.kill_buffer:
                self._insert_text(self.kill_buffer)
            return (False, None)

        if event.ctrl or event.alt:
            return (False, None)

        if event.char and event.char.isprintable():
            self._insert_text(event.char)
        return (False, None)
