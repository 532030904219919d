"""Raw terminal I/O for the interactive elements.

ANSI holds the escape codes and display-width helpers shared by every
element. RawInputReader turns raw-mode bytes into InputEvents, and
TerminalRegion draws the prompts shown before the chat screen starts.
"""

from __future__ import annotations

import asyncio
import fcntl
import logging
import os
import re
import select
import shutil
import sys
import termios
import tty
from typing import Any

import wcwidth

from .base import InputEvent

logger = logging.getLogger(__name__)

_SGR = re.compile(r"\x1b\[[0-9;]*m")
# Splits text into plain runs and whole CSI sequences
_CSI_SPLIT = re.compile(r"(\x1b\[[0-?]*[ -/]*[@-~])")


def char_width(char: str) -> int:
    """Columns ``char`` occupies: 2 for wide glyphs, 0 for control and combining."""
    return max(0, wcwidth.wcwidth(char))


class ANSI:
    """Escape codes and display-width helpers.

    Element rows are plain strings with these codes embedded, e.g.
    ``f"{ANSI.BOLD}Settings{ANSI.RESET}"``.
    """

    RESET = "\x1b[0m"
    BOLD = "\x1b[1m"
    DIM = "\x1b[2m"
    REVERSE = "\x1b[7m"
    RED = "\x1b[31m"
    GREEN = "\x1b[32m"
    YELLOW = "\x1b[33m"
    CYAN = "\x1b[36m"
    GRAY = "\x1b[90m"

    HIDE_CURSOR = "\x1b[?25l"
    SHOW_CURSOR = "\x1b[?25h"
    CLEAR_TO_END = "\x1b[K"
    CARRIAGE_RETURN = "\r"
    BRACKETED_PASTE_ON = "\x1b[?2004h"
    BRACKETED_PASTE_OFF = "\x1b[?2004l"

    @staticmethod
    def cursor_up(n: int = 1) -> str:
        return f"\x1b[{n}A" if n > 0 else ""

    @staticmethod
    def cursor_down(n: int = 1) -> str:
        return f"\x1b[{n}B" if n > 0 else ""

    @staticmethod
    def get_terminal_width() -> int:
        return shutil.get_terminal_size().columns

    @staticmethod
    def get_terminal_height() -> int:
        return shutil.get_terminal_size().lines

    @staticmethod
    def strip_ansi(s: str) -> str:
        return _SGR.sub("", s)

    @classmethod
    def visual_len(cls, s: str) -> int:
        """Columns ``s`` occupies once its style codes are removed."""
        return sum(char_width(c) for c in cls.strip_ansi(s))

    @classmethod
    def wrap_to_width(cls, s: str, max_width: int) -> list[str]:
        """Split ``s`` into rows of at most ``max_width`` columns.

        Escape sequences take no room. Styles open at a break are closed at the
        end of the row and reopened at the start of the next one.
        """
        if max_width <= 0:
            return [s] if s else []
        if cls.visual_len(s) <= max_width:
            return [s]

        rows: list[str] = []
        row: list[str] = []
        used = 0
        styles: list[str] = []
        for token in _CSI_SPLIT.split(s):
            if token.startswith("\x1b["):
                row.append(token)
                if token == cls.RESET:
                    styles = []
                elif token.endswith("m"):
                    styles.append(token)
                continue
            for c in token:
                width = char_width(c)
                if used + width > max_width and used > 0:
                    rows.append("".join(row) + cls.RESET)
                    row = list(styles)
                    used = 0
                row.append(c)
                used += width
        if row:
            rows.append("".join(row))
        return rows or [""]

    @staticmethod
    def write(s: str) -> None:
        sys.stdout.write(s)
        sys.stdout.flush()

    @classmethod
    def hide_cursor(cls) -> None:
        cls.write(cls.HIDE_CURSOR)

    @classmethod
    def show_cursor(cls) -> None:
        cls.write(cls.SHOW_CURSOR)


# CSI / SS3 sequence (without the leading ESC) -> event
_ESCAPE_KEYS: dict[str, InputEvent] = {
    "[A": InputEvent(key="Up"),
    "[B": InputEvent(key="Down"),
    "[C": InputEvent(key="Right"),
    "[D": InputEvent(key="Left"),
    "OA": InputEvent(key="Up"),
    "OB": InputEvent(key="Down"),
    "OC": InputEvent(key="Right"),
    "OD": InputEvent(key="Left"),
    "[1;2A": InputEvent(key="Up", shift=True),
    "[1;2B": InputEvent(key="Down", shift=True),
    "[a": InputEvent(key="Up", shift=True),
    "[b": InputEvent(key="Down", shift=True),
    "[1;3D": InputEvent(key="Left", alt=True),
    "[1;3C": InputEvent(key="Right", alt=True),
    "[5~": InputEvent(key="PageUp"),
    "[6~": InputEvent(key="PageDown"),
    "[3~": InputEvent(key="Delete"),
    "[H": InputEvent(key="Home"),
    "[F": InputEvent(key="End"),
    "[1~": InputEvent(key="Home"),
    "[4~": InputEvent(key="End"),
    "OH": InputEvent(key="Home"),
    "OF": InputEvent(key="End"),
    "[Z": InputEvent(key="BackTab"),
    "[13;2~": InputEvent(key="Enter", shift=True),
    "[13;2u": InputEvent(key="Enter", shift=True),
    "[27;2;13~": InputEvent(key="Enter", shift=True),
    "[127;5u": InputEvent(key="Backspace", ctrl=True),
    "[127;3u": InputEvent(key="Backspace", alt=True),
}


def _utf8_length(lead: int) -> int:
    """Number of bytes in the UTF-8 sequence starting with ``lead``."""
    if lead >= 0xF0:
        return 4
    if lead >= 0xE0:
        return 3
    if lead >= 0xC0:
        return 2
    return 1


class RawInputReader:
    """Decodes raw-mode stdin into InputEvents.

    ``start`` must be called before reading and ``stop`` restores the saved tty
    attributes.
    """

    def __init__(self) -> None:
        self.fd = sys.stdin.fileno()
        self._saved: list[Any] | None = None

    def start(self) -> None:
        """Enter raw mode with bracketed paste on. Calling it twice is harmless."""
        if self._saved is not None:
            return
        self._saved = termios.tcgetattr(self.fd)
        termios.tcflush(self.fd, termios.TCIFLUSH)
        tty.setraw(self.fd)
        # Re-enable output post-processing so '\n' moves to column 1
        attrs = termios.tcgetattr(self.fd)
        attrs[1] |= termios.OPOST | termios.ONLCR
        termios.tcsetattr(self.fd, termios.TCSADRAIN, attrs)
        ANSI.write(ANSI.BRACKETED_PASTE_ON)

    def stop(self) -> None:
        """Leave raw mode."""
        if self._saved is not None:
            termios.tcsetattr(self.fd, termios.TCSADRAIN, self._saved)
            self._saved = None
        ANSI.write(ANSI.BRACKETED_PASTE_OFF)

    def flush(self) -> None:
        termios.tcflush(self.fd, termios.TCIFLUSH)

    async def read(self) -> InputEvent:
        """Read a single input event (async-friendly)."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._read_sync)

    def read_nonblocking(self, timeout: float = 0.0) -> InputEvent | None:
        """Read one event if input arrives within ``timeout`` seconds."""
        if select.select([self.fd], [], [], timeout)[0]:
            return self._read_sync()
        return None

    def _read_char(self) -> str:
        raw = os.read(self.fd, 1)
        if not raw:
            return ""
        extra = _utf8_length(raw[0]) - 1
        if extra > 0:
            raw += os.read(self.fd, extra)
        return raw.decode("utf-8", errors="ignore")

    def _read_sync(self) -> InputEvent:
        """Synchronous read of a single key."""
        ch = self._read_char()

        if ch == "":
            # stdin closed
            return InputEvent(key="d", char="d", ctrl=True)
        if ch == "\r":
            return InputEvent(key="Enter")
        if ch == "\n":
            # Ctrl+J (LF) is a control key, not Enter
            return InputEvent(key="j", char="j", ctrl=True)
        if ch == "\t":
            return InputEvent(key="Tab")
        if ch == "\x1b":
            flags = fcntl.fcntl(self.fd, fcntl.F_GETFL)
            fcntl.fcntl(self.fd, fcntl.F_SETFL, flags | os.O_NONBLOCK)
            try:
                seq = self._read_escape_sequence()
                if seq is None:
                    return InputEvent(key="Escape")
                if seq in _ESCAPE_KEYS:
                    return _ESCAPE_KEYS[seq]
                if seq == "[200~":
                    fcntl.fcntl(self.fd, fcntl.F_SETFL, flags)
                    return InputEvent(key="Paste", char=self._read_bracketed_paste())
                if seq in ("\x7f", "\x08"):
                    return InputEvent(key="Backspace", alt=True)
                if len(seq) == 1 and seq.isprintable():
                    # ESC + key is how terminals send Alt+key
                    return InputEvent(key=seq, char=seq, alt=True)
                logger.debug("Unknown escape sequence: %r", seq)
                return InputEvent(key="Escape")
            finally:
                fcntl.fcntl(self.fd, fcntl.F_SETFL, flags)

        if ch == "\x7f":
            return InputEvent(key="Backspace")
        if ch == "\x08":
            # Most terminals send ^H for Ctrl+Backspace
            return InputEvent(key="Backspace", ctrl=True)
        if ch == "\x03":
            return InputEvent(key="c", char="c", ctrl=True)
        if ch == "\x04":
            return InputEvent(key="d", char="d", ctrl=True)
        if len(ch) == 1 and ord(ch) < 32:
            # Ctrl+A -> "a", etc.
            letter = chr(ord(ch) + 96)
            if "a" <= letter <= "z":
                return InputEvent(key=letter, char=letter, ctrl=True)
            return InputEvent(key=ch, ctrl=True)
        return InputEvent(key=ch, char=ch)

    def _next_byte(self) -> bytes:
        """One byte if it is already available, else b"" (fd is non-blocking here)."""
        try:
            return os.read(self.fd, 1)
        except (BlockingIOError, OSError):
            return b""

    def _read_escape_sequence(self) -> str | None:
        """The bytes after ESC, or None for a lone Escape key."""
        intro = self._next_byte()
        if not intro:
            return None
        if intro == b"O":
            return "O" + self._next_byte().decode("utf-8", errors="ignore")
        if intro != b"[":
            return intro.decode("utf-8", errors="ignore")
        seq = bytearray(intro)
        # Parameters run until a final byte in 0x40-0x7E; runaway input is capped
        while len(seq) <= 12:
            b = self._next_byte()
            if not b:
                break
            seq += b
            if 0x40 <= b[0] <= 0x7E:
                break
        return seq.decode("utf-8", errors="ignore")

    def _read_bracketed_paste(self) -> str:
        """Pasted text up to the ESC [ 201 ~ terminator."""
        end = b"\x1b[201~"
        buf = bytearray()
        while not buf.endswith(end):
            b = os.read(self.fd, 1)
            if not b:
                return buf.decode("utf-8", errors="ignore")
            buf += b
        return buf[: -len(end)].decode("utf-8", errors="ignore")


class TerminalRegion:
    """Rows at the bottom of the terminal, redrawn in place.

    Between renders the cursor is parked at column 1 of the region's first
    row, so every redraw starts from the same place.
    """

    def __init__(self) -> None:
        self.num_lines = 0
        self._shown = False

    def activate(self, num_lines: int) -> None:
        """Claim ``num_lines`` rows starting at the cursor."""
        self.num_lines = max(1, num_lines)
        self._shown = True
        ANSI.hide_cursor()
        # Newlines scroll earlier output up when the rows are not free yet
        ANSI.write("\n" * (self.num_lines - 1))
        ANSI.write(ANSI.cursor_up(self.num_lines - 1) + ANSI.CARRIAGE_RETURN)

    def render(self, lines: list[str]) -> None:
        if not self._shown:
            return
        width = ANSI.get_terminal_width()
        out: list[str] = []
        for i in range(self.num_lines):
            line = lines[i] if i < len(lines) else ""
            out.append(ANSI.CARRIAGE_RETURN + line)
            # A row that fills the width may auto-wrap; clearing then would erase the next row
            if ANSI.visual_len(line) < width:
                out.append(ANSI.CLEAR_TO_END)
            if i < self.num_lines - 1:
                out.append("\n")
        out.append(ANSI.cursor_up(self.num_lines - 1) + ANSI.CARRIAGE_RETURN)
        ANSI.write("".join(out))

    def update_size(self, num_lines: int) -> None:
        """Grow the region. It never shrinks while shown."""
        if not self._shown or num_lines <= self.num_lines:
            return
        ANSI.write(
            ANSI.cursor_down(self.num_lines - 1) + "\n" * (num_lines - self.num_lines)
        )
        ANSI.write(ANSI.cursor_up(num_lines - 1) + ANSI.CARRIAGE_RETURN)
        self.num_lines = num_lines

    def deactivate(self) -> None:
        """Blank the region and show the cursor again."""
        if not self._shown:
            return
        self.render([])
        ANSI.show_cursor()
        self._shown = False
        self.num_lines = 0
