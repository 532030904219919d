"""Tests for LineEditor in mensa_cli/elements/line_editor.py.

Covers:
- Character insertion and cursor movement
- Kill/yank and word deletion
- Backslash and Shift+Enter newlines, submit
- History navigation backed by prompt_toolkit
- Pasted text normalisation and image paths
- Slash autocomplete through the editor
"""

from __future__ import annotations

from prompt_toolkit.history import InMemoryHistory

from mensa.data_structures import PendingImage
from mensa.errors import ImageCaptureError
from mensa_cli.elements.base import InputEvent
from mensa_cli.elements.line_editor import LineEditor, Submission
from mensa_cli.elements.terminal import ANSI


def key(name: str, **mods: bool) -> InputEvent:
    return InputEvent(key=name, **mods)


def char(c: str) -> InputEvent:
    return InputEvent(key=c, char=c)


def ctrl(c: str) -> InputEvent:
    return InputEvent(key=c, char=c, ctrl=True)


def type_text(editor: LineEditor, text: str) -> None:
    for c in text:
        editor.handle_input(char(c))


def editor_with(history: list[str] | None = None) -> LineEditor:
    store = InMemoryHistory()
    for entry in history or []:
        store.append_string(entry)
    return LineEditor(history=store)


class TestEditing:
    """Tests for insertion and deletion."""

    def test_typing(self) -> None:
        """Printable characters are inserted at the cursor."""
        editor = editor_with()
        type_text(editor, "hello")
        assert editor.text == "hello"
        assert editor.cursor_pos == 5

    def test_insert_in_middle(self) -> None:
        """Moving left inserts before the cursor."""
        editor = editor_with()
        type_text(editor, "hllo")
        for _ in range(3):
            editor.handle_input(key("Left"))
        editor.handle_input(char("e"))
        assert editor.text == "hello"
        assert editor.cursor_pos == 2

    def test_backspace_and_delete(self) -> None:
        """Backspace removes before the cursor, Delete at it."""
        editor = editor_with()
        type_text(editor, "abc")
        editor.handle_input(key("Backspace"))
        assert editor.text == "ab"
        editor.handle_input(key("Home"))
        editor.handle_input(key("Delete"))
        assert editor.text == "b"

    def test_alt_backspace_deletes_word(self) -> None:
        """Alt+Backspace removes the previous word."""
        editor = editor_with()
        type_text(editor, "foo bar ")
        editor.handle_input(key("Backspace", alt=True))
        assert editor.text == "foo "

    def test_ctrl_backspace_clears(self) -> None:
        """Ctrl+Backspace clears the line."""
        editor = editor_with()
        type_text(editor, "foo bar")
        editor.handle_input(key("Backspace", ctrl=True))
        assert editor.text == ""
        assert editor.cursor_pos == 0

    def test_ctrl_a_e(self) -> None:
        """Ctrl+A and Ctrl+E jump to the ends."""
        editor = editor_with()
        type_text(editor, "abc")
        editor.handle_input(ctrl("a"))
        assert editor.cursor_pos == 0
        editor.handle_input(ctrl("e"))
        assert editor.cursor_pos == 3

    def test_kill_and_yank(self) -> None:
        """Ctrl+K kills to the end and Ctrl+Y yanks it back."""
        editor = editor_with()
        type_text(editor, "hello world")
        for _ in range(6):
            editor.handle_input(key("Left"))
        editor.handle_input(ctrl("k"))
        assert editor.text == "hello"
        editor.handle_input(ctrl("a"))
        editor.handle_input(ctrl("y"))
        assert editor.text == " worldhello"

    def test_ctrl_u_and_w(self) -> None:
        """Ctrl+U kills to the start, Ctrl+W the previous word."""
        editor = editor_with()
        type_text(editor, "one two")
        editor.handle_input(ctrl("w"))
        assert editor.text == "one "
        editor.handle_input(ctrl("u"))
        assert editor.text == ""

    def test_unknown_ctrl_ignored(self) -> None:
        """Unbound control keys do not insert text."""
        editor = editor_with()
        editor.handle_input(ctrl("t"))
        assert editor.text == ""


class TestSubmit:
    """Tests for newlines and submission."""

    def test_enter_submits_stripped_text(self) -> None:
        """Enter returns a Submission and clears the editor."""
        editor = editor_with()
        type_text(editor, "  hi  ")
        done, result = editor.handle_input(key("Enter"))
        assert done
        assert result == Submission(text="hi")
        assert editor.text == ""

    def test_blank_not_submitted(self) -> None:
        """Whitespace-only input is ignored."""
        editor = editor_with()
        type_text(editor, "   ")
        assert editor.handle_input(key("Enter")) == (False, None)

    def test_disabled_submit(self) -> None:
        """Enter does nothing while submit is disabled."""
        editor = editor_with()
        editor.submit_enabled = False
        type_text(editor, "hi")
        assert editor.handle_input(key("Enter")) == (False, None)
        assert editor.text == "hi"

    def test_backslash_enter_newline(self) -> None:
        """A trailing backslash turns Enter into a newline."""
        editor = editor_with()
        type_text(editor, "line1\\")
        done, _ = editor.handle_input(key("Enter"))
        assert not done
        type_text(editor, "line2")
        assert editor.text == "line1\nline2"

    def test_shift_enter_newline(self) -> None:
        """Shift+Enter inserts a newline."""
        editor = editor_with()
        type_text(editor, "a")
        editor.handle_input(key("Enter", shift=True))
        assert editor.text == "a\n"

    def test_images_submitted_with_text(self) -> None:
        """Attached images travel with the submission and are cleared."""
        editor = editor_with()
        image = PendingImage(id="img-1", data="QUJD")
        editor.attach_image(image)
        type_text(editor, "see")
        _, result = editor.handle_input(key("Enter"))
        assert result is not None
        assert result.images == (image,)
        assert editor.images == []


class TestHistory:
    """Tests for history navigation."""

    def test_up_walks_back(self) -> None:
        """Up recalls newer entries first."""
        editor = editor_with(["first", "second"])
        editor.handle_input(key("Up"))
        assert editor.text == "second"
        editor.handle_input(key("Up"))
        assert editor.text == "first"
        editor.handle_input(key("Up"))
        assert editor.text == "first"

    def test_down_restores_draft(self) -> None:
        """Down past the newest entry restores the draft."""
        editor = editor_with(["first"])
        type_text(editor, "draft")
        editor.handle_input(key("Up"))
        assert editor.text == "first"
        editor.handle_input(key("Down"))
        assert editor.text == "draft"

    def test_submit_stores_entry(self) -> None:
        """Submitted text is appended to history without duplicates."""
        store = InMemoryHistory()
        editor = LineEditor(history=store)
        for text in ("a", "b", "a"):
            type_text(editor, text)
            editor.handle_input(key("Enter"))
        editor.handle_input(key("Up"))
        assert editor.text == "a"
        editor.handle_input(key("Up"))
        assert editor.text == "b"
        assert list(store.load_history_strings())[0] == "a"

    def test_no_history(self) -> None:
        """Without a history store Up does nothing."""
        editor = LineEditor()
        editor.handle_input(key("Up"))
        assert editor.text == ""


class TestPaste:
    """Tests for pasted text and image paths."""

    def test_paste_normalised(self) -> None:
        """Tabs expand and CRLF becomes LF."""
        editor = editor_with()
        editor.handle_input(InputEvent(key="Paste", char="a\tb\r\nc"))
        assert editor.text == "a    b\nc"

    def test_paste_image_path(self) -> None:
        """A pasted image path attaches the image instead of inserting text."""
        image = PendingImage(id="img-1", data="QUJD")
        editor = LineEditor(image_loader=lambda path: image)
        editor.handle_input(InputEvent(key="Paste", char="'/tmp/shot.png'"))
        assert editor.images == [image]
        assert editor.text == ""

    def test_paste_missing_image(self) -> None:
        """A failed image load shows a notice until the next key."""

        def fail(path: str) -> PendingImage:
            raise ImageCaptureError("File not found: /tmp/x.png")

        editor = LineEditor(image_loader=fail)
        editor.handle_input(InputEvent(key="Paste", char="/tmp/x.png"))
        assert editor.notice == "File not found: /tmp/x.png"
        assert any("File not found" in line for line in editor.get_lines(80))
        editor.handle_input(char("a"))
        assert editor.notice is None


class TestSlashAutocomplete:
    """Tests for slash command completion in the editor."""

    def test_tab_completes(self) -> None:
        """Tab replaces the text with the selected command."""
        editor = editor_with()
        type_text(editor, "/un")
        editor.handle_input(key("Tab"))
        assert editor.text == "/undo"

    def test_enter_on_prefix_completes(self) -> None:
        """Enter on a partial command completes instead of submitting."""
        editor = editor_with()
        type_text(editor, "/he")
        done, _ = editor.handle_input(key("Enter"))
        assert not done
        assert editor.text == "/help"
        done, result = editor.handle_input(key("Enter"))
        assert done
        assert result == Submission(text="/help")

    def test_down_moves_selection(self) -> None:
        """Arrow keys move through suggestions instead of history."""
        editor = editor_with(["old"])
        type_text(editor, "/c")
        editor.handle_input(key("Down"))
        editor.handle_input(key("Tab"))
        assert editor.text == "/clear"


class TestRendering:
    """Tests for get_lines()."""

    def test_prompt_and_cursor(self) -> None:
        """The prompt precedes the text and the cursor is drawn."""
        editor = editor_with()
        type_text(editor, "hi")
        lines = editor.get_lines(80)
        assert ANSI.strip_ansi(lines[0]).startswith("> hi")

    def test_image_chips(self) -> None:
        """Attached images are listed above the prompt."""
        editor = editor_with()
        editor.attach_image(PendingImage(id="i", data="A" * 1368))
        assert ANSI.strip_ansi(editor.get_lines(80)[0]) == "[PNG] 1.0KB"

    def test_suggestions_rendered(self) -> None:
        """Suggestions appear below the prompt."""
        editor = editor_with()
        type_text(editor, "/m")
        plain = [ANSI.strip_ansi(line) for line in editor.get_lines(80)]
        assert "> /mcp - Manage MCP servers" in plain
