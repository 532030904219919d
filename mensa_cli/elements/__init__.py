"""Interactive UI elements for the CLI.

This module provides an abstraction for interactive terminal elements
that can control output and capture input.

Usage:
    from mensa_cli.elements import ElementManager, MenuSelect

    manager = ElementManager()
    model = await manager.run(MenuSelect(title="Select a model", options=labels, values=ids))
"""

from .base import ActiveElement, InputEvent
from .line_editor import EditorBase, LineEditor, Submission
from .manager import ElementManager
from .menu_select import MenuSelect
from .slash import SLASH_COMMANDS, SlashCommand, SlashCompleter
from .terminal import ANSI, RawInputReader, TerminalRegion
from .text_prompt import TextPrompt
from .vim_editor import COMPOSITES, VimEditor, VimMode

__all__ = [
    # Base
    "ActiveElement",
    "InputEvent",
    # Manager
    "ElementManager",
    # Terminal
    "ANSI",
    "TerminalRegion",
    "RawInputReader",
    # Editors
    "EditorBase",
    "LineEditor",
    "VimEditor",
    "VimMode",
    "COMPOSITES",
    "Submission",
    "SLASH_COMMANDS",
    "SlashCommand",
    "SlashCompleter",
    # Elements
    "MenuSelect",
    "TextPrompt",
]
