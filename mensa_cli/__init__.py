"""mensa terminal application.

A full-screen chat client for the ``claude`` agent:
- Transcript viewport that follows new output until you scroll away
- Streamed text and tool calls rendered in the order they arrive
- Linear or vim-style input editor with slash command autocomplete
- Image attachments from the clipboard or a pasted file path

Usage:
    mensa [--continue | --resume ID] [--vim] [--debug]
    mensa mcp add|remove|list
    mensa budget set|clear|show

Keys:
    - Enter to send, \\ + Enter for a new line
    - PageUp/PageDown and Shift+Up/Down to scroll
    - Ctrl+C to interrupt (exit when idle), Ctrl+D to exit
    - Ctrl+V to paste an image
"""

from .app import ChatApp, run_onboarding
from .commands import CommandContext, CommandRouter
from .config import Config, load_config, save_config
from .main import main
from .rendering import MessageRenderer, render_visible

__all__ = [
    # Main app
    "ChatApp",
    "run_onboarding",
    "main",
    # Commands
    "CommandContext",
    "CommandRouter",
    # Config
    "Config",
    "load_config",
    "save_config",
    # Rendering
    "MessageRenderer",
    "render_visible",
]
