"""Command routing for slash commands."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Awaitable, Callable

from mensa.session import ChatSession

from .display import HELP_TEXT

EXIT_COMMANDS = frozenset({"exit", "quit"})


@dataclass
class CommandContext:
    """Dependencies and callbacks used by CommandRouter."""

    session: ChatSession
    open_settings: Callable[[], Awaitable[None]]
    open_mcp: Callable[[], Awaitable[None]]
    clear_screen: Callable[[], None]


class CommandRouter:
    """Parse and execute in-app commands."""

    @staticmethod
    def is_command(text: str) -> bool:
        cmd = text.lower().strip()
        return cmd in EXIT_COMMANDS or cmd.startswith("/")

    async def handle(self, command: str, ctx: CommandContext) -> bool:
        """Handle a command.

        Output is appended to the transcript as system messages.

        Returns:
            False when the app should exit
        """
        cmd = command.lower().strip()
        transcript = ctx.session.transcript

        if cmd in EXIT_COMMANDS:
            return False

        if cmd in ("/config", "/settings"):
            await ctx.open_settings()
            return True

        if cmd == "/mcp":
            await ctx.open_mcp()
            return True

        if cmd == "/undo":
            await ctx.session.undo()
            return True

        if cmd == "/clear":
            ctx.clear_screen()
            return True

        if cmd == "/help":
            transcript.add_system(HELP_TEXT)
            return True

        transcript.add_system(
            f"Unknown command: {command.strip()}\nType /help for available commands."
        )
        return True
