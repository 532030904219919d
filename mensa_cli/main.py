"""Command line entry point for mensa."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys

from rich.console import Console
from rich.theme import Theme

from mensa.errors import MensaError
from mensa.runtime import ClaudeCliRuntime, RuntimeOptions

from .app import ChatApp, run_onboarding
from .config import (
    CONFIG_DIR,
    add_mcp_server,
    describe_mcp_server,
    get_budget_limit,
    list_mcp_servers,
    load_config,
    remove_mcp_server,
    set_budget_limit,
)
from .elements import VimEditor

LOG_FILE = os.path.join(CONFIG_DIR, "mensa.log")

MCP_EXAMPLES = """Examples:
  mensa mcp add filesystem --command "npx" --args "@modelcontextprotocol/server-filesystem /home"
  mensa mcp add github --command "npx @modelcontextprotocol/server-github" --env GITHUB_TOKEN=xxx
  mensa mcp add remote --url "https://mcp.example.com/sse" --type sse
  mensa mcp add context7 --url "https://mcp.context7.com/mcp" --type http --header "CONTEXT7_API_KEY: xxx"
  mensa mcp remove filesystem
  mensa mcp list"""

CHAT_EXAMPLES = """Examples:
  mensa                      Start a new chat
  mensa --continue           Continue last session
  mensa --resume abc123      Resume a specific session
  mensa --vim                Use vim keybindings for input
  mensa mcp list             List MCP servers
  mensa budget set 5         Cap spending at $5.00 per session"""


class CliError(Exception):
    """A usage error reported as ``Error: ...`` with exit status 1."""


def setup_logging(debug: bool) -> None:
    """Send log records to a file; never to the terminal the UI owns."""
    if debug or os.environ.get("MENSA_DEBUG") == "1":
        os.makedirs(CONFIG_DIR, exist_ok=True)
        file_handler = logging.FileHandler(LOG_FILE)
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
        )
        root_logger = logging.getLogger()
        root_logger.handlers = [file_handler]
        root_logger.setLevel(logging.DEBUG)
    else:
        logging.getLogger().handlers = [logging.NullHandler()]


# =============================================================================
# Argument parsing
# =============================================================================


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mensa",
        description="mensa - terminal chat interface for Claude",
        epilog=CHAT_EXAMPLES,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--continue",
        "-c",
        dest="continue_session",
        action="store_true",
        help="Continue the most recent conversation",
    )
    parser.add_argument("--resume", metavar="ID", help="Resume a specific session by ID")
    parser.add_argument("--vim", action="store_true", help="Use vim keybindings for input")
    parser.add_argument(
        "--debug",
        action="store_true",
        help=f"Write debug logs to {LOG_FILE}",
    )
    commands = parser.add_subparsers(dest="subcommand")

    # mcp
    mcp = commands.add_parser(
        "mcp",
        help="Manage MCP servers",
        epilog=MCP_EXAMPLES,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    mcp.set_defaults(help_parser=mcp)
    mcp_commands = mcp.add_subparsers(dest="mcp_command")
    add = mcp_commands.add_parser("add", help="Add a stdio or remote MCP server")
    add.add_argument("name")
    source = add.add_mutually_exclusive_group()
    source.add_argument("--command", dest="server_command", help="Command for a stdio server")
    source.add_argument("--url", help="URL of a remote server")
    add.add_argument("--args", help="Arguments to pass (space-separated)")
    add.add_argument(
        "--env",
        action="append",
        default=[],
        metavar="KEY=value",
        help="Environment variable (can be repeated)",
    )
    add.add_argument(
        "--type",
        choices=["sse", "http"],
        default="sse",
        help="Transport type for remote servers (default: sse)",
    )
    add.add_argument(
        "--header",
        action="append",
        default=[],
        metavar="'Key: value'",
        help="HTTP header (can be repeated)",
    )
    remove = mcp_commands.add_parser("remove", aliases=["rm"], help="Remove an MCP server")
    remove.add_argument("name")
    mcp_commands.add_parser("list", aliases=["ls"], help="List configured MCP servers")
    mcp_commands.add_parser("help", help="Show this help")

    # budget
    budget = commands.add_parser("budget", help="Manage the spending limit")
    budget_commands = budget.add_subparsers(dest="budget_command")
    budget_set = budget_commands.add_parser("set", help="Set the limit in USD")
    budget_set.add_argument("amount", type=float)
    budget_commands.add_parser("clear", help="Remove the limit")
    budget_commands.add_parser("show", help="Show the current limit")

    return parser


def parse_env(values: list[str]) -> dict[str, str]:
    """``KEY=value`` pairs; entries without a key are ignored."""
    env = {}
    for item in values:
        key, sep, value = item.partition("=")
        if sep and key:
            env[key] = value
    return env


def parse_headers(values: list[str]) -> dict[str, str]:
    """``Key: value`` pairs; entries without a key are ignored."""
    headers = {}
    for item in values:
        key, sep, value = item.partition(":")
        if sep and key.strip():
            headers[key.strip()] = value.strip()
    return headers


# =============================================================================
# Subcommands
# =============================================================================


def run_mcp_command(args: argparse.Namespace) -> int:
    command = args.mcp_command
    if command == "add":
        if args.server_command:
            server = {
                "command": args.server_command,
                "args": args.args.split() if args.args else None,
                "env": parse_env(args.env),
            }
        elif args.url:
            server = {"type": args.type, "url": args.url, "headers": parse_headers(args.header)}
        else:
            raise CliError("Must specify either --command or --url")
        add_mcp_server(args.name, server)
        print(f"Added MCP server: {args.name}")
        return 0

    if command in ("remove", "rm"):
        if not remove_mcp_server(args.name):
            raise CliError(f"Server not found: {args.name}")
        print(f"Removed MCP server: {args.name}")
        return 0

    if command in ("list", "ls"):
        servers = list_mcp_servers()
        if not servers:
            print("No MCP servers configured")
            return 0
        print("MCP Servers:")
        for name, server in servers.items():
            transport, detail = describe_mcp_server(server)
            print(f"  {name} ({transport}): {detail}")
        return 0

    args.help_parser.print_help()
    return 0


def run_budget_command(args: argparse.Namespace) -> int:
    command = args.budget_command
    if command == "set":
        if not args.amount > 0:
            raise CliError("Usage: mensa budget set <amount> (example: mensa budget set 10.00)")
        set_budget_limit(args.amount)
        print(f"Budget limit set to ${args.amount:.2f}")
        return 0
    if command == "clear":
        set_budget_limit(0)
        print("Budget limit cleared")
        return 0
    budget = get_budget_limit()
    if budget:
        print(f"Budget limit: ${budget:.2f}")
    else:
        print("No budget limit set")
    return 0


# =============================================================================
# Chat
# =============================================================================


async def run_chat(args: argparse.Namespace) -> int:
    console = Console(theme=Theme({"markdown.code": "cyan"}))
    config = load_config()
    if config is None:
        config = await run_onboarding(console)
        if config is None:
            return 0

    resume = args.resume
    if args.continue_session and not resume:
        resume = config.last_session_id

    runtime = ClaudeCliRuntime(RuntimeOptions.from_config(config.to_dict(), resume=resume))
    app = ChatApp(
        config=config,
        runtime=runtime,
        editor=VimEditor() if args.vim else None,
        console=console,
    )
    if resume:
        app.transcript.add_system(f"Resuming session {resume}")
    elif args.continue_session:
        app.transcript.add_system("No previous session found. Starting a new one.")
    await app.run()
    return 0


def run_cli(argv: list[str] | None = None) -> int:
    """Parse arguments and run; returns the process exit status."""
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        if args.subcommand == "mcp":
            return run_mcp_command(args)
        if args.subcommand == "budget":
            return run_budget_command(args)
        if not sys.stdin.isatty() or not sys.stdout.isatty():
            raise CliError("mensa needs an interactive terminal")
        setup_logging(args.debug)
        return asyncio.run(run_chat(args))
    except (CliError, MensaError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def main() -> None:
    """Entry point for the mensa command."""
    try:
        sys.exit(run_cli())
    except KeyboardInterrupt:
        print("\nGoodbye!")
        sys.exit(0)


if __name__ == "__main__":
    main()
