"""Tests for the command line in mensa_cli/main.py.

Covers:
- mcp add/remove/list subcommands
- budget set/clear/show subcommands
- Error reporting and exit status
- Logging setup
"""

from __future__ import annotations

import io
import json
import logging
import sys
from collections.abc import Iterator
from pathlib import Path

import pytest

from mensa_cli.config import Config, save_config
from mensa_cli.main import build_parser, parse_env, parse_headers, run_cli, setup_logging


@pytest.fixture
def config_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """An initialised config selected through MENSA_CONFIG."""
    path = tmp_path / "config.json"
    monkeypatch.setenv("MENSA_CONFIG", str(path))
    save_config(Config.new("claude-sonnet-4-5-20250929"))
    return path


@pytest.fixture
def root_logger() -> Iterator[logging.Logger]:
    """The root logger, restored after the test."""
    logger = logging.getLogger()
    handlers, level = list(logger.handlers), logger.level
    yield logger
    for handler in logger.handlers:
        if handler not in handlers:
            handler.close()
    logger.handlers = handlers
    logger.setLevel(level)


class TestParser:
    """Tests for argument parsing helpers."""

    def test_chat_flags(self) -> None:
        """--continue, --resume and --vim are parsed."""
        args = build_parser().parse_args(["-c", "--vim"])
        assert args.continue_session
        assert args.vim
        assert args.subcommand is None
        assert build_parser().parse_args(["--resume", "abc"]).resume == "abc"

    def test_mcp_add_command_option(self) -> None:
        """--command does not clash with the subcommand name."""
        args = build_parser().parse_args(["mcp", "add", "fs", "--command", "npx"])
        assert args.subcommand == "mcp"
        assert args.server_command == "npx"

    def test_parse_env(self) -> None:
        """KEY=value pairs are split at the first equals sign."""
        assert parse_env(["A=1", "B=x=y", "bad", "=v"]) == {"A": "1", "B": "x=y"}

    def test_parse_headers(self) -> None:
        """Header values are trimmed."""
        assert parse_headers(["Authorization: Bearer t", "bad"]) == {
            "Authorization": "Bearer t"
        }


class TestMcpCommand:
    """Tests for ``mensa mcp``."""

    def test_add_stdio(self, config_file: Path, capsys: pytest.CaptureFixture[str]) -> None:
        """A stdio server is saved with its args and env."""
        code = run_cli(
            ["mcp", "add", "fs", "--command", "npx", "--args", "server /home", "--env", "K=v"]
        )
        assert code == 0
        assert "Added MCP server: fs" in capsys.readouterr().out
        saved = json.loads(config_file.read_text())["mcpServers"]["fs"]
        assert saved == {"command": "npx", "args": ["server", "/home"], "env": {"K": "v"}}

    def test_add_remote(self, config_file: Path) -> None:
        """A remote server keeps its type and headers."""
        run_cli(
            [
                "mcp",
                "add",
                "ctx",
                "--url",
                "https://mcp.example.com/mcp",
                "--type",
                "http",
                "--header",
                "KEY: xxx",
            ]
        )
        saved = json.loads(config_file.read_text())["mcpServers"]["ctx"]
        assert saved == {
            "type": "http",
            "url": "https://mcp.example.com/mcp",
            "headers": {"KEY": "xxx"},
        }

    def test_add_requires_source(
        self, config_file: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """Either --command or --url is required."""
        assert run_cli(["mcp", "add", "fs"]) == 1
        assert "Error: Must specify either --command or --url" in capsys.readouterr().err

    def test_add_without_config(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """Adding before first-run setup fails."""
        monkeypatch.setenv("MENSA_CONFIG", str(tmp_path / "none.json"))
        assert run_cli(["mcp", "add", "fs", "--command", "npx"]) == 1
        assert "Config not found" in capsys.readouterr().err

    def test_list(self, config_file: Path, capsys: pytest.CaptureFixture[str]) -> None:
        """Servers are listed with transport and detail."""
        run_cli(["mcp", "add", "fs", "--command", "npx"])
        capsys.readouterr()
        assert run_cli(["mcp", "ls"]) == 0
        out = capsys.readouterr().out
        assert "MCP Servers:" in out
        assert "  fs (stdio): npx" in out

    def test_list_empty(self, config_file: Path, capsys: pytest.CaptureFixture[str]) -> None:
        """An empty list says so."""
        run_cli(["mcp", "list"])
        assert "No MCP servers configured" in capsys.readouterr().out

    def test_remove(self, config_file: Path, capsys: pytest.CaptureFixture[str]) -> None:
        """Removing an unknown server is an error."""
        run_cli(["mcp", "add", "fs", "--command", "npx"])
        assert run_cli(["mcp", "rm", "fs"]) == 0
        assert "Removed MCP server: fs" in capsys.readouterr().out
        assert run_cli(["mcp", "remove", "fs"]) == 1
        assert "Error: Server not found: fs" in capsys.readouterr().err

    def test_help(self, config_file: Path, capsys: pytest.CaptureFixture[str]) -> None:
        """Without a subcommand the mcp help is printed."""
        assert run_cli(["mcp"]) == 0
        assert "Examples:" in capsys.readouterr().out


class TestBudgetCommand:
    """Tests for ``mensa budget``."""

    def test_set_show_clear(self, config_file: Path, capsys: pytest.CaptureFixture[str]) -> None:
        """The limit can be set, shown and cleared."""
        assert run_cli(["budget", "set", "5"]) == 0
        assert "Budget limit set to $5.00" in capsys.readouterr().out
        run_cli(["budget", "show"])
        assert "Budget limit: $5.00" in capsys.readouterr().out
        run_cli(["budget", "clear"])
        assert "Budget limit cleared" in capsys.readouterr().out
        run_cli(["budget"])
        assert "No budget limit set" in capsys.readouterr().out

    def test_non_positive(self, config_file: Path, capsys: pytest.CaptureFixture[str]) -> None:
        """Zero is not a valid limit."""
        assert run_cli(["budget", "set", "0"]) == 1
        assert "Usage: mensa budget set" in capsys.readouterr().err


class TestChat:
    """Tests for starting the chat screen."""

    def test_requires_terminal(
        self, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """The chat screen refuses to start without a TTY."""
        monkeypatch.setattr("sys.stdin", io.StringIO())
        assert run_cli([]) == 1
        assert "Error: mensa needs an interactive terminal" in capsys.readouterr().err


class TestSetupLogging:
    """Tests for setup_logging()."""

    def test_quiet_by_default(
        self, root_logger: logging.Logger, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Without --debug nothing reaches the terminal."""
        monkeypatch.delenv("MENSA_DEBUG", raising=False)
        setup_logging(False)
        assert len(root_logger.handlers) == 1
        assert isinstance(root_logger.handlers[0], logging.NullHandler)

    def test_debug_writes_file(
        self, root_logger: logging.Logger, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """--debug logs to the log file at DEBUG level."""
        log_file = tmp_path / "mensa.log"
        monkeypatch.setattr(sys.modules["mensa_cli.main"], "CONFIG_DIR", str(tmp_path))
        monkeypatch.setattr(sys.modules["mensa_cli.main"], "LOG_FILE", str(log_file))
        setup_logging(True)
        logging.getLogger("mensa.test").debug("hello log")
        for handler in root_logger.handlers:
            handler.flush()
        assert root_logger.level == logging.DEBUG
        assert "[DEBUG] mensa.test: hello log" in log_file.read_text()
