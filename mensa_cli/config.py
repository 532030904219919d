"""Configuration loading/saving for mensa.

The config is a single JSON document at ``~/.mensa/config.json`` (or the path
in ``MENSA_CONFIG``), read whole and written whole. Keys mensa does not know
about are preserved on save.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, TypedDict

from mensa.errors import ConfigError
from mensa.runtime import DEFAULT_MODEL

CONFIG_DIR = os.path.expanduser("~/.mensa")
DEFAULT_CONFIG_PATH = os.path.join(CONFIG_DIR, "config.json")

EDITOR_MODES = ("linear", "vim")


class ModelOption(TypedDict):
    value: str
    label: str


MODELS: list[ModelOption] = [
    {"value": "claude-sonnet-4-5-20250929", "label": "Claude Sonnet 4.5 (Recommended)"},
    {"value": "claude-opus-4-5-20251101", "label": "Claude Opus 4.5"},
    {"value": "claude-haiku-4-5-20251001", "label": "Claude Haiku 4.5"},
]

_KNOWN_KEYS = frozenset(
    {"model", "createdAt", "mcpServers", "maxBudgetUsd", "lastSessionId", "editorMode"}
)


def config_path(path: str | None = None) -> str:
    """Resolve the config file path: explicit path, then MENSA_CONFIG, then default."""
    if path:
        return os.path.expanduser(path)
    return os.path.expanduser(os.environ.get("MENSA_CONFIG") or DEFAULT_CONFIG_PATH)


@dataclass
class Config:
    """User settings.

    Attributes:
        model: Model id passed to the agent runtime
        created_at: ISO timestamp of first-run setup
        mcp_servers: Server name -> stdio ``{command, args?, env?}`` or remote
            ``{type, url, headers?}`` definition
        max_budget_usd: Per-session spending cap, None for no cap
        last_session_id: Session id used by ``--continue``
        editor_mode: "linear" or "vim"
        extra: Unrecognised keys, written back unchanged
    """

    model: str = DEFAULT_MODEL
    created_at: str = ""
    mcp_servers: dict[str, dict[str, Any]] = field(default_factory=dict)
    max_budget_usd: float | None = None
    last_session_id: str | None = None
    editor_mode: str = "linear"
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def new(cls, model: str) -> "Config":
        """Config for a first run."""
        return cls(model=model, created_at=datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = dict(self.extra)
        data["model"] = self.model
        data["createdAt"] = self.created_at
        if self.mcp_servers:
            data["mcpServers"] = self.mcp_servers
        if self.max_budget_usd is not None:
            data["maxBudgetUsd"] = self.max_budget_usd
        if self.last_session_id:
            data["lastSessionId"] = self.last_session_id
        if self.editor_mode != "linear":
            data["editorMode"] = self.editor_mode
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Config":
        model = data.get("model")
        servers = data.get("mcpServers")
        budget = data.get("maxBudgetUsd")
        session_id = data.get("lastSessionId")
        editor_mode = data.get("editorMode")
        return cls(
            model=model if isinstance(model, str) and model else DEFAULT_MODEL,
            created_at=str(data.get("createdAt", "")),
            mcp_servers=(
                {str(k): dict(v) for k, v in servers.items() if isinstance(v, dict)}
                if isinstance(servers, dict)
                else {}
            ),
            max_budget_usd=(
                float(budget)
                if isinstance(budget, (int, float))
                and not isinstance(budget, bool)
                and budget > 0
                else None
            ),
            last_session_id=session_id if isinstance(session_id, str) and session_id else None,
            editor_mode=editor_mode if editor_mode in EDITOR_MODES else "linear",
            extra={k: v for k, v in data.items() if k not in _KNOWN_KEYS},
        )


def load_config(path: str | None = None) -> Config | None:
    """Load config from disk. Returns None if missing or invalid."""
    try:
        with open(config_path(path), "r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        return None
    except (OSError, ValueError):
        return None
    return Config.from_dict(data) if isinstance(data, dict) else None


def save_config(config: Config, path: str | None = None) -> None:
    """Persist config to disk.

    Raises:
        ConfigError: If the file cannot be written
    """
    target = config_path(path)
    try:
        os.makedirs(os.path.dirname(target) or ".", exist_ok=True)
        with open(target, "w", encoding="utf-8") as f:
            json.dump(config.to_dict(), f, indent=2)
    except OSError as e:
        raise ConfigError(f"Could not write {target}: {e}") from e


def _require_config(path: str | None) -> Config:
    config = load_config(path)
    if config is None:
        raise ConfigError("Config not found. Please run mensa first to initialize.")
    return config


# =============================================================================
# MCP servers
# =============================================================================


def add_mcp_server(name: str, server: dict[str, Any], path: str | None = None) -> None:
    """Add or replace an MCP server definition.

    Raises:
        ConfigError: If no config exists yet
    """
    config = _require_config(path)
    # Drop unset optional fields (args, env, headers)
    config.mcp_servers[name] = {k: v for k, v in server.items() if v not in (None, [], {})}
    save_config(config, path)


def remove_mcp_server(name: str, path: str | None = None) -> bool:
    """Remove an MCP server. Returns False if it was not configured."""
    config = load_config(path)
    if config is None or name not in config.mcp_servers:
        return False
    del config.mcp_servers[name]
    save_config(config, path)
    return True


def list_mcp_servers(path: str | None = None) -> dict[str, dict[str, Any]]:
    config = load_config(path)
    return config.mcp_servers if config else {}


def describe_mcp_server(server: dict[str, Any]) -> tuple[str, str]:
    """Return ``(transport, detail)`` for display: the type and command or URL."""
    transport = str(server.get("type") or "stdio")
    detail = server.get("command") or server.get("url") or ""
    return transport, str(detail)


# =============================================================================
# Session and budget
# =============================================================================


def save_last_session_id(session_id: str, path: str | None = None) -> None:
    config = load_config(path)
    if config is not None and config.last_session_id != session_id:
        config.last_session_id = session_id
        save_config(config, path)


def get_last_session_id(path: str | None = None) -> str | None:
    config = load_config(path)
    return config.last_session_id if config else None


def set_budget_limit(max_budget_usd: float, path: str | None = None) -> None:
    """Set the spending cap. A value <= 0 clears it.

    Raises:
        ConfigError: If no config exists yet
    """
    config = _require_config(path)
    config.max_budget_usd = max_budget_usd if max_budget_usd > 0 else None
    save_config(config, path)


def get_budget_limit(path: str | None = None) -> float | None:
    config = load_config(path)
    return config.max_budget_usd if config else None
