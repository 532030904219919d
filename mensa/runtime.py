"""Agent runtime protocol and the ``claude`` CLI adapter.

The chat session talks to the agent through ``AgentRuntime``: one streamed
turn at a time, a best-effort interrupt, and a file rewind used by undo.

``ClaudeCliRuntime`` implements it by running ``claude --print`` once per
turn in ``stream-json`` mode and resuming the previous session id, so the
conversation continues across invocations.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import shutil
import uuid
from collections.abc import AsyncIterator, Mapping
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from .checkpoints import CheckpointStore, edited_path
from .errors import StreamError
from .events import (
    AgentEvent,
    AssistantToolCallEvent,
    InitEvent,
    ResultEvent,
    UserEchoEvent,
    parse_stream_line,
)

logger = logging.getLogger(__name__)

__all__ = [
    "ALLOWED_TOOLS",
    "DEFAULT_MODEL",
    "RewindResult",
    "AgentRuntime",
    "RuntimeOptions",
    "ClaudeCliRuntime",
]

DEFAULT_MODEL = "claude-sonnet-4-5-20250929"

ALLOWED_TOOLS: tuple[str, ...] = (
    "Read",
    "Write",
    "Edit",
    "Bash",
    "Glob",
    "Grep",
    "WebFetch",
    "WebSearch",
    "TodoWrite",
)

# stream-json lines carry whole tool results
_LINE_LIMIT = 32 * 1024 * 1024
_TERMINATE_TIMEOUT = 2.0


@dataclass(frozen=True)
class RewindResult:
    """Outcome of a file rewind request."""

    can_rewind: bool
    files_changed: tuple[str, ...] = ()
    error: str | None = None


@runtime_checkable
class AgentRuntime(Protocol):
    """What the chat session needs from an agent backend."""

    def stream(self, prompt: str) -> AsyncIterator[AgentEvent]:
        """Run one turn, yielding its events in arrival order."""
        ...

    async def interrupt(self) -> None:
        """Stop the active turn. Safe to call when nothing is running."""
        ...

    async def rewind_files(self, turn_id: str) -> RewindResult:
        """Restore files to their state at the start of ``turn_id``."""
        ...

    async def close(self) -> None:
        """Release any process or connection held by the runtime."""
        ...


@dataclass(frozen=True)
class RuntimeOptions:
    """Runtime settings taken from the user's config.

    Attributes:
        model: Model id passed to ``--model``
        mcp_servers: Server name -> stdio or remote server definition
        max_budget_usd: Spending cap for the session, if any
        resume: Session id to continue
        cwd: Working directory for the agent (defaults to the current one)
        cli_path: Name or path of the ``claude`` executable
    """

    model: str = DEFAULT_MODEL
    mcp_servers: Mapping[str, Mapping[str, object]] = field(default_factory=dict)
    max_budget_usd: float | None = None
    resume: str | None = None
    cwd: str | None = None
    cli_path: str = "claude"
    allowed_tools: tuple[str, ...] = ALLOWED_TOOLS
    permission_mode: str = "acceptEdits"

    @classmethod
    def from_config(
        cls, config: Mapping[str, object], resume: str | None = None
    ) -> "RuntimeOptions":
        """Build options from a config document.

        Only ``model``, ``mcpServers`` and ``maxBudgetUsd`` are read.
        """
        model = config.get("model")
        servers = config.get("mcpServers")
        budget = config.get("maxBudgetUsd")
        return cls(
            model=model if isinstance(model, str) and model else DEFAULT_MODEL,
            mcp_servers=dict(servers) if isinstance(servers, Mapping) else {},
            max_budget_usd=(
                float(budget)
                if isinstance(budget, (int, float)) and not isinstance(budget, bool)
                else None
            ),
            resume=resume,
            cli_path=os.environ.get("MENSA_CLAUDE_PATH", "claude"),
        )


class ClaudeCliRuntime:
    """Runs each turn as a ``claude --print`` subprocess.

    Every turn starts with a synthetic ``UserEchoEvent`` carrying a fresh turn
    id. Edits made during the turn are checkpointed under that id so
    ``rewind_files`` can restore them.
    """

    def __init__(self, options: RuntimeOptions) -> None:
        self.options = options
        self._session_id = options.resume
        self._process: asyncio.subprocess.Process | None = None
        self._interrupted = False
        self._checkpoints = CheckpointStore(options.cwd)

    @property
    def session_id(self) -> str | None:
        return self._session_id

    @property
    def is_running(self) -> bool:
        return self._process is not None and self._process.returncode is None

    def build_args(self, prompt: str) -> list[str]:
        """Command line for one turn."""
        opts = self.options
        args = [
            opts.cli_path,
            "--print",
            "--output-format",
            "stream-json",
            "--verbose",
            "--include-partial-messages",
            "--model",
            opts.model,
            "--permission-mode",
            opts.permission_mode,
        ]
        # --resume does not carry tool and MCP settings over
        if opts.allowed_tools:
            args.extend(["--allowedTools", ",".join(opts.allowed_tools)])
        if opts.mcp_servers:
            args.extend(
                ["--mcp-config", json.dumps({"mcpServers": dict(opts.mcp_servers)})]
            )
        if opts.max_budget_usd is not None:
            args.extend(["--max-budget-usd", f"{opts.max_budget_usd:g}"])
        if self._session_id:
            args.extend(["--resume", self._session_id])
        args.extend(["--", prompt])
        return args

    async def stream(self, prompt: str) -> AsyncIterator[AgentEvent]:
        if self.is_running:
            raise StreamError("agent process is already running")
        self._interrupted = False
        turn_id = str(uuid.uuid4())
        self._checkpoints.begin_turn(turn_id)
        yield UserEchoEvent(uuid=turn_id)

        args = self.build_args(prompt)
        if shutil.which(args[0]) is None:
            raise StreamError(
                f"'{args[0]}' was not found on PATH. "
                "Install it with: npm install -g @anthropic-ai/claude-code"
            )
        logger.debug("Spawning %s (resume=%s)", args[0], self._session_id)
        process = await asyncio.create_subprocess_exec(
            *args,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=self.options.cwd,
            limit=_LINE_LIMIT,
        )
        self._process = process
        assert process.stdout is not None and process.stderr is not None
        stderr_task = asyncio.create_task(process.stderr.read())
        saw_result = False

        try:
            async for raw in process.stdout:
                line = raw.decode("utf-8", errors="replace").strip()
                if not line:
                    continue
                try:
                    data = json.loads(line)
                except json.JSONDecodeError:
                    logger.debug("Failed to parse NDJSON line: %s...", line[:100])
                    continue
                for event in parse_stream_line(data):
                    # Turn ids come from the synthetic echo above
                    if isinstance(event, UserEchoEvent):
                        continue
                    if isinstance(event, InitEvent):
                        self._session_id = event.session_id
                    elif isinstance(event, AssistantToolCallEvent):
                        path = edited_path(event.name, event.input)
                        if path is not None:
                            self._checkpoints.record(path)
                    elif isinstance(event, ResultEvent):
                        saw_result = True
                    yield event
                if saw_result:
                    break

            returncode = await process.wait()
            stderr = (await stderr_task).decode("utf-8", errors="replace").strip()
            if not saw_result and not self._interrupted:
                logger.error("claude exited with code %s: %s", returncode, stderr)
                detail = stderr.splitlines()[-1] if stderr else "no result received"
                raise StreamError(
                    f"claude exited with code {returncode}: {detail}",
                    exit_code=returncode,
                    stderr=stderr,
                )
        finally:
            if process.returncode is None:
                await self._terminate(process)
            if not stderr_task.done():
                stderr_task.cancel()
            self._process = None

    async def interrupt(self) -> None:
        self._interrupted = True
        process = self._process
        if process is None or process.returncode is not None:
            return
        logger.debug("Interrupt requested, terminating claude")
        await self._terminate(process)

    async def rewind_files(self, turn_id: str) -> RewindResult:
        if self.is_running:
            return RewindResult(can_rewind=False, error="A turn is still running")
        if not self._checkpoints.has_turn(turn_id):
            return RewindResult(
                can_rewind=False, error="No file checkpoint recorded for that turn"
            )
        files = self._checkpoints.rewind_to(turn_id)
        return RewindResult(can_rewind=True, files_changed=tuple(files))

    async def close(self) -> None:
        process = self._process
        if process is not None and process.returncode is None:
            await self._terminate(process)
        self._process = None

    @staticmethod
    async def _terminate(process: asyncio.subprocess.Process) -> None:
        try:
            process.terminate()
        except ProcessLookupError:
            return
        try:
            await asyncio.wait_for(process.wait(), timeout=_TERMINATE_TIMEOUT)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
