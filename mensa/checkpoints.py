"""Per-turn file snapshots backing undo.

Before an editing tool touches a file, the runtime records the file's current
bytes (or its absence) under the active turn. Rewinding to a turn restores
every file touched in that turn or any later one to the content it had when
that turn began, then forgets those turns.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)

__all__ = ["EDITING_TOOLS", "TurnCheckpoint", "CheckpointStore", "edited_path"]

# Tool name -> input key holding the target path
EDITING_TOOLS: dict[str, str] = {
    "Edit": "file_path",
    "MultiEdit": "file_path",
    "Write": "file_path",
    "NotebookEdit": "notebook_path",
}


def edited_path(tool_name: str, tool_input: object) -> str | None:
    """Return the file an editing tool call will modify, if any."""
    key = EDITING_TOOLS.get(tool_name)
    if key is None or not isinstance(tool_input, Mapping):
        return None
    path = tool_input.get(key)
    return path if isinstance(path, str) and path else None


@dataclass
class TurnCheckpoint:
    """Original content of each file first touched during one turn.

    ``None`` marks a file that did not exist when it was first touched.
    """

    turn_id: str
    files: dict[Path, bytes | None] = field(default_factory=dict)


class CheckpointStore:
    """Ordered per-turn snapshots for one runtime session."""

    def __init__(self, cwd: str | Path | None = None) -> None:
        self._cwd = Path(cwd) if cwd is not None else Path.cwd()
        self._turns: list[TurnCheckpoint] = []

    @property
    def turn_ids(self) -> list[str]:
        return [t.turn_id for t in self._turns]

    def begin_turn(self, turn_id: str) -> None:
        self._turns.append(TurnCheckpoint(turn_id))

    def record(self, path: str | Path) -> bool:
        """Snapshot ``path`` into the current turn unless already captured.

        Returns:
            True if a new snapshot was taken
        """
        if not self._turns:
            return False
        resolved = self._resolve(path)
        current = self._turns[-1]
        if resolved in current.files:
            return False
        try:
            current.files[resolved] = resolved.read_bytes()
        except FileNotFoundError:
            current.files[resolved] = None
        except OSError as e:
            logger.warning("Could not snapshot %s: %s", resolved, e)
            return False
        logger.debug("Checkpointed %s for turn %s", resolved, current.turn_id)
        return True

    def has_turn(self, turn_id: str) -> bool:
        return any(t.turn_id == turn_id for t in self._turns)

    def rewind_to(self, turn_id: str) -> list[str]:
        """Restore files to their state at the start of ``turn_id``.

        Turns are undone latest first so a file touched in several turns ends
        up with its oldest snapshot. The checkpoint of ``turn_id`` itself is
        kept: it still describes the state at that turn's start, so a later
        undo can rewind to the same turn again.

        Returns:
            Paths of the restored files

        Raises:
            KeyError: If no checkpoint exists for ``turn_id``
            OSError: If a file cannot be restored
        """
        index = next(
            (i for i, t in enumerate(self._turns) if t.turn_id == turn_id), None
        )
        if index is None:
            raise KeyError(turn_id)

        restored: dict[Path, None] = {}
        for checkpoint in reversed(self._turns[index:]):
            for path, original in checkpoint.files.items():
                if original is None:
                    path.unlink(missing_ok=True)
                else:
                    path.parent.mkdir(parents=True, exist_ok=True)
                    path.write_bytes(original)
                restored[path] = None
        del self._turns[index + 1 :]
        logger.info("Rewound %d file(s) to turn %s", len(restored), turn_id)
        return [str(p) for p in restored]

    def _resolve(self, path: str | Path) -> Path:
        candidate = Path(path).expanduser()
        if not candidate.is_absolute():
            candidate = self._cwd / candidate
        return candidate
