"""Exception taxonomy for mensa.

Every user-visible failure in a chat session ends up as a system message in
the transcript; these exceptions carry the details to the place that writes it.
"""

from __future__ import annotations

__all__ = [
    "MensaError",
    "StreamError",
    "UndoUnavailable",
    "TurnInProgressError",
    "ConfigError",
    "ImageCaptureError",
]


class MensaError(Exception):
    """Base class for all mensa errors."""


class StreamError(MensaError):
    """The agent runtime failed while a turn was streaming.

    Example:
        >>> try:
        ...     async for event in runtime.stream(prompt):
        ...         accumulator.apply(event)
        ... except StreamError as e:
        ...     accumulator.fail(e)
    """

    def __init__(
        self,
        message: str,
        exit_code: int | None = None,
        stderr: str = "",
    ):
        """Initialize StreamError.

        Args:
            message: Human-readable error description
            exit_code: Exit status of the runtime process, if it exited
            stderr: Captured standard error of the runtime process
        """
        self.exit_code = exit_code
        self.stderr = stderr
        super().__init__(message)


class UndoUnavailable(MensaError):
    """Undo was requested but there is nothing the runtime can rewind."""


class TurnInProgressError(MensaError):
    """A new turn was started while another one is still active."""


class ConfigError(MensaError):
    """The config file is missing, unreadable or would be left invalid."""


class ImageCaptureError(MensaError):
    """An image could not be read from the clipboard or from a file."""
