"""Chat session: one turn at a time against an agent runtime."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence

from .data_structures import ContentBlock, ImageBlock, Message, PendingImage, TextBlock
from .errors import StreamError, TurnInProgressError, UndoUnavailable
from .events import InitEvent
from .images import persist_image
from .runtime import AgentRuntime
from .transcript import TranscriptAccumulator

logger = logging.getLogger(__name__)

__all__ = ["ChatSession", "compose_prompt"]


def compose_prompt(text: str, image_paths: Sequence[str]) -> str:
    """Prompt text sent to the agent, with attached images referenced by path."""
    if not image_paths:
        return text
    refs = "\n".join(f"[Attached image: {path}]" for path in image_paths)
    return f"{text}\n\n{refs}" if text else refs


class ChatSession:
    """Drives turns through a runtime and records them in a transcript.

    Args:
        runtime: The agent backend, or None when no connection is available
        transcript: Accumulator to record into (a fresh one by default)
        on_update: Called after every change made while a turn streams
        on_session_id: Called when the runtime reports its session id
    """

    def __init__(
        self,
        runtime: AgentRuntime | None,
        transcript: TranscriptAccumulator | None = None,
        on_update: Callable[[], None] | None = None,
        on_session_id: Callable[[str], None] | None = None,
    ) -> None:
        self.runtime = runtime
        self.transcript = transcript if transcript is not None else TranscriptAccumulator()
        self._on_update = on_update
        self._on_session_id = on_session_id

    @property
    def is_active(self) -> bool:
        return self.transcript.is_active

    async def send(self, text: str, images: Sequence[PendingImage] = ()) -> None:
        """Run one turn to completion.

        Failures end the turn with an ``Error:`` system message instead of
        propagating.

        Raises:
            TurnInProgressError: If a turn is already active
        """
        if self.transcript.is_active:
            raise TurnInProgressError("a turn is already in progress")

        blocks: list[ContentBlock] = []
        paths: list[str] = []
        for image in images:
            path = str(persist_image(image))
            paths.append(path)
            blocks.append(ImageBlock(id=image.id, media_type=image.media_type, payload_ref=path))
        if blocks:
            blocks.append(TextBlock(text))
            self.transcript.begin_turn(blocks)
        else:
            self.transcript.begin_turn(text)
        self._notify()

        if self.runtime is None:
            self.transcript.fail("No agent runtime is connected")
            self._notify()
            return

        stream = self.runtime.stream(compose_prompt(text, paths))
        try:
            async for event in stream:
                # interrupt() already closed the turn
                if not self.transcript.is_active:
                    break
                if self.transcript.apply(event):
                    if isinstance(event, InitEvent) and self._on_session_id:
                        self._on_session_id(event.session_id)
                    self._notify()
        except StreamError as e:
            logger.warning("Stream failed: %s", e)
            self.transcript.fail(e)
        except Exception as e:
            logger.exception("Unexpected error during turn")
            self.transcript.fail(e)
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()

        if self.transcript.is_active:
            self.transcript.fail("Agent stream ended without a result")
        self._notify()

    async def interrupt(self) -> bool:
        """Stop the active turn.

        Returns:
            False when no turn was active; nothing changes in that case
        """
        if not self.transcript.is_active:
            return False
        if self.runtime is not None:
            try:
                await self.runtime.interrupt()
            except Exception as e:
                logger.warning("Interrupt failed: %s", e)
        self.transcript.interrupted()
        self._notify()
        return True

    async def undo(self) -> Message:
        """Revert the files changed by the most recent turn.

        The transcript is never rewritten; the outcome is reported as a
        system message, which is returned.
        """
        try:
            files = await self._rewind()
        except UndoUnavailable as e:
            message = self.transcript.add_system(str(e))
        except Exception as e:
            logger.warning("Undo failed: %s", e)
            message = self.transcript.add_system(f"Undo failed: {e}")
        else:
            self.transcript.pop_turn_id()
            message = self.transcript.add_system(
                f"Undo successful. {len(files)} files reverted."
            )
        self._notify()
        return message

    async def close(self) -> None:
        if self.runtime is not None:
            await self.runtime.close()

    async def _rewind(self) -> tuple[str, ...]:
        turn_ids = self.transcript.turn_ids
        if len(turn_ids) < 2 or self.runtime is None:
            raise UndoUnavailable("Nothing to undo.")
        result = await self.runtime.rewind_files(turn_ids[-2])
        if not result.can_rewind:
            raise UndoUnavailable(f"Cannot undo: {result.error or 'Unknown error'}")
        return result.files_changed

    def _notify(self) -> None:
        if self._on_update is not None:
            self._on_update()
