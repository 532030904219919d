"""Runs one interactive element at the bottom of the terminal.

The chat screen draws its own elements inside the Live display. This manager
is for prompts shown before that screen exists, such as the first-run model
picker.
"""

from __future__ import annotations

import asyncio
from typing import Any, TypeVar

from .base import ActiveElement
from .terminal import ANSI, RawInputReader, TerminalRegion

T = TypeVar("T")

# How long the final state stays visible before the region is cleared
HOLD_SECONDS = 0.15


class ElementManager:
    """Runs elements one at a time against a terminal region and key reader.

    The region and reader are created on first use, so a manager can be built
    without a TTY.
    """

    def __init__(
        self,
        region: TerminalRegion | None = None,
        input_reader: RawInputReader | None = None,
    ) -> None:
        self._region = region
        self._input = input_reader
        self._active: ActiveElement[Any] | None = None

    @property
    def active(self) -> ActiveElement[Any] | None:
        return self._active

    @staticmethod
    def _frame(element: ActiveElement[Any]) -> list[str]:
        width = ANSI.get_terminal_width()
        lines: list[str] = []
        for line in element.get_lines(width):
            lines.extend(ANSI.wrap_to_width(line, width))
        # The region must fit on screen with the cursor row below it
        return lines[: max(1, ANSI.get_terminal_height() - 1)]

    async def run(self, element: ActiveElement[T]) -> T | None:
        """Show ``element`` until it completes.

        Returns:
            The element's result, or None if it was cancelled

        Raises:
            RuntimeError: If another element is already running
        """
        if self._active is not None:
            raise RuntimeError("Another element is already active")
        if self._region is None:
            self._region = TerminalRegion()
        if self._input is None:
            self._input = RawInputReader()
        region, reader = self._region, self._input

        self._active = element
        element.on_activate()
        reader.start()
        try:
            lines = self._frame(element)
            region.activate(len(lines))
            region.render(lines)
            # Drop keys typed while the first frame was drawn
            reader.flush()

            while True:
                done, result = element.handle_input(await reader.read())
                lines = self._frame(element)
                region.update_size(len(lines))
                region.render(lines)
                if done:
                    await asyncio.sleep(HOLD_SECONDS)
                    return result
        finally:
            reader.stop()
            element.on_deactivate()
            region.deactivate()
            self._active = None
