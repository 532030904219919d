"""Viewport scrolling over estimated message weights.

Offsets are measured in estimated lines from the top of the transcript. The
viewport shows ``height`` lines starting at ``offset``; ``max_scroll`` is the
offset that puts the last line at the bottom of the screen.

While ``auto_follow`` is set the offset is pinned to ``max_scroll`` on every
recompute, so new and growing messages stay in view. Any upward scroll clears
it; scrolling back down to ``max_scroll`` sets it again.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import NamedTuple

__all__ = [
    "SCROLL_STEP",
    "ScrollState",
    "VisibleSlice",
    "max_scroll",
    "visible_range",
    "Viewport",
]

# Lines moved per Shift+Up / Shift+Down
SCROLL_STEP = 3


@dataclass(frozen=True)
class ScrollState:
    """Scroll position. ``offset`` is kept within ``[0, max_scroll]``."""

    offset: int = 0
    auto_follow: bool = True


class VisibleSlice(NamedTuple):
    """Messages ``[start, end)`` to render, skipping ``skip`` leading lines."""

    start: int
    end: int
    skip: int


def max_scroll(weights: Sequence[int], height: int) -> int:
    """Largest valid offset for the given weights and viewport height."""
    return max(0, sum(weights) - height)


def visible_range(weights: Sequence[int], height: int, offset: int) -> tuple[int, int]:
    """Compute the half-open message range covering ``height`` lines at ``offset``.

    ``start`` is the smallest index whose cumulative weight (inclusive, from
    index 0) reaches ``offset``. From there weights are accumulated until the
    running sum exceeds ``height``; the message that overflows is included so
    a partially visible message is still rendered.

    Examples:
        >>> visible_range([3, 2, 4, 2], 5, 6)
        (2, 4)
        >>> visible_range([5], 5, 0)
        (0, 1)
    """
    if height <= 0:
        raise ValueError(f"viewport height must be positive, got {height}")
    n = len(weights)
    start = n
    cumulative = 0
    for i, weight in enumerate(weights):
        cumulative += weight
        if cumulative >= offset:
            start = i
            break

    end = n
    running = 0
    for j in range(start, n):
        running += weights[j]
        if running > height:
            end = j + 1
            break
    return start, end


class Viewport:
    """Scroll state plus the weights and height it was last computed for."""

    def __init__(self, height: int, page_overlap: int = 1) -> None:
        if height <= 0:
            raise ValueError(f"viewport height must be positive, got {height}")
        self._height = height
        self._page_overlap = page_overlap
        self._weights: tuple[int, ...] = ()
        self.state = ScrollState()

    # -------------------------------------------------------------------------
    # Derived values
    # -------------------------------------------------------------------------

    @property
    def height(self) -> int:
        return self._height

    @property
    def weights(self) -> tuple[int, ...]:
        return self._weights

    @property
    def offset(self) -> int:
        return self.state.offset

    @property
    def auto_follow(self) -> bool:
        return self.state.auto_follow

    @property
    def max_scroll(self) -> int:
        return max_scroll(self._weights, self._height)

    @property
    def page_size(self) -> int:
        return max(1, self._height - self._page_overlap)

    @property
    def show_indicator(self) -> bool:
        """True when there is newer content below the visible area."""
        limit = self.max_scroll
        return limit > 0 and self.state.offset < limit

    def visible_range(self) -> tuple[int, int]:
        return visible_range(self._weights, self._height, self.state.offset)

    def visible_slice(self) -> VisibleSlice:
        """The visible range plus the lines of ``start`` scrolled off the top."""
        start, end = self.visible_range()
        before = sum(self._weights[:start])
        return VisibleSlice(start, end, max(0, self.state.offset - before))

    # -------------------------------------------------------------------------
    # Updates
    # -------------------------------------------------------------------------

    def recompute(self, weights: Sequence[int]) -> ScrollState:
        """Adopt new weights, clamping the offset or pinning it with auto-follow."""
        self._weights = tuple(weights)
        return self._settle(self.state.offset)

    def resize(self, height: int) -> ScrollState:
        if height <= 0:
            raise ValueError(f"viewport height must be positive, got {height}")
        self._height = height
        return self._settle(self.state.offset)

    def scroll_up(self, lines: int = SCROLL_STEP) -> ScrollState:
        offset = min(max(0, self.state.offset - lines), self.max_scroll)
        self.state = ScrollState(offset=offset, auto_follow=False)
        return self.state

    def scroll_down(self, lines: int = SCROLL_STEP) -> ScrollState:
        limit = self.max_scroll
        offset = min(limit, max(0, self.state.offset + lines))
        self.state = ScrollState(offset=offset, auto_follow=offset >= limit)
        return self.state

    def page_up(self) -> ScrollState:
        return self.scroll_up(self.page_size)

    def page_down(self) -> ScrollState:
        return self.scroll_down(self.page_size)

    def scroll_to_bottom(self) -> ScrollState:
        self.state = ScrollState(offset=self.max_scroll, auto_follow=True)
        return self.state

    def _settle(self, offset: int) -> ScrollState:
        limit = self.max_scroll
        if self.state.auto_follow:
            self.state = ScrollState(offset=limit, auto_follow=True)
        else:
            self.state = ScrollState(offset=min(max(0, offset), limit), auto_follow=False)
        return self.state
