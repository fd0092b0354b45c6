from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional


@dataclass
class Fade:
    """A container fade advanced from the renderer's frame loop.

    Unlike a blocking fade, this only computes alpha for `now`; the loop keeps
    running (and handling input) while it plays. on_complete fires once, on
    the first tick at or past the end.
    """

    direction: str  # "in" | "out"
    start_ms: int
    duration_ms: int
    on_complete: Optional[Callable[[], None]] = None
    done: bool = False

    def progress(self, now_ms: int) -> float:
        if self.duration_ms <= 0:
            return 1.0
        t = (now_ms - self.start_ms) / self.duration_ms
        return max(0.0, min(1.0, t))

    def alpha(self, now_ms: int) -> float:
        """Opacity of the passages container, 0.0 .. 1.0."""
        t = self.progress(now_ms)
        return 1.0 - t if self.direction == "out" else t

    def tick(self, now_ms: int) -> bool:
        """Advance; returns True when the fade has finished."""
        if self.done:
            return True
        if self.progress(now_ms) >= 1.0:
            self.done = True
            if self.on_complete is not None:
                cb, self.on_complete = self.on_complete, None
                cb()
        return self.done
