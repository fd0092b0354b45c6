from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Iterator, List, Optional

from ..story.model import Passage
from .errors import OutOfRange, RewindTargetNotFound
from .values import Bindings

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class Snapshot:
    """The state of the story immediately after `passage` was shown."""

    passage: Optional[Passage]
    variables: Bindings = field(default_factory=Bindings)


class SnapshotStack:
    """History of visited states; index 0 is the live passage.

    The deepest entry is always the pre-story snapshot (no passage, no
    variables) and is never removed.
    """

    def __init__(self) -> None:
        self._items: List[Snapshot] = [Snapshot(None)]

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[Snapshot]:
        return iter(self._items)

    @property
    def top(self) -> Snapshot:
        return self._items[0]

    def push(self, passage: Passage) -> Snapshot:
        snap = Snapshot(passage, self._items[0].variables.copy())
        self._items.insert(0, snap)
        return snap

    def peek(self, i: int = 0) -> Snapshot:
        if i < 0 or i >= len(self._items):
            raise OutOfRange(i, len(self._items))
        return self._items[i]

    def index_of(self, predicate: Callable[[Passage], bool]) -> int:
        """Index of the newest snapshot whose passage satisfies predicate, or -1."""
        for i, snap in enumerate(self._items):
            if snap.passage is not None and predicate(snap.passage):
                return i
        return -1

    def truncate_until(
        self,
        predicate: Callable[[Passage], bool],
        on_remove: Optional[Callable[[Snapshot], None]] = None,
        *,
        target: str = "?",
    ) -> List[Snapshot]:
        """Drop snapshots from the front until predicate holds for the top.

        Nothing is removed when no snapshot matches; RewindTargetNotFound is
        raised instead.
        """
        if self.index_of(predicate) < 0:
            raise RewindTargetNotFound(target)
        removed: List[Snapshot] = []
        while self._items[0].passage is None or not predicate(self._items[0].passage):
            snap = self._items.pop(0)
            removed.append(snap)
            if on_remove is not None:
                on_remove(snap)
        return removed

    def reset_top_variables_from(self, i: int) -> None:
        self._items[0].variables = self.peek(i).variables.copy()

    def passages_oldest_first(self, until_index: int = 0) -> List[Passage]:
        """Passages from the deepest snapshot up to and including until_index."""
        self.peek(until_index)
        return [s.passage for s in reversed(self._items[until_index:]) if s.passage is not None]

    def discard_newer_than(self, length: int) -> List[Snapshot]:
        """Drop front entries until only the `length` oldest remain."""
        length = max(1, length)
        if len(self._items) <= length:
            return []
        cut = len(self._items) - length
        dropped, self._items = self._items[:cut], self._items[cut:]
        logger.debug(f"discarded {len(dropped)} snapshot(s)")
        return dropped

    def clear(self) -> None:
        self._items = [Snapshot(None)]
