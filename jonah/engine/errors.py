from __future__ import annotations

from dataclasses import dataclass
from typing import Any


class HistoryError(Exception):
    """Base class for navigation/bookmark failures raised by the engine."""


@dataclass
class UnknownPassage(HistoryError):
    identifier: Any

    def __str__(self) -> str:
        return f"No passage named or numbered {self.identifier!r}"


@dataclass
class PassageNotInHistory(HistoryError):
    title: str

    def __str__(self) -> str:
        return f'Passage "{self.title}" was never shown'


@dataclass
class RewindTargetNotFound(HistoryError):
    title: str

    def __str__(self) -> str:
        return f'Cannot rewind to "{self.title}": not in history'


@dataclass
class OutOfRange(HistoryError):
    index: int
    length: int

    def __str__(self) -> str:
        return f"Snapshot index {self.index} out of range (history has {self.length})"


@dataclass
class HistoryBusy(HistoryError):
    action: str

    def __str__(self) -> str:
        return f"Cannot {self.action} while a rewind transition is running"


class BookmarkError(HistoryError):
    """Raised when a bookmark token cannot be turned into passage ids."""


@dataclass
class EmptyToken(BookmarkError):
    token: Any = None

    def __str__(self) -> str:
        return "No bookmark present"


@dataclass
class MalformedToken(BookmarkError):
    token: str
    segment: str

    def __str__(self) -> str:
        return f"Bad bookmark {self.token!r}: {self.segment!r} is not a base-36 number"


@dataclass
class MarkupError(Exception):
    message: str
    passage: str | None = None
    source: str | None = None

    def __str__(self) -> str:  # pragma: no cover - formatting
        loc = f' (in "{self.passage}")' if self.passage else ""
        ctx = f"\n  >> {self.source}" if self.source else ""
        return f"{self.message}{loc}{ctx}"


@dataclass
class BindingTypeError(TypeError):
    name: str
    value: Any

    def __str__(self) -> str:
        return f"Variable ${self.name} cannot hold a {type(self.value).__name__}"
