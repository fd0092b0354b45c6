from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Union

from ..engine.errors import UnknownPassage

logger = logging.getLogger(__name__)

MISSING_TEXT = "@@This passage does not exist.@@"

_BRACKETED_RE = re.compile(r"\[\[([^\]]*)\]\]|(\S+)")


def read_bracketed_list(text: str) -> List[str]:
    """Split a TiddlyWiki-style list: words, or [[multi word]] entries."""
    out: List[str] = []
    for m in _BRACKETED_RE.finditer(text or ""):
        item = m.group(1) if m.group(1) is not None else m.group(2)
        if item:
            out.append(item)
    return out


def unescape_line_breaks(text: Optional[str]) -> str:
    # store areas keep passage bodies on one line with literal "\n"
    if not text:
        return ""
    return text.replace("\\n", "\n").replace("\r", "")


@dataclass(eq=False)
class Passage:
    """One unit of story content.

    `initial_text` never changes after loading; `text` is what renders next and
    may be rewritten in place (e.g. by consumed choices) until reset().
    """

    title: str
    initial_text: str = MISSING_TEXT
    id: Optional[int] = None
    tags: List[str] = field(default_factory=list)
    text: str = field(init=False)

    def __post_init__(self) -> None:
        self.text = self.initial_text

    @property
    def bookmarkable(self) -> bool:
        # id 0 is the catalog's first entry and, like an absent id, is never encoded
        return bool(self.id)

    def reset(self) -> None:
        logger.debug(f'resetting "{self.title}"')
        self.text = self.initial_text

    def __repr__(self) -> str:
        return f"Passage({self.title!r}, id={self.id})"


Identifier = Union[str, int]


class Story:
    """Read-only catalog of passages, addressable by title or by id."""

    def __init__(self, passages: Optional[List[Passage]] = None, title: Optional[str] = None) -> None:
        self.title = title
        self._by_title: Dict[str, Passage] = {}
        self._by_id: Dict[int, Passage] = {}
        for p in passages or []:
            self.add(p)

    def add(self, passage: Passage) -> Passage:
        if passage.title in self._by_title:
            logger.warning(f'duplicate passage "{passage.title}"; keeping the later one')
        self._by_title[passage.title] = passage
        if passage.id is not None:
            self._by_id[passage.id] = passage
        return passage

    def has(self, identifier: Identifier) -> bool:
        if isinstance(identifier, bool):
            return False
        if isinstance(identifier, int):
            return identifier in self._by_id
        return identifier in self._by_title

    def get(self, identifier: Identifier) -> Passage:
        if not self.has(identifier):
            raise UnknownPassage(identifier)
        if isinstance(identifier, int):
            return self._by_id[identifier]
        return self._by_title[identifier]

    def passages(self) -> List[Passage]:
        return list(self._by_title.values())

    def reset_all(self) -> None:
        for p in self._by_title.values():
            p.reset()

    def __len__(self) -> int:
        return len(self._by_title)

    def __iter__(self) -> Iterator[Passage]:
        return iter(self._by_title.values())

    def __contains__(self, identifier: object) -> bool:
        return isinstance(identifier, (str, int)) and self.has(identifier)
