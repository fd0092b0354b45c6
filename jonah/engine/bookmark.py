from __future__ import annotations

import logging
import re
from typing import Callable, Iterable, List, Optional

from .errors import EmptyToken, MalformedToken

logger = logging.getLogger(__name__)

MARKER = "#"
SEPARATOR = "."
_DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"
_SEGMENT_RE = re.compile(r"[0-9a-zA-Z]+")


def to_base36(n: int) -> str:
    if n < 0:
        raise ValueError(f"passage id must be non-negative, got {n}")
    if n == 0:
        return "0"
    out = []
    while n:
        n, r = divmod(n, 36)
        out.append(_DIGITS[r])
    return "".join(reversed(out))


def encode(ids: Iterable[int]) -> str:
    """`[120, 25, 1]` -> `#3c.p.1`; an empty sequence encodes to `#`."""
    return MARKER + SEPARATOR.join(to_base36(int(i)) for i in ids)


def decode(token: Optional[str]) -> List[int]:
    """Parse a fragment back into passage ids, oldest first.

    Raises EmptyToken when there is no fragment at all and MalformedToken when
    a segment is not base-36.

    Uppercase digits and leading zeros are accepted (`#A`, `#01`) but such
    tokens are not canonical: encode() writes them back as `#a` and `#1`.
    """
    if not token:
        raise EmptyToken(token)
    body = token[1:] if token.startswith(MARKER) else token
    if body == "":
        return []
    ids: List[int] = []
    for seg in body.split(SEPARATOR):
        if not _SEGMENT_RE.fullmatch(seg):
            raise MalformedToken(token, seg)
        ids.append(int(seg, 36))
    return ids


class Location:
    """Holder of the current bookmark fragment (the page URL's `#...`)."""

    def __init__(self, fragment: str = "") -> None:
        self._fragment = ""
        self._listeners: List[Callable[[str], None]] = []
        self.fragment = fragment

    @property
    def fragment(self) -> str:
        return self._fragment

    @fragment.setter
    def fragment(self, value: Optional[str]) -> None:
        value = (value or "").strip()
        if value and not value.startswith(MARKER):
            value = MARKER + value
        if value == MARKER:
            # browsers report a bare "#" as no fragment
            value = ""
        if value == self._fragment:
            return
        self._fragment = value
        logger.debug(f"location fragment -> {value!r}")
        for fn in list(self._listeners):
            fn(value)

    def on_change(self, fn: Callable[[str], None]) -> Callable[[], None]:
        self._listeners.append(fn)

        def unsubscribe() -> None:
            if fn in self._listeners:
                self._listeners.remove(fn)
        return unsubscribe
