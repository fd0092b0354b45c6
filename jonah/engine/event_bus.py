from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Callable, DefaultDict, Dict, List

logger = logging.getLogger(__name__)


class EventBus:
    """
    Tiny pub/sub between History and whatever shell hosts it.

    Events emitted by History:
    - history.display  title, mode
    - history.rewind   title, depth
    - history.save     title, token
    - history.restore  ok, token, count

    - subscribe(name, fn): register a callback, returns an unsubscribe function
    - unsubscribe(name, fn): remove callback
    - emit(name, **data): fire event with keyword payload
    """

    def __init__(self) -> None:
        self._subs: DefaultDict[str, List[Callable[[Dict[str, Any]], None]]] = defaultdict(list)
        self._emit_count: Dict[str, int] = defaultdict(int)

    def subscribe(self, name: str, fn: Callable[[Dict[str, Any]], None]) -> Callable[[], None]:
        if fn not in self._subs[name]:
            self._subs[name].append(fn)

        def unsubscribe():
            self.unsubscribe(name, fn)
        return unsubscribe

    def unsubscribe(self, name: str, fn: Callable[[Dict[str, Any]], None]) -> None:
        try:
            self._subs[name].remove(fn)
        except ValueError:
            pass

    def emit(self, name: str, /, **data: Any) -> None:
        self._emit_count[name] += 1
        for fn in list(self._subs.get(name, [])):
            try:
                fn(dict(data))
            except Exception:
                # a broken listener must not break navigation
                logger.exception(f"listener for {name} failed")

    def listener_count(self, name: str) -> int:
        return len(self._subs.get(name, []))

    def emitted(self, name: str) -> int:
        """How many times `name` has been emitted."""
        return self._emit_count.get(name, 0)

    def clear(self) -> None:
        self._subs.clear()
        self._emit_count.clear()
