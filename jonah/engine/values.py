from __future__ import annotations

from collections.abc import MutableMapping
from typing import Any, Dict, Iterator, List, Mapping, Optional, Union

from .errors import BindingTypeError

# A story value: string, number, boolean, or a list of story values.
Value = Union[str, int, float, bool, List["Value"]]


def is_value(obj: Any) -> bool:
    if isinstance(obj, (str, bool, int, float)):
        return True
    if isinstance(obj, list):
        return all(is_value(v) for v in obj)
    return False


def copy_value(v: Value) -> Value:
    if isinstance(v, list):
        return [copy_value(x) for x in v]
    return v


class Bindings(MutableMapping):
    """Variable bindings accumulated while passages render.

    Only story values may be stored; anything else raises BindingTypeError so
    that copy() and == stay well defined when histories are replayed.
    """

    def __init__(self, initial: Optional[Mapping[str, Value]] = None) -> None:
        self._data: Dict[str, Value] = {}
        if initial:
            for k, v in initial.items():
                self[k] = v

    def __getitem__(self, name: str) -> Value:
        return self._data[name]

    def __setitem__(self, name: str, value: Value) -> None:
        if not isinstance(name, str) or not is_value(value):
            raise BindingTypeError(str(name), value)
        self._data[name] = copy_value(value)

    def __delitem__(self, name: str) -> None:
        del self._data[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Bindings):
            return self._data == other._data
        if isinstance(other, Mapping):
            return self._data == dict(other)
        return NotImplemented

    def __repr__(self) -> str:
        return f"Bindings({self._data!r})"

    def copy(self) -> "Bindings":
        """Deep value copy; later writes to either side stay independent."""
        return Bindings(self._data)

    def to_dict(self) -> Dict[str, Value]:
        return {k: copy_value(v) for k, v in self._data.items()}
