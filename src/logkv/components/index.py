"""In-memory index implementation.

Uses sortedcontainers.SortedDict: hash-table lookups plus key-ordered iteration.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from sortedcontainers import SortedDict

if TYPE_CHECKING:
    from collections.abc import Iterator

    from ..core.types import IndexEntry, Key, Offset, Value


class SimpleIndex:
    """Mapping from live key to (current value, offset of its latest record).

    Holds no persistence logic; the store rebuilds it from the log on open.

    Invariants:
        - Contains exactly the keys whose latest record is a SET
        - keys() is a snapshot, unaffected by later mutation
    """

    def __init__(self):
        self._data: SortedDict = SortedDict()

    def get(self, key: Key) -> Value | None:
        """Return the value for key, or None if absent."""
        entry = self._data.get(key)
        return entry[0] if entry is not None else None

    def offset(self, key: Key) -> Offset | None:
        entry = self._data.get(key)
        return entry[1] if entry is not None else None

    def set(self, key: Key, value: Value, offset: Offset) -> None:
        self._data[key] = (value, offset)

    def remove(self, key: Key) -> bool:
        """Drop key. Returns whether it was present."""
        return self._data.pop(key, None) is not None

    def keys(self) -> Iterator[Key]:
        """Iterate a snapshot of the keys, in sorted order."""
        return iter(list(self._data.keys()))

    def items(self) -> Iterator[tuple[Key, IndexEntry]]:
        """Iterate a snapshot of (key, (value, offset)) in sorted key order."""
        return iter(list(self._data.items()))

    def clear(self) -> None:
        self._data.clear()

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def __len__(self) -> int:
        return len(self._data)
