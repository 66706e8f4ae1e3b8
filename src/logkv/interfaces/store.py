"""Protocol definition for the key-value store."""

from __future__ import annotations

from collections.abc import Iterator
from typing import Protocol, runtime_checkable

from ..core.types import Key, StoreStats, Value


@runtime_checkable
class KVStore(Protocol):
    """Public API for the storage engine."""

    def put(self, key: Key, value: Value) -> None:
        """Durable insert/update; raises InvalidKey for an empty key."""
        ...

    def get(self, key: Key) -> Value:
        """Return the current value; raises NotFound."""
        ...

    def delete(self, key: Key) -> None:
        """Produce a tombstone; raises NotFound if the key is absent."""
        ...

    def keys(self) -> Iterator[Key]:
        """Snapshot of live keys."""
        ...

    def compact(self) -> StoreStats:
        """Rewrite the store file with live keys only (administrative)."""
        ...

    def close(self) -> None:
        """Flush and release resources."""
        ...
