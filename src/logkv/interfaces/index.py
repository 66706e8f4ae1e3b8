"""Protocol definition for the in-memory index."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Iterator

    from ..core.types import Key, Offset, Value


@runtime_checkable
class Index(Protocol):
    """Key to current value (and log offset) mapping."""

    def get(self, key: Key) -> Value | None:
        """Return the value for key, or None if absent."""
        ...

    def set(self, key: Key, value: Value, offset: Offset) -> None:
        """Insert or update key."""
        ...

    def remove(self, key: Key) -> bool:
        """Drop key; return whether it was present."""
        ...

    def keys(self) -> Iterator[Key]:
        """Snapshot of keys taken at call time."""
        ...

    def __len__(self) -> int:
        ...

    def __contains__(self, key: object) -> bool:
        ...

    def items(self) -> Iterator[tuple[Key, tuple[Value, Offset]]]:
        """Snapshot of (key, (value, offset)) pairs."""
        ...

    def clear(self) -> None:
        ...
