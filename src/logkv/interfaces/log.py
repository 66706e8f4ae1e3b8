"""Protocol definitions for the append-only store file."""

from __future__ import annotations

from collections.abc import Iterator
from typing import Protocol, runtime_checkable

from ..core.types import Offset, Record


@runtime_checkable
class LogWriter(Protocol):
    """Protocol for appending to the store file."""

    def append(self, record: Record) -> Offset:
        """Append a record.

        Returns:
            Byte offset at which the record starts

        Invariants:
            - Must be durable on return if fsync_every_write is True
            - A failed append leaves no bytes behind
        """
        ...

    def sync(self) -> None:
        """Force data to disk (fsync)."""
        ...

    def truncate(self, offset: Offset) -> None:
        """Cut the file back to offset bytes."""
        ...

    def close(self) -> None:
        """Close writer and release resources."""
        ...


@runtime_checkable
class LogReader(Protocol):
    """Protocol for replaying the store file."""

    def iterate(self) -> Iterator[Record]:
        """Iterate records in append order; a torn final record is skipped."""
        ...

    def iter_with_offsets(self) -> Iterator[tuple[Offset, Record]]:
        """Iterate (offset, record) pairs in append order."""
        ...
