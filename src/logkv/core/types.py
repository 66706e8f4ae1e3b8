"""Common type definitions for the log-structured store.

Defines fundamental types used across all components.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum

# Core primitive types
Key = bytes
Value = bytes
Offset = int
IndexEntry = tuple[Value, Offset]


class Op(IntEnum):
    """Operation tag stored as the first byte of every record."""

    TOMBSTONE = 0
    SET = 1


@dataclass(frozen=True)
class Record:
    """One durable log entry: a Set(key, value) or a Tombstone(key)."""

    op: Op
    key: Key
    value: Value | None = None

    @classmethod
    def set(cls, key: Key, value: Value) -> Record:
        return cls(Op.SET, bytes(key), bytes(value))

    @classmethod
    def tombstone(cls, key: Key) -> Record:
        return cls(Op.TOMBSTONE, bytes(key))

    @property
    def is_tombstone(self) -> bool:
        return self.op == Op.TOMBSTONE


@dataclass(frozen=True)
class StoreStats:
    """Point-in-time counters describing log health.

    Attributes:
        live_keys: Keys currently present in the index
        total_records: Records in the current log file
        dead_records: Records superseded by a later record (or tombstones)
        file_size: Size of the log file in bytes
    """

    live_keys: int
    total_records: int
    dead_records: int
    file_size: int

    @property
    def dead_ratio(self) -> float:
        if self.total_records == 0:
            return 0.0
        return self.dead_records / self.total_records
