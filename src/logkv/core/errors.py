"""Exception hierarchy for logkv.

Defines all custom exceptions used throughout the implementation.
"""

from __future__ import annotations


class StoreError(Exception):
    """Base exception for all store errors."""
    pass


class InvalidKey(StoreError):
    """Raised when a key is empty or not bytes-like."""
    pass


class RecordTooLarge(StoreError):
    """Raised when a key or value does not fit a 4-byte length prefix."""
    pass


class NotFound(StoreError):
    """Raised on get/delete of a key that is not live."""
    pass


class StoreClosed(StoreError):
    """Raised when an operation is attempted on a store that is not open."""
    pass


class CorruptRecord(StoreError):
    """Raised when a record cannot be decoded."""
    pass


class TruncatedRecord(CorruptRecord):
    """Raised when a record's declared length runs past the available bytes."""
    pass


class StoreIOError(StoreError):
    """Raised when the filesystem fails underneath the store."""
    pass


class IOTimeout(StoreIOError):
    """Raised when append/fsync does not complete within the configured timeout."""
    pass


class CompactionError(StoreError):
    """Raised when compaction operations fail."""
    pass


class ConfigError(StoreError):
    """Raised when configuration is invalid."""
    pass
