"""logkv - durable log-structured key-value store."""

from .core.config import StoreConfig, load_config
from .core.errors import (
    StoreError,
    InvalidKey,
    RecordTooLarge,
    NotFound,
    StoreClosed,
    CorruptRecord,
    TruncatedRecord,
    StoreIOError,
    IOTimeout,
    CompactionError,
    ConfigError,
)
from .core.store import SimpleKVStore, StoreState
from .core.types import Key, Value, Op, Record, StoreStats

__version__ = "0.1.0"

__all__ = [
    "StoreConfig",
    "load_config",
    "StoreError",
    "InvalidKey",
    "RecordTooLarge",
    "NotFound",
    "StoreClosed",
    "CorruptRecord",
    "TruncatedRecord",
    "StoreIOError",
    "IOTimeout",
    "CompactionError",
    "ConfigError",
    "SimpleKVStore",
    "StoreState",
    "Key",
    "Value",
    "Op",
    "Record",
    "StoreStats",
]
