"""Store engine - main public API.

Orchestrates the record codec, the append-only log, the in-memory index and
compaction.
"""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeout
from dataclasses import replace
from enum import Enum
from pathlib import Path
from typing import Iterator

from ..components.compaction import CompactionScheduler, SimpleCompactor, compaction_path
from ..components.index import SimpleIndex
from ..components.logfile import SimpleLogFile
from ..components.rwlock import RWLock
from ..interfaces.index import Index
from .config import StoreConfig
from .errors import (
    CompactionError,
    InvalidKey,
    IOTimeout,
    NotFound,
    StoreClosed,
    StoreError,
    StoreIOError,
)
from .types import Key, Offset, Op, Record, StoreStats, Value

logger = logging.getLogger(__name__)


class StoreState(Enum):
    """Lifecycle of a store instance."""

    CLOSED = "closed"
    RECOVERING = "recovering"
    OPEN = "open"


def _as_key(key: Key) -> bytes:
    if not isinstance(key, (bytes, bytearray, memoryview)):
        raise InvalidKey(f"Key must be bytes, got {type(key).__name__}")
    key = bytes(key)
    if not key:
        raise InvalidKey("Key must not be empty")
    return key


def _as_value(value: Value) -> bytes:
    if not isinstance(value, (bytes, bytearray, memoryview)):
        raise TypeError(f"Value must be bytes, got {type(value).__name__}")
    return bytes(value)


class SimpleKVStore:
    """Durable key-value store over a single append-only file.

    Args:
        config: Store configuration

    Public API:
        - put(key, value): Insert or update, durable on return
        - get(key): Current value, or NotFound
        - delete(key): Write a tombstone, or NotFound
        - keys(): Snapshot of live keys in sorted order
        - compact(): Rewrite the file with live keys only
        - stats(): Record/key counters
        - close(): Flush and release the file

    Invariants:
        - Every mutation is appended (and fsynced) before the index changes
        - Replaying the file in order reproduces the index exactly
        - Reads never observe a half-applied mutation
    """

    def __init__(self, config: StoreConfig):
        self.config = config
        self.path = Path(config.path)
        self._state = StoreState.CLOSED
        self._lock = RWLock()
        self._index: Index = SimpleIndex()
        self._compactor = SimpleCompactor(config)
        self._log: SimpleLogFile | None = None
        self._total_records = 0

        # Timed-out append still running on the I/O thread, with the offset to roll back to
        self._pending: tuple[Future, Offset] | None = None
        self._io_pool: ThreadPoolExecutor | None = None
        if config.io_timeout_seconds is not None:
            self._io_pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="logkv-io")

        self._recover()

        self._scheduler: CompactionScheduler | None = None
        if config.compaction_interval_seconds is not None:
            self._scheduler = CompactionScheduler(
                self, self._compactor, config.compaction_interval_seconds
            )
            self._scheduler.start()

        logger.info(f"Opened store at {self.path}")

    @classmethod
    def open(cls, path: str | Path, config: StoreConfig | None = None) -> SimpleKVStore:
        """Open (or create) the store file at ``path``."""
        config = replace(config, path=str(path)) if config else StoreConfig(path=str(path))
        return cls(config)

    @property
    def state(self) -> StoreState:
        return self._state

    def _recover(self) -> None:
        """Rebuild the index by replaying the log."""
        self._state = StoreState.RECOVERING
        logger.info(f"Starting recovery from {self.path}...")

        stale = compaction_path(self.path)
        log = None
        try:
            if stale.exists():
                logger.warning(f"Removing leftover compaction file {stale}")
                stale.unlink()

            log = SimpleLogFile(self.path, fsync_every_write=self.config.fsync_every_write)
            count = 0
            for offset, record in log.iter_with_offsets():
                if record.op == Op.SET:
                    self._index.set(record.key, record.value, offset)
                else:
                    self._index.remove(record.key)
                count += 1

            if log.valid_end < log.size:
                logger.warning(
                    f"Discarding {log.size - log.valid_end} bytes of torn tail in {self.path}"
                )
                log.truncate(log.valid_end)
        except (OSError, StoreError) as e:
            if log is not None:
                log.close()
            self._index.clear()
            self._state = StoreState.CLOSED
            if isinstance(e, OSError):
                raise StoreIOError(f"Failed to recover {self.path}: {e}") from e
            raise

        self._log = log
        self._total_records = count
        self._state = StoreState.OPEN
        logger.info(f"Recovered {count} records ({len(self._index)} live keys)")

    def _check_open(self) -> None:
        if self._state is not StoreState.OPEN:
            raise StoreClosed(f"Store {self.path} is {self._state.value}")

    def put(self, key: Key, value: Value) -> None:
        """Insert or update key with value; durable once this returns."""
        key = _as_key(key)
        value = _as_value(value)
        record = Record.set(key, value)

        with self._lock.write():
            self._check_open()
            self._settle_pending()
            offset = self._durable_append(record)
            self._index.set(key, value, offset)
            self._total_records += 1
            self._maybe_compact_locked()

    def get(self, key: Key) -> Value:
        """Return the current value for key; raises NotFound if absent."""
        key = _as_key(key)
        with self._lock.read():
            self._check_open()
            value = self._index.get(key)
        if value is None:
            raise NotFound(f"Key not found: {key!r}")
        return value

    def get_or_none(self, key: Key) -> Value | None:
        try:
            return self.get(key)
        except NotFound:
            return None

    def delete(self, key: Key) -> None:
        """Write a tombstone for key; raises NotFound if absent."""
        key = _as_key(key)

        with self._lock.write():
            self._check_open()
            self._settle_pending()
            if key not in self._index:
                raise NotFound(f"Key not found: {key!r}")
            self._durable_append(Record.tombstone(key))
            self._index.remove(key)
            self._total_records += 1
            self._maybe_compact_locked()

    def keys(self) -> Iterator[Key]:
        """Snapshot of live keys, in sorted order."""
        with self._lock.read():
            self._check_open()
            return self._index.keys()

    def stats(self) -> StoreStats:
        with self._lock.read():
            self._check_open()
            return self._stats_locked()

    def _stats_locked(self) -> StoreStats:
        live = len(self._index)
        return StoreStats(
            live_keys=live,
            total_records=self._total_records,
            dead_records=self._total_records - live,
            file_size=self._log.size,
        )

    def compact(self) -> StoreStats:
        """Rewrite the store file with one record per live key.

        Returns:
            Stats after compaction
        """
        with self._lock.write():
            self._check_open()
            self._settle_pending()
            self._compact_locked()
            return self._stats_locked()

    def _compact_locked(self) -> None:
        """Internal compaction (must hold write lock)."""
        try:
            self._log = self._compactor.rewrite(self._log, self._index)
        except CompactionError:
            if self._log.closed:
                # Compacted file installed but not reopened; _durable_append retries
                self._total_records = len(self._index)
            raise
        self._total_records = len(self._index)

    def _maybe_compact_locked(self) -> None:
        if not self.config.auto_compact:
            return
        if not self._compactor.should_compact(self._stats_locked()):
            return
        try:
            self._compact_locked()
        except CompactionError:
            # The mutation itself is durable; a failed rewrite only leaves dead records behind.
            logger.exception("Automatic compaction failed")

    def _durable_append(self, record: Record) -> Offset:
        """Append + fsync, bounded by io_timeout_seconds when configured."""
        if self._log.closed:
            self._log.reopen()
        if self._io_pool is None:
            return self._log.append(record)

        offset_before = self._log.size
        future = self._io_pool.submit(self._log.append, record)
        try:
            return future.result(timeout=self.config.io_timeout_seconds)
        except FuturesTimeout:
            self._pending = (future, offset_before)
            raise IOTimeout(
                f"Append to {self.path} did not complete within "
                f"{self.config.io_timeout_seconds}s"
            ) from None

    def _settle_pending(self) -> None:
        """Wait out a timed-out append and cut it back off the file."""
        if self._pending is None:
            return
        future, offset = self._pending
        self._pending = None
        try:
            future.result()
        except StoreIOError as e:
            logger.warning(f"Timed-out append later failed and was rolled back: {e}")
            return
        self._log.truncate(offset)
        logger.warning(f"Rolled back timed-out append at offset {offset}")

    def close(self) -> None:
        """Flush and release the store file. Safe to call more than once."""
        if self._scheduler is not None:
            self._scheduler.stop()

        with self._lock.write():
            if self._state is StoreState.CLOSED:
                return
            logger.info(f"Closing store {self.path}")
            self._state = StoreState.CLOSED
            try:
                self._settle_pending()
            finally:
                if self._io_pool is not None:
                    self._io_pool.shutdown(wait=True)
                try:
                    self._log.close()
                except OSError as e:
                    raise StoreIOError(f"Failed to close {self.path}: {e}") from e

    def __contains__(self, key: object) -> bool:
        if not isinstance(key, (bytes, bytearray, memoryview)) or not key:
            return False
        with self._lock.read():
            self._check_open()
            return bytes(key) in self._index

    def __len__(self) -> int:
        with self._lock.read():
            self._check_open()
            return len(self._index)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(path={str(self.path)!r}, state={self._state.value})"

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
