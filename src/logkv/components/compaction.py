"""Compaction implementation.

Rewrites the store file so it holds one SET record per live key, replacing
the old file atomically.
"""

from __future__ import annotations

import logging
import os
import threading
from pathlib import Path
from typing import TYPE_CHECKING

from ..core.errors import CompactionError, StoreError
from ..core.types import Record
from .logfile import SimpleLogFile

if TYPE_CHECKING:
    from ..core.config import StoreConfig
    from ..core.store import SimpleKVStore
    from ..core.types import StoreStats
    from ..interfaces.index import Index

logger = logging.getLogger(__name__)

COMPACT_SUFFIX = ".compact"


def compaction_path(path: str | Path) -> Path:
    """Temp file a compaction of ``path`` writes into before the rename."""
    path = Path(path)
    return path.with_name(path.name + COMPACT_SUFFIX)


def _fsync_dir(directory: Path) -> None:
    """Make a rename inside ``directory`` durable (no-op where unsupported)."""
    if not hasattr(os, "O_DIRECTORY"):
        return
    fd = os.open(directory, os.O_RDONLY | os.O_DIRECTORY)
    try:
        os.fsync(fd)
    finally:
        os.close(fd)


class SimpleCompactor:
    """Live-keys-only rewrite of the store file.

    Args:
        config: Store configuration (threshold policy and fsync mode)
    """

    def __init__(self, config: StoreConfig):
        self.config: StoreConfig = config

    def should_compact(self, stats: StoreStats) -> bool:
        """Whether the dead-record ratio justifies a rewrite."""
        if stats.dead_records == 0:
            return False
        if stats.total_records < self.config.compaction_min_records:
            return False
        return stats.dead_ratio > self.config.compaction_dead_ratio

    def rewrite(self, log: SimpleLogFile, index: Index) -> SimpleLogFile:
        """Replace ``log`` with a file holding only the index's live entries.

        The caller must hold the store's exclusive lock. ``log`` is reopened on
        the compacted file and returned; index offsets are updated to point
        into it. If the rename fails the original file is left untouched and
        still open. If only the reopen fails, the compacted file is installed,
        the offsets are already refreshed and ``log`` stays closed.
        """
        path = log.path
        temp_path = compaction_path(path)
        live = len(index)
        logger.info(f"Compacting {path}: {live} live keys, {log.size} bytes")

        offsets = {}
        try:
            temp_path.unlink(missing_ok=True)
            with SimpleLogFile(temp_path, fsync_every_write=False) as out:
                for key, (value, _offset) in index.items():
                    offsets[key] = out.append(Record.set(key, value))
                new_size = out.size
        except (OSError, StoreError) as e:
            temp_path.unlink(missing_ok=True)
            raise CompactionError(f"Failed to write {temp_path}: {e}") from e

        try:
            log.close()
            os.replace(temp_path, path)
        except OSError as e:
            temp_path.unlink(missing_ok=True)
            log.reopen()
            raise CompactionError(f"Failed to install compacted file {path}: {e}") from e

        # From here on the compacted file is the store file
        for key, (value, _offset) in index.items():
            index.set(key, value, offsets[key])
        try:
            _fsync_dir(path.parent)
        except OSError as e:
            logger.warning(f"Could not fsync {path.parent} after compaction: {e}")
        try:
            log.reopen()
        except StoreError as e:
            raise CompactionError(f"Compacted {path} but could not reopen it: {e}") from e

        logger.info(f"Compacted {path} to {new_size} bytes")
        return log


class CompactionScheduler:
    """Background thread that compacts a store when the policy says so.

    Args:
        store: Store to watch
        compactor: Policy used to decide when to compact
        interval_seconds: Time between checks
    """

    def __init__(self, store: SimpleKVStore, compactor: SimpleCompactor, interval_seconds: float):
        self._store = store
        self._compactor = compactor
        self.interval_seconds = interval_seconds
        self._stop_event = threading.Event()
        self._thread = threading.Thread(
            target=self._run, daemon=True, name="CompactionScheduler"
        )

    def start(self) -> None:
        self._thread.start()
        logger.info(f"Compaction scheduler started (interval={self.interval_seconds}s)")

    def stop(self, timeout: float = 5.0) -> None:
        self._stop_event.set()
        if self._thread.is_alive() and self._thread is not threading.current_thread():
            self._thread.join(timeout=timeout)
            if self._thread.is_alive():
                logger.warning("Compaction scheduler did not shut down cleanly")

    @property
    def running(self) -> bool:
        return self._thread.is_alive()

    def _run(self) -> None:
        while not self._stop_event.wait(timeout=self.interval_seconds):
            try:
                if self._compactor.should_compact(self._store.stats()):
                    self._store.compact()
            except Exception:
                # StoreClosed races with shutdown; anything else is logged and retried next tick.
                if self._stop_event.is_set():
                    break
                logger.exception("Background compaction failed")
        logger.info("Compaction scheduler stopped")
