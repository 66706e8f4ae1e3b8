"""Append-only store file.

Provides the durable, crash-safe log that is the store's source of truth.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Iterator

from ..core.errors import CorruptRecord, StoreIOError, TruncatedRecord
from ..core.types import Offset, Record
from . import codec

logger = logging.getLogger(__name__)


class SimpleLogFile:
    """Append-only log of encoded records.

    Args:
        path: Path to the store file
        fsync_every_write: Whether to fsync after each append

    Invariants:
        - Appends either land completely or are cut back off the file
        - A partial record at EOF ends iteration without error
        - Records are returned in append order
    """

    def __init__(self, path: str | Path, fsync_every_write: bool = True):
        self.path = Path(path)
        self.fsync_every_write = fsync_every_write
        self.valid_end: Offset = 0
        self._fd = None
        self._size: int = 0
        self._open_for_write()

    def _open_for_write(self) -> None:
        """Open the store file for appending, creating it if needed."""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._fd = open(self.path, "ab")
            self._fd.seek(0, os.SEEK_END)
            self._size = self._fd.tell()
        except OSError as e:
            raise StoreIOError(f"Failed to open {self.path}: {e}") from e
        logger.debug(f"Opened log {self.path} at offset {self._size}")

    def reopen(self) -> None:
        """Reopen a closed writer on the same path."""
        if self._fd is None:
            self._open_for_write()

    @property
    def closed(self) -> bool:
        return self._fd is None

    @property
    def size(self) -> int:
        """Bytes in the file, as seen by this writer."""
        return self._size

    def append(self, record: Record) -> Offset:
        """Append a record.

        Returns:
            Byte offset at which the record starts

        Raises:
            StoreIOError: the write or fsync failed; the file is cut back to
                its size before the call
        """
        if self._fd is None:
            raise StoreIOError("Log is closed")

        data = codec.encode(record)
        offset = self._size
        try:
            self._fd.write(data)
            if self.fsync_every_write:
                self.sync()
            else:
                self._fd.flush()
        except OSError as e:
            self._rollback(offset)
            raise StoreIOError(f"Append to {self.path} failed: {e}") from e

        self._size = offset + len(data)
        logger.debug(f"Appended {record.op.name} at offset={offset}, key_len={len(record.key)}")
        return offset

    def _rollback(self, offset: Offset) -> None:
        """Best-effort removal of a half-written record."""
        try:
            self.truncate(offset)
        except StoreIOError:
            logger.exception(f"Could not roll {self.path} back to offset {offset}")

    def sync(self) -> None:
        """Force data to disk (fsync)."""
        if self._fd:
            self._fd.flush()
            os.fsync(self._fd.fileno())

    def truncate(self, offset: Offset) -> None:
        """Cut the file back to ``offset`` bytes and make it durable."""
        if self._fd is None:
            raise StoreIOError("Log is closed")
        try:
            self._fd.flush()
            os.ftruncate(self._fd.fileno(), offset)
            os.fsync(self._fd.fileno())
        except OSError as e:
            raise StoreIOError(f"Truncate of {self.path} failed: {e}") from e
        self._size = offset
        logger.info(f"Truncated {self.path} to {offset} bytes")

    def close(self) -> None:
        """Close writer and release resources."""
        if self._fd:
            try:
                self.sync()
            finally:
                self._fd.close()
                self._fd = None
            logger.info(f"Closed log {self.path}")

    def iter_with_offsets(self) -> Iterator[tuple[Offset, Record]]:
        """Iterate (offset, record) pairs in append order.

        Stops silently at a partial record at EOF; ``valid_end`` is left at the
        end of the last complete record. Any other decoding problem raises
        CorruptRecord.
        """
        self.valid_end = 0
        if not self.path.exists():
            return

        with open(self.path, "rb") as f:
            offset = 0
            while True:
                try:
                    record = codec.read_record(f)
                except TruncatedRecord as e:
                    logger.warning(f"Partial record at offset {offset} in {self.path}, skipping: {e}")
                    break
                except CorruptRecord as e:
                    raise CorruptRecord(f"{self.path} at offset {offset}: {e}") from e
                if record is None:
                    break  # EOF
                yield offset, record
                offset = f.tell()
                self.valid_end = offset

    def iterate(self) -> Iterator[Record]:
        """Iterate records in append order, skipping a partial record at EOF."""
        for _offset, record in self.iter_with_offsets():
            yield record

    def __iter__(self) -> Iterator[Record]:
        return self.iterate()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
