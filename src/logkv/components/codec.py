"""Record codec.

Encodes and decodes single log records using length-prefixed framing, so keys
and values may contain any byte (newlines and delimiters included).
"""

from __future__ import annotations

import struct
from typing import BinaryIO

from ..core.errors import CorruptRecord, InvalidKey, RecordTooLarge, TruncatedRecord
from ..core.types import Key, Op, Record, Value

# Record format:
# [tag (1B)] [key_len (4B, big-endian)] [key bytes]
# then, for SET only: [value_len (4B, big-endian)] [value bytes]
TAG = struct.Struct(">B")
LENGTH = struct.Struct(">I")
MAX_LENGTH = 2**32 - 1


def _check_key(key: Key) -> None:
    if not isinstance(key, (bytes, bytearray, memoryview)):
        raise InvalidKey(f"Key must be bytes, got {type(key).__name__}")
    if len(key) == 0:
        raise InvalidKey("Key must not be empty")
    if len(key) > MAX_LENGTH:
        raise RecordTooLarge(f"Key length {len(key)} exceeds {MAX_LENGTH}")


def encode(record: Record) -> bytes:
    """Serialize a record to its on-disk bytes."""
    _check_key(record.key)
    payload = bytearray(TAG.pack(record.op))
    payload += LENGTH.pack(len(record.key))
    payload += record.key

    if record.op == Op.SET:
        value: Value | None = record.value
        if value is None:
            raise CorruptRecord("SET record without a value")
        if len(value) > MAX_LENGTH:
            raise RecordTooLarge(f"Value length {len(value)} exceeds {MAX_LENGTH}")
        payload += LENGTH.pack(len(value))
        payload += value

    return bytes(payload)


def _parse_tag(tag: int) -> Op:
    try:
        return Op(tag)
    except ValueError:
        raise CorruptRecord(f"Unknown record tag: {tag:#x}") from None


def decode_from(buf: bytes, offset: int = 0) -> tuple[Record, int]:
    """Decode the record starting at ``offset``.

    Returns:
        (record, offset just past the record)

    Raises:
        TruncatedRecord: a declared length runs past the end of ``buf``
        CorruptRecord: the tag is unknown or the key is empty
    """
    view = memoryview(buf)
    end = len(view)

    def take(n: int, what: str) -> memoryview:
        nonlocal offset
        if offset + n > end:
            raise TruncatedRecord(
                f"Partial {what}: need {n} bytes at offset {offset}, have {end - offset}"
            )
        chunk = view[offset : offset + n]
        offset += n
        return chunk

    op = _parse_tag(TAG.unpack(take(TAG.size, "tag"))[0])

    key_len = LENGTH.unpack(take(LENGTH.size, "key_len"))[0]
    if key_len == 0:
        raise CorruptRecord(f"Zero-length key at offset {offset - LENGTH.size}")
    key = bytes(take(key_len, "key"))

    if op == Op.TOMBSTONE:
        return Record(op, key), offset

    value_len = LENGTH.unpack(take(LENGTH.size, "value_len"))[0]
    value = bytes(take(value_len, "value"))
    return Record(op, key, value), offset


def decode(buf: bytes) -> Record:
    """Decode a buffer holding exactly one record."""
    record, end = decode_from(buf)
    if end != len(buf):
        raise CorruptRecord(f"{len(buf) - end} trailing bytes after record")
    return record


def read_record(stream: BinaryIO) -> Record | None:
    """Read the next record from a binary stream.

    Returns None at a clean end of stream (no bytes left). A record cut off
    part-way raises TruncatedRecord.
    """
    tag_bytes = stream.read(TAG.size)
    if len(tag_bytes) == 0:
        return None  # EOF
    op = _parse_tag(TAG.unpack(tag_bytes)[0])

    key_len = _unpack_length(stream, "key_len")
    if key_len == 0:
        raise CorruptRecord("Zero-length key")
    key = _read_exact(stream, key_len, "key")

    if op == Op.TOMBSTONE:
        return Record(op, key)

    value_len = _unpack_length(stream, "value_len")
    value = _read_exact(stream, value_len, "value")
    return Record(op, key, value)


def _read_exact(stream: BinaryIO, n: int, what: str) -> bytes:
    data = stream.read(n)
    if len(data) < n:
        raise TruncatedRecord(f"Partial {what} at EOF: wanted {n} bytes, got {len(data)}")
    return data


def _unpack_length(stream: BinaryIO, what: str) -> int:
    return LENGTH.unpack(_read_exact(stream, LENGTH.size, what))[0]
