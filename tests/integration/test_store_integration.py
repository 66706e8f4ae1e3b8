"""Integration tests for the store engine.

Tests cover:
1. Point operations and error kinds
2. Durability and last-writer-wins across reopen
3. Recovery from a torn tail and rejection of real corruption
4. Compaction (manual, automatic, background)
5. Concurrency and I/O timeouts
"""

import os
import shutil
import subprocess
import sys
import tempfile
import threading
import time
from pathlib import Path

import pytest

import logkv
from logkv import (
    CorruptRecord,
    InvalidKey,
    IOTimeout,
    NotFound,
    SimpleKVStore,
    StoreClosed,
    StoreConfig,
    StoreIOError,
    StoreState,
)
from logkv.components.compaction import compaction_path
from logkv.interfaces.store import KVStore


@pytest.fixture
def temp_dir():
    """Create temporary directory for tests."""
    tmpdir = tempfile.mkdtemp()
    yield tmpdir
    shutil.rmtree(tmpdir, ignore_errors=True)


@pytest.fixture
def db_path(temp_dir):
    return Path(temp_dir) / "store.db"


@pytest.fixture
def store(db_path):
    """Create store for tests."""
    store = SimpleKVStore.open(db_path)
    yield store
    store.close()


def reopen(db_path, **kwargs):
    return SimpleKVStore(StoreConfig(path=str(db_path), **kwargs))


def test_satisfies_protocol(store):
    assert isinstance(store, KVStore)


def test_basic_put_get(store):
    store.put(b"key1", b"value1")
    store.put(b"key2", b"value2")

    assert store.get(b"key1") == b"value1"
    assert store.get(b"key2") == b"value2"
    assert len(store) == 2
    assert b"key1" in store

    with pytest.raises(NotFound):
        store.get(b"nonexistent")
    assert store.get_or_none(b"nonexistent") is None


def test_empty_value_is_not_delete(store):
    store.put(b"key1", b"")
    assert store.get(b"key1") == b""


def test_invalid_keys(store):
    with pytest.raises(InvalidKey):
        store.put(b"", b"value")
    with pytest.raises(InvalidKey):
        store.put("text", b"value")
    with pytest.raises(TypeError):
        store.put(b"key", "text")
    assert b"" not in store
    assert store.stats().total_records == 0


def test_delete(store):
    store.put(b"key1", b"value1")
    store.delete(b"key1")

    with pytest.raises(NotFound):
        store.get(b"key1")
    with pytest.raises(NotFound):
        store.delete(b"key1")
    # A failed delete writes nothing
    assert store.stats().total_records == 2


def test_keys_sorted_snapshot(store):
    for key in (b"key3", b"key1", b"key2"):
        store.put(key, b"v")

    keys = store.keys()
    store.delete(b"key2")

    assert list(keys) == [b"key1", b"key2", b"key3"]
    assert list(store.keys()) == [b"key1", b"key3"]


def test_state_machine(db_path):
    store = SimpleKVStore.open(db_path)
    assert store.state is StoreState.OPEN

    store.close()
    assert store.state is StoreState.CLOSED
    store.close()  # Idempotent

    for op in (
        lambda: store.put(b"k", b"v"),
        lambda: store.get(b"k"),
        lambda: store.delete(b"k"),
        lambda: store.keys(),
        lambda: store.compact(),
        lambda: store.stats(),
    ):
        with pytest.raises(StoreClosed):
            op()


def test_context_manager(db_path):
    with SimpleKVStore.open(db_path) as store:
        store.put(b"key1", b"value1")
    assert store.state is StoreState.CLOSED

    with SimpleKVStore.open(db_path) as store:
        assert store.get(b"key1") == b"value1"


def test_missing_file_is_empty_store(temp_dir):
    path = Path(temp_dir) / "a" / "b" / "fresh.db"
    with SimpleKVStore.open(path) as store:
        assert list(store.keys()) == []
    assert path.exists()


def test_last_writer_wins_across_reopen(db_path):
    with reopen(db_path) as store:
        store.put(b"k", b"a")
        store.put(b"k", b"b")

    with reopen(db_path) as store:
        assert store.get(b"k") == b"b"


def test_tombstone_survives_reopen(db_path):
    with reopen(db_path) as store:
        store.put(b"k", b"v")
        store.put(b"other", b"x")
        store.delete(b"k")

    with reopen(db_path) as store:
        with pytest.raises(NotFound):
            store.get(b"k")
        assert list(store.keys()) == [b"other"]
        stats = store.stats()
        assert stats.total_records == 3
        assert stats.dead_records == 2


def test_binary_and_delimiter_bytes(db_path):
    """Test keys/values that the old newline/space format could not hold."""
    pairs = {
        b"line\nbreak": b"value\nwith\nnewlines",
        b"has space": b"a b c",
        b"\x00\xff": b"\x00" * 16,
    }
    with reopen(db_path) as store:
        for key, value in pairs.items():
            store.put(key, value)

    with reopen(db_path) as store:
        for key, value in pairs.items():
            assert store.get(key) == value


def test_durability_after_abrupt_exit(db_path):
    """Test that a returned put survives the process dying without close()."""
    script = (
        "import os, sys\n"
        "from logkv import SimpleKVStore\n"
        "store = SimpleKVStore.open(sys.argv[1])\n"
        "store.put(b'k', b'v')\n"
        "os._exit(0)\n"
    )
    src_dir = str(Path(logkv.__file__).resolve().parents[1])
    env = dict(os.environ)
    env["PYTHONPATH"] = os.pathsep.join(filter(None, [src_dir, env.get("PYTHONPATH")]))

    result = subprocess.run(
        [sys.executable, "-c", script, str(db_path)], env=env, capture_output=True, timeout=60
    )
    assert result.returncode == 0, result.stderr

    with reopen(db_path) as store:
        assert store.get(b"k") == b"v"


def test_recovery_from_torn_tail(db_path):
    """Test that a partially written final record is discarded on open."""
    with reopen(db_path) as store:
        store.put(b"key1", b"value1")
        good_size = store.stats().file_size
        store.put(b"key2", b"value2")

    with open(db_path, "r+b") as f:
        f.truncate(good_size + 5)  # Keep a few bytes of the second record

    with reopen(db_path) as store:
        assert list(store.keys()) == [b"key1"]
        # The torn bytes are cut off so new appends start on a record boundary
        assert store.stats().file_size == good_size
        store.put(b"key3", b"value3")

    with reopen(db_path) as store:
        assert list(store.keys()) == [b"key1", b"key3"]


def test_corrupt_record_is_fatal(db_path):
    with reopen(db_path) as store:
        store.put(b"key1", b"value1")

    with open(db_path, "ab") as f:
        f.write(b"\x09not a record")

    with pytest.raises(CorruptRecord):
        reopen(db_path)

    # The file is left as it was for inspection
    assert db_path.read_bytes().endswith(b"not a record")


def test_compaction_idempotent(db_path):
    with reopen(db_path, auto_compact=False) as store:
        for i in range(10):
            store.put(b"k1", f"v{i}".encode())
        store.put(b"k2", b"x")
        store.put(b"k3", b"y")
        store.delete(b"k3")

        size_before = store.stats().file_size
        first = store.compact()
        bytes_after_first = db_path.read_bytes()
        second = store.compact()

        assert first.file_size < size_before
        assert first == second
        assert db_path.read_bytes() == bytes_after_first
        assert first.total_records == first.live_keys == 2
        assert first.dead_records == 0

        assert store.get(b"k1") == b"v9"
        store.put(b"k4", b"z")

    with reopen(db_path) as store:
        assert {k: store.get(k) for k in store.keys()} == {b"k1": b"v9", b"k2": b"x", b"k4": b"z"}


def test_auto_compaction(db_path):
    with reopen(db_path, compaction_min_records=10) as store:
        for i in range(20):
            store.put(b"hot", f"v{i}".encode())
        stats = store.stats()

        assert stats.total_records < 20
        assert store.get(b"hot") == b"v19"

    with reopen(db_path) as store:
        assert store.get(b"hot") == b"v19"


def test_background_compaction(db_path):
    store = reopen(
        db_path,
        auto_compact=False,
        compaction_min_records=2,
        compaction_interval_seconds=0.05,
    )
    for i in range(10):
        store.put(b"hot", f"v{i}".encode())

    deadline = time.time() + 5
    while store.stats().total_records != 1 and time.time() < deadline:
        time.sleep(0.02)

    assert store.stats().total_records == 1
    assert store.get(b"hot") == b"v9"
    store.close()
    assert not store._scheduler.running


def test_stale_compaction_file_removed(db_path):
    with reopen(db_path) as store:
        store.put(b"key1", b"value1")

    stale = compaction_path(db_path)
    stale.write_bytes(b"half-written compaction output")

    with reopen(db_path) as store:
        assert store.get(b"key1") == b"value1"
    assert not stale.exists()


def test_concurrent_reads_see_no_torn_values(store):
    """Test that readers only ever see complete values from some put."""
    values = [bytes([ord("a") + i]) * 256 for i in range(4)]
    store.put(b"k", values[0])
    stop = threading.Event()
    errors = []

    def writer():
        i = 0
        while not stop.is_set():
            i += 1
            store.put(b"k", values[i % len(values)])
            time.sleep(0.001)

    def reader():
        for _ in range(500):
            value = store.get(b"k")
            if value not in values:
                errors.append(value)

    w = threading.Thread(target=writer)
    readers = [threading.Thread(target=reader) for _ in range(4)]
    w.start()
    for r in readers:
        r.start()
    for r in readers:
        r.join(timeout=30)
    stop.set()
    w.join(timeout=30)

    assert errors == []


def test_concurrent_writers(db_path):
    with reopen(db_path, auto_compact=False) as store:

        def worker(n):
            for i in range(50):
                store.put(f"w{n}-{i}".encode(), f"{n}:{i}".encode())

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=30)

        assert len(store) == 200

    with reopen(db_path) as store:
        assert len(store) == 200
        assert store.get(b"w3-49") == b"3:49"


def test_io_timeout_leaves_no_trace(db_path, monkeypatch):
    """Test that a timed-out put changes neither the index nor, eventually, the file."""
    store = reopen(db_path, io_timeout_seconds=0.5)
    store.put(b"a", b"1")

    gate = threading.Event()

    def slow_sync():
        gate.wait(5)

    monkeypatch.setattr(store._log, "sync", slow_sync)

    with pytest.raises(IOTimeout):
        store.put(b"b", b"2")
    assert store.get_or_none(b"b") is None

    gate.set()
    store.put(b"c", b"3")  # Settles the timed-out append first
    store.close()

    with reopen(db_path) as store:
        assert list(store.keys()) == [b"a", b"c"]


def _failing_sync():
    raise OSError("No space left on device")


def test_failed_put_leaves_index_unchanged(store, db_path, monkeypatch):
    store.put(b"k", b"old")
    before = store.stats()

    monkeypatch.setattr(store._log, "sync", _failing_sync)
    with pytest.raises(StoreIOError, match="No space left"):
        store.put(b"k", b"new")
    with pytest.raises(StoreIOError):
        store.put(b"other", b"x")
    monkeypatch.undo()

    assert store.get_or_none(b"k") == b"old"
    assert b"other" not in store
    assert store.stats() == before
    assert db_path.stat().st_size == before.file_size

    store.put(b"k", b"newer")
    assert store.get(b"k") == b"newer"


def test_failed_delete_leaves_index_unchanged(store, db_path, monkeypatch):
    store.put(b"k", b"v")
    before = store.stats()

    monkeypatch.setattr(store._log, "sync", _failing_sync)
    with pytest.raises(StoreIOError):
        store.delete(b"k")
    monkeypatch.undo()

    assert store.get(b"k") == b"v"
    assert store.stats() == before

    store.close()
    with reopen(db_path) as store:
        assert store.get(b"k") == b"v"
        assert store.stats().total_records == 1


def test_auto_compaction_reopen_failure_keeps_store_writable(db_path, monkeypatch):
    """Test that a put stays successful when the compacted file cannot be reopened at once."""
    store = reopen(db_path, compaction_min_records=3)
    store.put(b"k", b"1")
    store.put(b"k", b"2")

    log = store._log
    real_open = log._open_for_write
    calls = []

    def open_once_failing():
        calls.append(1)
        if len(calls) == 1:
            raise StoreIOError("Too many open files")
        real_open()

    monkeypatch.setattr(log, "_open_for_write", open_once_failing)

    store.put(b"k", b"3")  # Triggers compaction, whose reopen fails
    assert store.get(b"k") == b"3"
    assert store._log.closed
    assert store.stats().total_records == 1

    store.put(b"z", b"4")  # Reopens the compacted file before appending
    assert len(calls) == 2
    store.close()

    with reopen(db_path) as store:
        assert {k: store.get(k) for k in store.keys()} == {b"k": b"3", b"z": b"4"}
        assert store.stats().total_records == 2
