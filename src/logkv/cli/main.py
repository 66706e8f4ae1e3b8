# Command-line front end: opens the store, runs one command, closes it.
from __future__ import annotations

import argparse
import logging
import os
import sys
import uuid
from pathlib import Path

from logkv.core.config import DEFAULT_DB_PATH, StoreConfig, load_config
from logkv.core.errors import ConfigError, StoreError
from logkv.core.store import SimpleKVStore
from logkv.interfaces.store import KVStore

GENERATED_KEY = "-"


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="logkv", description="Durable log-structured key-value store"
    )
    p.add_argument(
        "--db", type=Path, default=None, help=f"Store file (default: {DEFAULT_DB_PATH})"
    )
    p.add_argument("--config", type=Path, help="TOML config file with a [store] table")
    p.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    sub = p.add_subparsers(dest="command", required=True)

    put = sub.add_parser("put", help="Add or update a key-value pair")
    put.add_argument("key", help=f"Key, or '{GENERATED_KEY}' to generate a UUID")
    put.add_argument("value", help="Value")

    get = sub.add_parser("get", help="Print the value for a key")
    get.add_argument("key")

    delete = sub.add_parser("delete", help="Remove a key")
    delete.add_argument("key")

    sub.add_parser("keys", help="List all keys")
    sub.add_parser("compact", help="Rewrite the store file with live keys only")
    sub.add_parser("stats", help="Show record counters")
    return p


def _show(data: bytes) -> str:
    return data.decode(errors="replace")


def run_command(store: KVStore, args: argparse.Namespace) -> None:
    # argv bytes that are not valid UTF-8 arrive surrogate-escaped; fsencode restores them
    if args.command == "put":
        generated = args.key == GENERATED_KEY
        key = str(uuid.uuid4()).encode() if generated else os.fsencode(args.key)
        value = os.fsencode(args.value)
        store.put(key, value)
        if generated:
            print(f"Added key-value pair with generated UUID: {_show(key)} -> {_show(value)}")
        else:
            print(f"Added key-value pair: {_show(key)} -> {_show(value)}")
    elif args.command == "get":
        print(_show(store.get(os.fsencode(args.key))))
    elif args.command == "delete":
        key = os.fsencode(args.key)
        store.delete(key)
        print(f"Deleted key: {_show(key)}")
    elif args.command == "keys":
        for key in store.keys():
            print(_show(key))
    elif args.command == "compact":
        stats = store.compact()
        print(f"Compacted: {stats.live_keys} keys, {stats.file_size} bytes")
    elif args.command == "stats":
        stats = store.stats()
        print(f"live_keys: {stats.live_keys}")
        print(f"total_records: {stats.total_records}")
        print(f"dead_records: {stats.dead_records}")
        print(f"dead_ratio: {stats.dead_ratio:.2f}")
        print(f"file_size: {stats.file_size}")


def main(argv: list[str] | None = None) -> int:
    argv = argv if argv is not None else sys.argv[1:]
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    db_path = str(args.db) if args.db is not None else None
    try:
        if args.config:
            config = load_config(args.config, path=db_path)
        else:
            config = StoreConfig(path=db_path or DEFAULT_DB_PATH)
    except ConfigError as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        return 2

    try:
        with SimpleKVStore(config) as store:
            run_command(store, args)
    except StoreError as e:
        print(f"Error ({type(e).__name__}): {e}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
