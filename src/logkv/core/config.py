"""Configuration for logkv.

Defines all tunable parameters for the storage engine and loads them from TOML.
"""

from __future__ import annotations

import tomllib
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

from .errors import ConfigError

DEFAULT_DB_PATH = "key_value_store.db"


@dataclass
class StoreConfig:
    """Configuration parameters for the log-structured store.

    Attributes:
        path: Location of the store file
        fsync_every_write: Whether to fsync after each append
        auto_compact: Whether mutations may trigger compaction
        compaction_dead_ratio: Dead/total record ratio above which to compact
        compaction_min_records: Minimum log length before auto-compaction kicks in
        compaction_interval_seconds: Period of the background compaction check (None = off)
        io_timeout_seconds: Upper bound on a single append + fsync (None = wait forever)
    """

    path: str = DEFAULT_DB_PATH
    fsync_every_write: bool = True
    auto_compact: bool = True
    compaction_dead_ratio: float = 0.5
    compaction_min_records: int = 1000
    compaction_interval_seconds: float | None = None
    io_timeout_seconds: float | None = None

    def __post_init__(self):
        self.path = str(self.path)
        if not self.path:
            raise ConfigError("path must not be empty")
        if not 0.0 < self.compaction_dead_ratio < 1.0:
            raise ConfigError(
                f"compaction_dead_ratio must be in (0, 1), got {self.compaction_dead_ratio}"
            )
        if self.compaction_min_records < 0:
            raise ConfigError("compaction_min_records must be >= 0")
        for name in ("compaction_interval_seconds", "io_timeout_seconds"):
            value = getattr(self, name)
            if value is not None and value <= 0:
                raise ConfigError(f"{name} must be positive, got {value}")


def load_config(config_path: Path, **overrides: Any) -> StoreConfig:
    """Build a StoreConfig from the ``[store]`` table of a TOML file.

    Keyword overrides that are not None win over values from the file.
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}")
    try:
        data = tomllib.loads(config_path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML in {config_path}: {e}") from e

    section = data.get("store", {})
    if not isinstance(section, dict):
        raise ConfigError(f"[store] in {config_path} must be a table")
    known = {f.name for f in fields(StoreConfig)}
    unknown = set(section) - known
    if unknown:
        raise ConfigError(f"Unknown config keys: {', '.join(sorted(unknown))}")

    section.update({k: v for k, v in overrides.items() if v is not None})
    try:
        return StoreConfig(**section)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid value in {config_path}: {e}") from e
