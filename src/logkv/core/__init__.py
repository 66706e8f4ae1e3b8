"""Store engine package."""

from .store import SimpleKVStore, StoreState

__all__ = ["SimpleKVStore", "StoreState"]
