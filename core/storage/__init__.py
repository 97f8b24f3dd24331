"""Core storage - key-value storage with optional expiry."""

from core.storage.kv_store import (
    KeyValueStore,
    InMemoryKeyValueStore,
    SqliteKeyValueStore,
    init_kv_db,
)

__all__ = [
    "KeyValueStore",
    "InMemoryKeyValueStore",
    "SqliteKeyValueStore",
    "init_kv_db",
]
