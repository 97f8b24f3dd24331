"""Key-value storage backends with optional expiry.

Provides the storage seam used for:
- The fast client ID cache (set with TTL)
- Resumable import batch state (keyed per owner/process, ~1 hour TTL)
- Long-lived options such as the last successful item sync timestamp

Backends:
- InMemoryKeyValueStore: For development/testing
- SqliteKeyValueStore: For single-server deployments

Usage:
    store = SqliteKeyValueStore(Path("softone_sync.db"))
    store.set("softone_woocommerce_integration_client_id", "abc", ttl=1800)
    client_id = store.get("softone_woocommerce_integration_client_id")
"""

import json
import sqlite3
import threading
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple


DEFAULT_DB_PATH = Path(__file__).resolve().parents[2] / "softone_sync.db"


class KeyValueStore(ABC):
    """Abstract base class for key-value storage.

    A ``ttl`` of ``None`` stores the value without expiry. A ttl of zero or
    less stores nothing, since the value would already be expired.
    """

    @abstractmethod
    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        """Store a JSON-serialisable value."""
        pass

    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        """Return the stored value, or None if absent or expired."""
        pass

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Delete a key. Returns True if something was removed."""
        pass


class InMemoryKeyValueStore(KeyValueStore):
    """In-memory key-value storage for development/testing.

    WARNING: Values are lost on restart. Use only for development.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._items: Dict[str, Tuple[Any, Optional[float]]] = {}
        self._lock = threading.Lock()
        self._clock = clock

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        with self._lock:
            if ttl is not None and ttl <= 0:
                self._items.pop(key, None)
                return
            expires_at = self._clock() + ttl if ttl is not None else None
            self._items[key] = (value, expires_at)

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            item = self._items.get(key)
            if item is None:
                return None
            value, expires_at = item
            if expires_at is not None and self._clock() >= expires_at:
                del self._items[key]
                return None
            return value

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._items.pop(key, None) is not None


def init_kv_db(db_path: Path = DEFAULT_DB_PATH) -> None:
    """Initialize the key-value table.

    Args:
        db_path: Path to SQLite database file
    """
    conn = sqlite3.connect(db_path)
    try:
        cursor = conn.cursor()
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS kv_store (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                expires_at REAL
            )
        """)
        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_kv_store_expires
            ON kv_store(expires_at)
        """)
        conn.commit()
    finally:
        conn.close()


class SqliteKeyValueStore(KeyValueStore):
    """SQLite-backed key-value storage.

    Values are stored as JSON text. Expired rows are removed lazily on read.
    """

    def __init__(self, db_path: Path = DEFAULT_DB_PATH, clock: Callable[[], float] = time.time):
        self._db_path = Path(db_path)
        self._clock = clock
        self._lock = threading.Lock()
        init_kv_db(self._db_path)

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        if ttl is not None and ttl <= 0:
            self.delete(key)
            return
        expires_at = self._clock() + ttl if ttl is not None else None
        with self._lock:
            conn = sqlite3.connect(self._db_path)
            try:
                conn.execute(
                    """
                    INSERT INTO kv_store (key, value, expires_at) VALUES (?, ?, ?)
                    ON CONFLICT(key) DO UPDATE SET value = excluded.value, expires_at = excluded.expires_at
                    """,
                    (key, json.dumps(value), expires_at),
                )
                conn.commit()
            finally:
                conn.close()

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            conn = sqlite3.connect(self._db_path)
            try:
                row = conn.execute(
                    "SELECT value, expires_at FROM kv_store WHERE key = ?", (key,)
                ).fetchone()
                if row is None:
                    return None
                value, expires_at = row
                if expires_at is not None and self._clock() >= expires_at:
                    conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
                    conn.commit()
                    return None
                return json.loads(value)
            finally:
                conn.close()

    def delete(self, key: str) -> bool:
        with self._lock:
            conn = sqlite3.connect(self._db_path)
            try:
                cursor = conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
                conn.commit()
                return cursor.rowcount > 0
            finally:
                conn.close()
