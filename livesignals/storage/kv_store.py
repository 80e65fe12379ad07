"""
LiveSignals Key-Value Stores
============================

String key-value stores with optional per-entry TTL backing the client cache,
the conditional upstream cache and the worker response cache.
"""

import sqlite3
import threading
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Dict, Generator, Optional, Tuple

from ..utils.exceptions import StorageError, ErrorCode
from ..utils.logging import get_logger_for_component


class KeyValueStore(ABC):
    """Abstract string key-value store with expiring entries."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the stored value, or None when missing or expired.

        Raises:
            StorageError: If the backing store cannot be read
        """

    @abstractmethod
    def put(self, key: str, value: str, ttl_seconds: Optional[float] = None) -> None:
        """Store a value, replacing any previous one.

        Raises:
            StorageError: If the backing store cannot be written
        """

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove a key if present."""

    def close(self) -> None:
        """Release the backing resources; in-memory stores hold none."""


class InMemoryStore(KeyValueStore):
    """Process-local store."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._entries: Dict[str, Tuple[str, Optional[float]]] = {}

    def get(self, key: str) -> Optional[str]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and self._clock() >= expires_at:
            del self._entries[key]
            return None
        return value

    def put(self, key: str, value: str, ttl_seconds: Optional[float] = None) -> None:
        expires_at = self._clock() + ttl_seconds if ttl_seconds else None
        self._entries[key] = (value, expires_at)

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def __len__(self) -> int:
        return len(self._entries)


class SqliteStore(KeyValueStore):
    """SQLite-backed store; one table, expired rows purged lazily on read."""

    def __init__(self, db_path: str = "data/livesignals.db", clock: Callable[[], float] = time.time):
        """Initialize the store.

        Args:
            db_path: Path to SQLite database file
            clock: Time source in epoch seconds
        """
        self.db_path = Path(db_path)
        self._clock = clock
        self.lock = threading.Lock()
        self.logger = get_logger_for_component("kv_store")

        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = self._create_connection()
        with self._conn:
            self._conn.execute(
                """
                CREATE TABLE IF NOT EXISTS kv_entries (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    expires_at REAL
                )
                """
            )

    def _create_connection(self) -> sqlite3.Connection:
        conn = sqlite3.connect(
            self.db_path,
            check_same_thread=False,
            timeout=30.0,
        )
        conn.execute("PRAGMA journal_mode = WAL")
        conn.execute("PRAGMA synchronous = NORMAL")
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def _transaction(self, key: str, error_code: ErrorCode) -> Generator[sqlite3.Connection, None, None]:
        with self.lock:
            try:
                with self._conn:
                    yield self._conn
            except sqlite3.Error as e:
                self.logger.warning(f"Key-value store error for {key}: {e}")
                raise StorageError(f"SQLite operation failed: {e}", key=key, error_code=error_code) from e

    def get(self, key: str) -> Optional[str]:
        now = self._clock()
        with self._transaction(key, ErrorCode.STORAGE_READ_ERROR) as conn:
            row = conn.execute(
                "SELECT value, expires_at FROM kv_entries WHERE key = ?", (key,)
            ).fetchone()
            if row is None:
                return None
            if row["expires_at"] is not None and now >= row["expires_at"]:
                conn.execute("DELETE FROM kv_entries WHERE key = ?", (key,))
                return None
            return row["value"]

    def put(self, key: str, value: str, ttl_seconds: Optional[float] = None) -> None:
        expires_at = self._clock() + ttl_seconds if ttl_seconds else None
        with self._transaction(key, ErrorCode.STORAGE_WRITE_ERROR) as conn:
            conn.execute(
                "INSERT OR REPLACE INTO kv_entries (key, value, expires_at) VALUES (?, ?, ?)",
                (key, value, expires_at),
            )

    def delete(self, key: str) -> None:
        with self._transaction(key, ErrorCode.STORAGE_WRITE_ERROR) as conn:
            conn.execute("DELETE FROM kv_entries WHERE key = ?", (key,))

    def purge_expired(self) -> int:
        """Delete every expired row and return how many were removed."""
        with self._transaction("*", ErrorCode.STORAGE_WRITE_ERROR) as conn:
            cursor = conn.execute(
                "DELETE FROM kv_entries WHERE expires_at IS NOT NULL AND expires_at <= ?",
                (self._clock(),),
            )
            return cursor.rowcount

    def close(self) -> None:
        with self.lock:
            self._conn.close()


def create_store(store_path: Optional[str]) -> KeyValueStore:
    """Build the configured store: SQLite when a path is set, else in-memory."""
    if store_path:
        store = SqliteStore(store_path)
        store.purge_expired()
        return store
    return InMemoryStore()
