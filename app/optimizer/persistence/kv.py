"""
Purpose: Key-value persistence media for the session store.

InMemoryKeyValueStore: process-local dict (tests, ephemeral runs).
SQLiteKeyValueStore: single-table SQLite file; each apply() is one
transaction, so a batch of sets/deletes is never half-visible.
"""

from __future__ import annotations
import sqlite3
import threading
from typing import Iterable, Mapping, Optional


class InMemoryKeyValueStore:
    def __init__(self) -> None:
        self._data: dict[str, str] = {}
        self._lock = threading.Lock()
        self.write_count = 0

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def apply(self, sets: Mapping[str, str], deletes: Iterable[str] = ()) -> None:
        with self._lock:
            for key in deletes:
                self._data.pop(key, None)
            self._data.update(sets)
            self.write_count += 1

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._data)


class SQLiteKeyValueStore:
    def __init__(self, path: str) -> None:
        self.path = path
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(path, check_same_thread=False)
        with self._conn:
            self._conn.execute(
                "CREATE TABLE IF NOT EXISTS kv (key TEXT PRIMARY KEY, value TEXT NOT NULL)"
            )

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            row = self._conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        return row[0] if row else None

    def apply(self, sets: Mapping[str, str], deletes: Iterable[str] = ()) -> None:
        with self._lock, self._conn:
            self._conn.executemany("DELETE FROM kv WHERE key = ?", [(k,) for k in deletes])
            self._conn.executemany(
                "INSERT OR REPLACE INTO kv (key, value) VALUES (?, ?)",
                list(sets.items()),
            )

    def keys(self) -> list[str]:
        with self._lock:
            return [r[0] for r in self._conn.execute("SELECT key FROM kv ORDER BY key")]

    def close(self) -> None:
        with self._lock:
            self._conn.close()
