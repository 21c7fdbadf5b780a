# photolarm/services/storage.py
"""
Key-value persistence used by the learning store, the schedule book and the
preferences service. Values are JSON-serialized; keys are namespaced with a
prefix ("photolarm:<key>").
"""
import json
import sqlite3
import threading
from typing import Any, Dict, List, Optional, Protocol

from loguru import logger

from photolarm.db.db_config import get_sqlite_connection


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[Any]: ...

    def set(self, key: str, value: Any) -> None: ...

    def delete(self, key: str) -> None: ...

    def keys(self) -> List[str]: ...

    def clear(self) -> None: ...


class StorageError(RuntimeError):
    pass


class InMemoryKeyValueStore:
    def __init__(self, prefix: str = "photolarm"):
        self.prefix = prefix
        self._data: Dict[str, str] = {}

    def _key(self, key: str) -> str:
        return f"{self.prefix}:{key}"

    def get(self, key: str) -> Optional[Any]:
        raw = self._data.get(self._key(key))
        return json.loads(raw) if raw is not None else None

    def set(self, key: str, value: Any) -> None:
        self._data[self._key(key)] = json.dumps(value, ensure_ascii=False)

    def delete(self, key: str) -> None:
        self._data.pop(self._key(key), None)

    def keys(self) -> List[str]:
        n = len(self.prefix) + 1
        return [k[n:] for k in self._data if k.startswith(f"{self.prefix}:")]

    def clear(self) -> None:
        for k in self.keys():
            self.delete(k)


class SqliteKeyValueStore:
    def __init__(self, conn: Optional[sqlite3.Connection] = None, prefix: str = "photolarm"):
        self.prefix = prefix
        self._conn = conn or get_sqlite_connection()
        self._lock = threading.Lock()
        with self._lock:
            self._conn.execute("CREATE TABLE IF NOT EXISTS kv_store (key TEXT PRIMARY KEY, value TEXT NOT NULL)")
            self._conn.commit()

    def _key(self, key: str) -> str:
        return f"{self.prefix}:{key}"

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            row = self._conn.execute("SELECT value FROM kv_store WHERE key = ?", (self._key(key),)).fetchone()
        if row is None:
            return None
        try:
            return json.loads(row[0])
        except json.JSONDecodeError:
            logger.error(f"[storage] corrupt JSON under key {key!r}, ignoring")
            return None

    def set(self, key: str, value: Any) -> None:
        try:
            payload = json.dumps(value, ensure_ascii=False)
            with self._lock:
                self._conn.execute(
                    "INSERT INTO kv_store (key, value) VALUES (?, ?) "
                    "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                    (self._key(key), payload),
                )
                self._conn.commit()
        except (TypeError, sqlite3.Error) as e:
            raise StorageError(f"Failed to save data for key {key!r}") from e

    def delete(self, key: str) -> None:
        try:
            with self._lock:
                self._conn.execute("DELETE FROM kv_store WHERE key = ?", (self._key(key),))
                self._conn.commit()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to delete data for key {key!r}") from e

    def keys(self) -> List[str]:
        n = len(self.prefix) + 1
        with self._lock:
            rows = self._conn.execute(
                "SELECT key FROM kv_store WHERE key LIKE ?", (f"{self.prefix}:%",)
            ).fetchall()
        return [r[0][n:] for r in rows]

    def clear(self) -> None:
        with self._lock:
            self._conn.execute("DELETE FROM kv_store WHERE key LIKE ?", (f"{self.prefix}:%",))
            self._conn.commit()
        logger.info(f"[storage] cleared all keys under prefix {self.prefix!r}")
