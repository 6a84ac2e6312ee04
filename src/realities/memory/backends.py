"""Key-value persistence backends used by the reality store."""

from __future__ import annotations

import hashlib
import logging
import os
import sqlite3
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, Optional, Protocol

DEFAULT_DB_PATH = Path("data/realities.sqlite")
LOGGER = logging.getLogger(__name__)


class PersistenceError(RuntimeError):
    """Raised when the underlying storage rejects a write."""


class KeyValueBackend(Protocol):
    """String store addressed by a handful of fixed logical keys."""

    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...

    def size(self) -> int: ...


def _entry_size(key: str, value: str) -> int:
    return len(key) + len(value)


class InMemoryBackend:
    """Dict-backed backend, mostly for tests and ephemeral sessions."""

    def __init__(self, *, capacity_bytes: Optional[int] = None) -> None:
        self._data: Dict[str, str] = {}
        self.capacity_bytes = capacity_bytes

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        if self.capacity_bytes is not None:
            projected = self.size() - self._current_size(key) + _entry_size(key, value)
            if projected > self.capacity_bytes:
                LOGGER.warning("Rejected write to %s: capacity %d bytes exceeded", key, self.capacity_bytes)
                raise PersistenceError(
                    f"Storage capacity exceeded ({projected} > {self.capacity_bytes} bytes)."
                )
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def size(self) -> int:
        return sum(_entry_size(key, value) for key, value in self._data.items())

    def _current_size(self, key: str) -> int:
        value = self._data.get(key)
        return 0 if value is None else _entry_size(key, value)


class SQLiteBackend:
    """SQLite-backed key-value table with a writable-path fallback."""

    @staticmethod
    def _is_writable(path: Path) -> bool:
        parent = path.parent
        try:
            parent.mkdir(parents=True, exist_ok=True)
        except OSError:
            return False
        if path.exists():
            return os.access(path, os.W_OK)
        return os.access(parent, os.W_OK)

    @staticmethod
    def _fallback_db_path(source: Path) -> Path:
        digest = hashlib.sha1(source.as_posix().encode("utf-8")).hexdigest()[:12]
        fallback_dir = Path(tempfile.gettempdir()) / "career-realities" / "db" / digest
        fallback_dir.mkdir(parents=True, exist_ok=True)
        return fallback_dir / source.name

    @classmethod
    def _resolve_db_path(cls, requested: Path) -> Path:
        resolved = requested.resolve()
        if cls._is_writable(resolved):
            return resolved
        fallback = cls._fallback_db_path(resolved)
        if not cls._is_writable(fallback):
            raise OSError(f"Unable to locate writable database path (attempted {requested})")
        return fallback

    def __init__(
        self,
        db_path: Path | str = DEFAULT_DB_PATH,
        *,
        capacity_bytes: Optional[int] = None,
    ) -> None:
        requested_path = Path(db_path)
        self.db_path = self._resolve_db_path(requested_path)
        if self.db_path != requested_path.resolve():
            LOGGER.warning(
                "Database path %s is not writable; using fallback %s",
                requested_path,
                self.db_path,
            )
        self.capacity_bytes = capacity_bytes
        self._conn: Optional[sqlite3.Connection] = self._open_connection()
        self._bootstrap()

    def close(self) -> None:
        if getattr(self, "_conn", None) is not None:
            try:
                self._conn.close()
            finally:
                self._conn = None

    def __enter__(self) -> "SQLiteBackend":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def _open_connection(self) -> sqlite3.Connection:
        connection = sqlite3.connect(str(self.db_path))
        connection.row_factory = sqlite3.Row
        return connection

    def _bootstrap(self) -> None:
        self._conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS kv (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            );
            """
        )
        self._conn.commit()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        try:
            yield self._conn
            self._conn.commit()
        except Exception:
            self._conn.rollback()
            raise

    def get(self, key: str) -> Optional[str]:
        row = self._conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        if not row:
            return None
        return row["value"]

    def set(self, key: str, value: str) -> None:
        try:
            with self._transaction():
                if self.capacity_bytes is not None:
                    row = self._conn.execute(
                        "SELECT COALESCE(SUM(LENGTH(key) + LENGTH(value)), 0) AS used "
                        "FROM kv WHERE key != ?",
                        (key,),
                    ).fetchone()
                    projected = row["used"] + _entry_size(key, value)
                    if projected > self.capacity_bytes:
                        LOGGER.warning("Rejected write to %s: capacity %d bytes exceeded", key, self.capacity_bytes)
                        raise PersistenceError(
                            f"Storage capacity exceeded ({projected} > {self.capacity_bytes} bytes)."
                        )
                self._conn.execute(
                    """
                    INSERT INTO kv (key, value) VALUES (?, ?)
                    ON CONFLICT(key) DO UPDATE SET value = excluded.value
                    """,
                    (key, value),
                )
        except sqlite3.Error as error:
            raise PersistenceError(f"Failed to write '{key}': {error}") from error

    def delete(self, key: str) -> None:
        try:
            with self._transaction():
                self._conn.execute("DELETE FROM kv WHERE key = ?", (key,))
        except sqlite3.Error as error:
            raise PersistenceError(f"Failed to delete '{key}': {error}") from error

    def size(self) -> int:
        row = self._conn.execute(
            "SELECT COALESCE(SUM(LENGTH(key) + LENGTH(value)), 0) AS used FROM kv"
        ).fetchone()
        return int(row["used"])


__all__ = [
    "DEFAULT_DB_PATH",
    "InMemoryBackend",
    "KeyValueBackend",
    "PersistenceError",
    "SQLiteBackend",
]
