"""SQLite management utilities."""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Sequence

from star_cache.core.errors import StoreCorruptionError, StoreLockedError

# locking_mode must precede the first database access so the lock is kept
# for the lifetime of the connection.
DEFAULT_PRAGMAS = (
    "PRAGMA locking_mode=EXCLUSIVE;",
    "PRAGMA journal_mode=WAL;",
    "PRAGMA synchronous=NORMAL;",
    "PRAGMA temp_store=MEMORY;",
)


class SQLiteDatabase:
    """Thin wrapper around sqlite3 holding an exclusive lock on the file."""

    def __init__(self, db_path: Path, lock_timeout: float = 2.0) -> None:
        self.db_path = db_path.expanduser()
        self.lock_timeout = lock_timeout
        self._connection: sqlite3.Connection | None = None

    def connect(self) -> sqlite3.Connection:
        if self._connection is None:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            connection = sqlite3.connect(
                self.db_path,
                timeout=self.lock_timeout,
                check_same_thread=False,
            )
            try:
                connection.row_factory = sqlite3.Row
                for pragma in DEFAULT_PRAGMAS:
                    connection.execute(pragma)
                # Take the write lock now; a second process fails after lock_timeout.
                connection.execute("BEGIN EXCLUSIVE")
                connection.commit()
            except sqlite3.OperationalError as exc:
                connection.close()
                if _is_locked(exc):
                    raise StoreLockedError(
                        f"Store {self.db_path} is in use by another process"
                    ) from exc
                raise StoreCorruptionError(f"Cannot open store {self.db_path}: {exc}") from exc
            except sqlite3.DatabaseError as exc:
                connection.close()
                raise StoreCorruptionError(f"Cannot open store {self.db_path}: {exc}") from exc
            self._connection = connection
        return self._connection

    def close(self) -> None:
        if self._connection is not None:
            self._connection.close()
            self._connection = None

    def executescript(self, script: str) -> None:
        conn = self.connect()
        conn.executescript(script)

    def execute(self, sql: str, params: Sequence[Any] | None = None) -> sqlite3.Cursor:
        conn = self.connect()
        return conn.execute(sql, params or [])

    def query(self, sql: str, params: Sequence[Any] | None = None) -> list[sqlite3.Row]:
        cursor = self.execute(sql, params)
        return cursor.fetchall()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Cursor]:
        conn = self.connect()
        cursor = conn.cursor()
        try:
            yield cursor
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            cursor.close()

    def ensure_schema(self, schema_sql: str) -> None:
        self.executescript(schema_sql)


def _is_locked(exc: sqlite3.OperationalError) -> bool:
    message = str(exc).lower()
    return "locked" in message or "busy" in message


__all__ = ["SQLiteDatabase"]
