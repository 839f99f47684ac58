"""Partitioned key/value store on top of SQLite."""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from star_cache.core.errors import StoreCorruptionError
from star_cache.core.logging import get_logger
from star_cache.db.sqlite import SQLiteDatabase
from star_cache.utils.time import now_ms

logger = get_logger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS partitions (
  name TEXT PRIMARY KEY,
  created_at INTEGER NOT NULL
);
CREATE TABLE IF NOT EXISTS entries (
  partition TEXT NOT NULL,
  key BLOB NOT NULL,
  value BLOB NOT NULL,
  PRIMARY KEY (partition, key)
);
"""

USER_PARTITION = "user"
STARRED_SUFFIX = "starred"

KeyLike = str | bytes


def starred_partition(token: str) -> str:
    """Partition holding the starred items of one credential."""
    return f"{token}_{STARRED_SUFFIX}"


def _key(value: KeyLike) -> bytes:
    return value.encode("utf-8") if isinstance(value, str) else value


@contextmanager
def _guard(action: str) -> Iterator[None]:
    try:
        yield
    except sqlite3.DatabaseError as exc:
        raise StoreCorruptionError(f"Store {action} failed: {exc}") from exc


class StoreBatch:
    """Writes grouped into a single transaction."""

    def __init__(self, cursor: sqlite3.Cursor) -> None:
        self._cursor = cursor
        self.puts = 0
        self.deletes = 0

    def put(self, partition: str, key: KeyLike, value: bytes) -> None:
        self._cursor.execute(
            "INSERT OR REPLACE INTO entries (partition, key, value) VALUES (?, ?, ?)",
            [partition, _key(key), value],
        )
        self.puts += 1

    def delete(self, partition: str, key: KeyLike) -> bool:
        self._cursor.execute(
            "DELETE FROM entries WHERE partition = ? AND key = ?",
            [partition, _key(key)],
        )
        removed = self._cursor.rowcount > 0
        if removed:
            self.deletes += 1
        return removed

    def get(self, partition: str, key: KeyLike) -> bytes | None:
        row = self._cursor.execute(
            "SELECT value FROM entries WHERE partition = ? AND key = ?",
            [partition, _key(key)],
        ).fetchone()
        return bytes(row[0]) if row else None


class CacheStore:
    """Named partitions of byte keys to byte values."""

    def __init__(self, db: SQLiteDatabase) -> None:
        self.db = db
        with _guard("open"):
            self.db.ensure_schema(SCHEMA)

    @classmethod
    def open(cls, db_path: Path, lock_timeout: float = 2.0) -> "CacheStore":
        return cls(SQLiteDatabase(db_path, lock_timeout=lock_timeout))

    @property
    def path(self) -> Path:
        return self.db.db_path

    @contextmanager
    def batch(self) -> Iterator[StoreBatch]:
        """Run the enclosed writes as one transaction."""
        with _guard("write"):
            with self.db.transaction() as cursor:
                yield StoreBatch(cursor)

    def create_partition(self, name: str) -> bool:
        """Create ``name`` if missing; return True when it was created now."""
        with _guard("write"):
            with self.db.transaction() as cursor:
                cursor.execute(
                    "INSERT OR IGNORE INTO partitions (name, created_at) VALUES (?, ?)",
                    [name, now_ms()],
                )
                return cursor.rowcount > 0

    def has_partition(self, name: str) -> bool:
        with _guard("read"):
            row = self.db.execute("SELECT 1 FROM partitions WHERE name = ?", [name]).fetchone()
        return row is not None

    def get(self, partition: str, key: KeyLike) -> bytes | None:
        with _guard("read"):
            row = self.db.execute(
                "SELECT value FROM entries WHERE partition = ? AND key = ?",
                [partition, _key(key)],
            ).fetchone()
        return bytes(row["value"]) if row else None

    def get_many(self, partition: str, keys: list[KeyLike]) -> dict[bytes, bytes]:
        """Read-only lookup of several keys; missing keys are absent from the result."""
        found: dict[bytes, bytes] = {}
        with _guard("read"):
            for key in keys:
                row = self.db.execute(
                    "SELECT value FROM entries WHERE partition = ? AND key = ?",
                    [partition, _key(key)],
                ).fetchone()
                if row is not None:
                    found[_key(key)] = bytes(row["value"])
        return found

    def items(self, partition: str) -> list[tuple[bytes, bytes]]:
        with _guard("read"):
            rows = self.db.query(
                "SELECT key, value FROM entries WHERE partition = ? ORDER BY key",
                [partition],
            )
        return [(bytes(row["key"]), bytes(row["value"])) for row in rows]

    def keys(self, partition: str) -> set[str]:
        with _guard("read"):
            rows = self.db.query("SELECT key FROM entries WHERE partition = ?", [partition])
        return {bytes(row["key"]).decode("utf-8") for row in rows}

    def count(self, partition: str) -> int:
        with _guard("read"):
            row = self.db.execute(
                "SELECT COUNT(*) AS count FROM entries WHERE partition = ?",
                [partition],
            ).fetchone()
        return int(row["count"]) if row else 0

    def reset(self) -> None:
        """Delete the store file and recreate an empty store in its place."""
        logger.warning("Store %s is unreadable; deleting and recreating it", self.path)
        self.db.close()
        clear_all(self.path)
        with _guard("open"):
            self.db.ensure_schema(SCHEMA)

    def close(self) -> None:
        self.db.close()


def clear_all(db_path: Path) -> bool:
    """Remove the store file and its journal siblings."""
    removed = False
    base = db_path.expanduser()
    for candidate in (base, base.with_name(base.name + "-wal"), base.with_name(base.name + "-shm")):
        if candidate.exists():
            candidate.unlink()
            removed = True
    return removed


__all__ = [
    "CacheStore",
    "StoreBatch",
    "USER_PARTITION",
    "starred_partition",
    "clear_all",
]
