from __future__ import annotations

import sqlite3
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from nahledovka.util.logging import get_logger

logger = get_logger(__name__)

SCHEMA_SQL_V1 = """
PRAGMA journal_mode=WAL;

CREATE TABLE IF NOT EXISTS cameras (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  name TEXT NOT NULL,
  main_rtsp_url TEXT NOT NULL,
  sub_rtsp_url TEXT NOT NULL,
  created_at TEXT NOT NULL,
  updated_at TEXT NOT NULL
);
"""

MIGRATIONS: dict[int, str] = {
    1: SCHEMA_SQL_V1,
}


class Database:
    """One sqlite connection shared by request threads, serialised by a lock."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()
        self._closed = False
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False, timeout=5.0)
        self._conn.row_factory = sqlite3.Row
        self._migrate()

    @property
    def schema_version(self) -> int:
        with self._connection() as conn:
            row = conn.execute("PRAGMA user_version").fetchone()
        return int(row[0]) if row else 0

    def _migrate(self) -> None:
        with self._connection() as conn:
            current = self.schema_version
            for version in sorted(v for v in MIGRATIONS if v > current):
                logger.info("migrating %s to schema version %d", self.db_path.name, version)
                conn.executescript(MIGRATIONS[version])
                conn.execute(f"PRAGMA user_version = {version}")
            conn.commit()

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            if self._closed:
                raise sqlite3.ProgrammingError("database is closed")
            yield self._conn

    def execute(self, sql: str, params: tuple[Any, ...] = ()) -> sqlite3.Cursor:
        with self._connection() as conn:
            try:
                cur = conn.execute(sql, params)
            except sqlite3.Error:
                conn.rollback()
                raise
            conn.commit()
            return cur

    def query(self, sql: str, params: tuple[Any, ...] = ()) -> list[sqlite3.Row]:
        with self._connection() as conn:
            return conn.execute(sql, params).fetchall()

    def query_one(self, sql: str, params: tuple[Any, ...] = ()) -> sqlite3.Row | None:
        with self._connection() as conn:
            return conn.execute(sql, params).fetchone()

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._conn.close()
