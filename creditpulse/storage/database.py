"""SQLite connection manager for the scoring store."""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Generator

logger = logging.getLogger(__name__)

MEMORY = ":memory:"


class Database:
    """SQLite database with WAL mode and foreign key enforcement.

    ``check_same_thread=False`` lets the HTTP layer open a connection in a
    dependency and use it from the worker thread that runs the endpoint.
    One Database is still used by one request at a time.
    """

    def __init__(self, path: str | Path, *, check_same_thread: bool = True):
        self.path = MEMORY if str(path) == MEMORY else Path(path).expanduser().resolve()
        self.check_same_thread = check_same_thread
        self._conn: sqlite3.Connection | None = None
        self._tx_depth = 0

    @property
    def is_memory(self) -> bool:
        return self.path == MEMORY

    def connect(self) -> sqlite3.Connection:
        """Open the database connection with optimal settings."""
        if self._conn is not None:
            return self._conn

        if not self.is_memory:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(
            str(self.path), check_same_thread=self.check_same_thread
        )
        self._conn.row_factory = sqlite3.Row
        if not self.is_memory:
            self._conn.execute("PRAGMA journal_mode = WAL")
        self._conn.execute("PRAGMA foreign_keys = ON")
        self._conn.execute("PRAGMA busy_timeout = 5000")
        logger.debug("Connected to database: %s", self.path)
        return self._conn

    @property
    def conn(self) -> sqlite3.Connection:
        return self.connect()

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None
            logger.debug("Closed database connection")

    @contextmanager
    def transaction(self) -> Generator[sqlite3.Cursor, None, None]:
        """Run statements as one unit; commit on success, roll back on error.

        Nested calls join the outermost transaction, which alone commits or
        rolls back.
        """
        conn = self.connect()
        cursor = conn.cursor()
        outermost = self._tx_depth == 0
        self._tx_depth += 1
        try:
            yield cursor
            if outermost:
                conn.commit()
        except Exception:
            if outermost:
                conn.rollback()
            raise
        finally:
            self._tx_depth -= 1
            cursor.close()

    def execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        return self.conn.execute(sql, params)

    def executemany(self, sql: str, params_seq: list[tuple]) -> sqlite3.Cursor:
        return self.conn.executemany(sql, params_seq)

    def executescript(self, sql: str) -> None:
        self.conn.executescript(sql)

    def fetchone(self, sql: str, params: tuple = ()) -> sqlite3.Row | None:
        return self.conn.execute(sql, params).fetchone()

    def fetchall(self, sql: str, params: tuple = ()) -> list[sqlite3.Row]:
        return self.conn.execute(sql, params).fetchall()

    def count(self, table: str, where: str = "", params: tuple = ()) -> int:
        """Row count for ``table``, optionally filtered by a WHERE clause."""
        sql = f"SELECT COUNT(*) AS cnt FROM {table}"
        if where:
            sql += f" WHERE {where}"
        row = self.fetchone(sql, params)
        return row["cnt"] if row else 0

    def schema_version(self) -> int:
        """Get the current schema version. Returns 0 if no schema exists."""
        try:
            row = self.fetchone("SELECT MAX(version) AS v FROM _schema_version")
            return row["v"] if row and row["v"] is not None else 0
        except sqlite3.OperationalError:
            return 0

    def __enter__(self) -> "Database":
        self.connect()
        return self

    def __exit__(self, *args) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"Database({self.path})"
