"""SQLite storage handle.

The cache never reaches for a module-level database. The host application
opens a :class:`SQLiteStorage`, passes it to the sync and query engines, and
closes it when done.

Transactions are explicit: the connection runs in autocommit mode and
:meth:`SQLiteStorage.transaction` issues ``BEGIN IMMEDIATE`` / ``COMMIT`` /
``ROLLBACK`` itself, so a statement outside a ``with storage.transaction()``
block commits on its own and a failure inside one rolls back only that block.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from catalog_cache.core.errors import StorageError
from catalog_cache.core.logging import get_logger

logger = get_logger(__name__)


class SQLiteStorage:
    """
    SQLite storage handle.

    Uses the built-in sqlite3 module with ``sqlite3.Row`` rows, foreign
    keys enabled and WAL journaling for file databases.
    """

    def __init__(
        self,
        path: str = ":memory:",
        *,
        timeout: float = 5.0,
    ):
        self._path = path
        self._timeout = timeout
        self._conn: sqlite3.Connection | None = None
        self._tx_depth = 0

    @property
    def path(self) -> str:
        return self._path

    @property
    def is_connected(self) -> bool:
        return self._conn is not None

    @property
    def in_transaction(self) -> bool:
        return self._tx_depth > 0

    def connect(self) -> None:
        """Open the database connection."""
        if self._conn is not None:
            return

        if self._path != ":memory:" and not self._path.startswith("file:"):
            Path(self._path).expanduser().parent.mkdir(parents=True, exist_ok=True)

        try:
            self._conn = sqlite3.connect(
                self._path,
                timeout=self._timeout,
                isolation_level=None,
                uri=self._path.startswith("file:"),
            )
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA foreign_keys = ON")
            if self._path != ":memory:":
                self._conn.execute("PRAGMA journal_mode = WAL")
        except sqlite3.Error as e:
            self._conn = None
            raise StorageError(f"Failed to open SQLite database: {e}", cause=e) from e

        logger.debug("storage.connected", path=self._path)

    def close(self) -> None:
        """Close the connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None
            self._tx_depth = 0
            logger.debug("storage.closed", path=self._path)

    def get_connection(self) -> sqlite3.Connection:
        if self._conn is None:
            self.connect()
        assert self._conn is not None
        return self._conn

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run the enclosed statements atomically.

        A nested call joins the outer transaction.
        """
        conn = self.get_connection()
        if self._tx_depth > 0:
            self._tx_depth += 1
            try:
                yield conn
            finally:
                self._tx_depth -= 1
            return

        try:
            conn.execute("BEGIN IMMEDIATE")
        except sqlite3.Error as e:
            raise StorageError(f"Failed to begin transaction: {e}", cause=e) from e

        self._tx_depth = 1
        try:
            yield conn
        except sqlite3.Error as e:
            conn.execute("ROLLBACK")
            raise StorageError(f"Transaction rolled back: {e}", cause=e) from e
        except BaseException:
            conn.execute("ROLLBACK")
            raise
        else:
            try:
                conn.execute("COMMIT")
            except sqlite3.Error as e:
                conn.execute("ROLLBACK")
                raise StorageError(f"Commit failed: {e}", cause=e) from e
        finally:
            self._tx_depth = 0

    def execute(self, sql: str, params: tuple | list = ()) -> sqlite3.Cursor:
        """Execute a single statement."""
        try:
            return self.get_connection().execute(sql, tuple(params))
        except sqlite3.Error as e:
            raise StorageError(f"Statement failed: {e}", cause=e).with_context(sql=sql) from e

    def executemany(self, sql: str, params: list[tuple]) -> sqlite3.Cursor:
        """Execute a statement for multiple parameter sets."""
        try:
            return self.get_connection().executemany(sql, params)
        except sqlite3.Error as e:
            raise StorageError(f"Statement failed: {e}", cause=e).with_context(sql=sql) from e

    def executescript(self, script: str) -> None:
        try:
            self.get_connection().executescript(script)
        except sqlite3.Error as e:
            raise StorageError(f"Script failed: {e}", cause=e) from e

    def query(self, sql: str, params: tuple | list = ()) -> list[dict[str, Any]]:
        """Execute query and return results as dicts."""
        cursor = self.execute(sql, params)
        return [dict(row) for row in cursor.fetchall()]

    def query_one(self, sql: str, params: tuple | list = ()) -> dict[str, Any] | None:
        """Execute query and return single result."""
        row = self.execute(sql, params).fetchone()
        return dict(row) if row is not None else None

    def scalar(self, sql: str, params: tuple | list = ()) -> Any:
        """Execute query and return the first column of the first row."""
        row = self.execute(sql, params).fetchone()
        return row[0] if row is not None else None

    def __enter__(self) -> SQLiteStorage:
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


__all__ = ["SQLiteStorage"]
