"""
SQLite entity store for MemberDB.

This module owns the single SQLite connection and executes statements
produced by the query builder. It knows nothing about specific tables.

Invariants:
    - One connection per store, opened by open() and released by close()
    - Autocommit: each statement applies atomically or not at all
    - Foreign keys are NOT enforced (PRAGMA foreign_keys = OFF)
    - Every sqlite3.Error (and out-of-range integer binding) surfaces as StoreFailure
    - Calls are serialized; the blocking work runs in the default executor

How to change safely:
    - Keep statements single and parameterized (see query.py)
    - Never hold the lock across an await on anything but the executor

Example:
    >>> store = EntityStore("/var/lib/memberdb/mydatabase.db")
    >>> await store.open()
    >>> await store.create_schema(registry)
    >>> new_id = await store.insert(build_insert(Product, {"name": "Gym Pass"}))
    >>> await store.close()
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from collections.abc import Callable
from pathlib import Path
from typing import Any, TypeVar

from ..errors import StoreFailure
from ..schema.registry import SchemaRegistry
from .query import Statement

logger = logging.getLogger(__name__)

T = TypeVar("T")


class EntityStore:
    """Executes built statements against one SQLite database.

    Thread safety:
        The connection is created with check_same_thread=False and only
        ever used by one executor call at a time (guarded by an
        asyncio.Lock).
    """

    def __init__(
        self,
        database_path: str,
        wal_mode: bool = True,
        busy_timeout_ms: int = 5000,
    ) -> None:
        """Initialize the store (no connection is opened yet).

        Args:
            database_path: SQLite file path, or ":memory:"
            wal_mode: Enable SQLite WAL journal mode for file databases
            busy_timeout_ms: SQLite busy timeout
        """
        self.database_path = database_path
        self.wal_mode = wal_mode
        self.busy_timeout_ms = busy_timeout_ms
        self._conn: sqlite3.Connection | None = None
        self._lock = asyncio.Lock()

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    async def open(self) -> None:
        """Open the connection and configure it.

        Raises:
            StoreFailure: If SQLite cannot open the database
        """
        if self._conn is not None:
            return

        if self.database_path != ":memory:":
            Path(self.database_path).parent.mkdir(parents=True, exist_ok=True)

        def _connect() -> sqlite3.Connection:
            conn = sqlite3.connect(
                self.database_path,
                timeout=self.busy_timeout_ms / 1000.0,
                isolation_level=None,
                check_same_thread=False,
            )
            conn.row_factory = sqlite3.Row
            conn.execute(f"PRAGMA busy_timeout = {int(self.busy_timeout_ms)}")
            if self.wal_mode and self.database_path != ":memory:":
                conn.execute("PRAGMA journal_mode = WAL")
            conn.execute("PRAGMA foreign_keys = OFF")
            return conn

        try:
            self._conn = await asyncio.get_event_loop().run_in_executor(None, _connect)
        except sqlite3.Error as e:
            logger.error(f"Failed to open database {self.database_path}: {e}")
            raise StoreFailure(str(e)) from e

        logger.info("Opened database", extra={"database_path": self.database_path})

    async def close(self) -> None:
        """Close the connection. Safe to call more than once."""
        async with self._lock:
            if self._conn is None:
                return
            conn, self._conn = self._conn, None
            try:
                conn.close()
            except sqlite3.Error as e:
                logger.error(f"Error closing database: {e}")
                raise StoreFailure(str(e)) from e
        logger.info("Database connection closed.")

    async def _run(self, statement: Statement, work: Callable[[sqlite3.Cursor], T]) -> T:
        """Execute one statement in the executor and post-process the cursor."""
        sql = statement.sql
        async with self._lock:
            conn = self._conn
            if conn is None:
                raise StoreFailure("Database connection is not open", statement=sql)

            def _execute() -> T:
                cursor = conn.execute(statement.sql, statement.params)
                try:
                    return work(cursor)
                finally:
                    cursor.close()

            try:
                return await asyncio.get_event_loop().run_in_executor(None, _execute)
            except (sqlite3.Error, OverflowError) as e:
                logger.error(f"Statement failed: {e}", extra={"sql": sql})
                raise StoreFailure(str(e), statement=sql) from e

    async def fetch_all(self, statement: Statement) -> list[dict[str, Any]]:
        """Return every row; an empty result is not an error."""
        return await self._run(statement, lambda cur: [dict(row) for row in cur.fetchall()])

    async def fetch_one(self, statement: Statement) -> dict[str, Any] | None:
        """Return the first row, or None when nothing matches."""

        def _first(cur: sqlite3.Cursor) -> dict[str, Any] | None:
            row = cur.fetchone()
            return dict(row) if row is not None else None

        return await self._run(statement, _first)

    async def insert(self, statement: Statement) -> int:
        """Run an INSERT and return the new row identifier."""
        return await self._run(statement, lambda cur: int(cur.lastrowid))

    async def update(self, statement: Statement) -> int:
        """Run an UPDATE and return the number of rows changed."""
        return await self._run(statement, lambda cur: cur.rowcount)

    async def delete(self, statement: Statement) -> int:
        """Run a DELETE and return the number of rows removed."""
        return await self._run(statement, lambda cur: cur.rowcount)

    async def create_schema(self, registry: SchemaRegistry) -> None:
        """Create every registered table that does not exist yet."""
        for ddl in registry.ddl_statements():
            await self._run(Statement(ddl), lambda cur: None)
        logger.info("Database schema initialized", extra={"tables": len(registry.ddl_statements())})
