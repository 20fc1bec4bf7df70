"""Database connection utilities."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from pathlib import Path

import aiosqlite


class Database:
    """Async SQLite database wrapper.

    Rows come back as ``aiosqlite.Row`` so readers can map columns by name.
    There is one connection, so reads and writes share one lock: a read never
    runs while a transaction is open and only ever sees committed rows.
    Inside a transaction use ``execute_read_in_transaction``.
    """

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self._connection: aiosqlite.Connection | None = None
        self._lock = asyncio.Lock()

    async def connect(self) -> None:
        if self._connection is not None:
            await self._connection.close()
        self._connection = await aiosqlite.connect(self.db_path)
        self._connection.row_factory = aiosqlite.Row
        await self._connection.execute("PRAGMA foreign_keys = ON")
        await self._init_schema()

    async def _init_schema(self) -> None:
        schema_path = Path(__file__).parent / "schema.sql"
        schema = schema_path.read_text(encoding="utf-8")
        await self._connection.executescript(schema)
        await self._connection.commit()

    async def execute_read(self, query: str, params=None):
        """Execute a read query and return all results."""
        async with self._lock, self._connection.execute(query, params or []) as cursor:
            return await cursor.fetchall()

    async def execute_write(self, query: str, params=None) -> int | None:
        """Execute a single write and commit. Returns the last inserted rowid."""
        async with self._lock:
            cursor = await self._connection.execute(query, params or [])
            await self._connection.commit()
            return cursor.lastrowid

    # =========================================================================
    # Transaction support for atomic multi-row operations
    # =========================================================================

    @asynccontextmanager
    async def transaction(self):
        """Context manager for explicit transaction control.

        All writes succeed together or all roll back on error.

        Usage:
            async with db.transaction():
                await db.execute_write_no_commit(...)
                await db.execute_write_no_commit(...)
            # Commits on exit, rolls back on exception
        """
        async with self._lock:
            try:
                yield
                await self._connection.commit()
            except Exception:
                await self._connection.rollback()
                raise

    async def execute_write_no_commit(self, query: str, params=None) -> aiosqlite.Cursor:
        """Execute write without immediate commit (use within transaction).

        Returns the cursor so callers can check ``rowcount``/``lastrowid``.
        """
        return await self._connection.execute(query, params or [])

    async def execute_read_in_transaction(self, query: str, params=None):
        """Read inside an open transaction (sees its uncommitted writes)."""
        async with self._connection.execute(query, params or []) as cursor:
            return await cursor.fetchall()

    async def close(self) -> None:
        if self._connection:
            await self._connection.close()
