"""
SQLite credential store.

Owns the ``entries`` table and a bounded pool of aiosqlite connections. Each
file run leases one connection for its whole duration; leases block when the
pool is exhausted and are always returned, rolling back any open transaction.
"""
from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, List, Optional, Union

import aiosqlite

from credlog_core.errors import StoreError
from credlog_core.storage.schemas import CredentialEntry
from credlog_core.utils.logger import get_logger

logger = get_logger(__name__)

ENTRIES_DDL = """
    CREATE TABLE IF NOT EXISTS entries (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        url TEXT NOT NULL,
        username TEXT NOT NULL,
        password TEXT NOT NULL,
        created TEXT NOT NULL
    )
"""

ENTRIES_KEY_INDEX_DDL = """
    CREATE INDEX IF NOT EXISTS idx_entries_triple
    ON entries (url, username, password, id)
"""

INSERT_ENTRY_SQL = "INSERT INTO entries (url, username, password, created) VALUES (?, ?, ?, ?)"


class CredentialStore:
    """
    Async SQLite store with a bounded connection pool.

    Example:
        >>> async with CredentialStore("./data/credlog.db", pool_size=10) as store:
        ...     async with store.lease() as conn:
        ...         await conn.executemany(INSERT_ENTRY_SQL, rows)
        ...         await conn.commit()
        ...     total = await store.count_entries()
    """

    def __init__(
        self,
        db_path: Union[str, Path] = "./data/credlog.db",
        pool_size: int = 10,
        busy_timeout: float = 30.0
    ):
        """
        Initialize the store.

        Args:
            db_path: Path to SQLite database file
            pool_size: Maximum number of simultaneously leased connections
            busy_timeout: Seconds a connection waits on a locked database
        """
        self.db_path = Path(db_path)
        self.pool_size = pool_size
        self.busy_timeout = busy_timeout
        self._connections: List[aiosqlite.Connection] = []
        self._idle: List[aiosqlite.Connection] = []
        self._slots: Optional[asyncio.Semaphore] = None

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    @property
    def connected(self) -> bool:
        return self._slots is not None

    async def connect(self):
        """Open the first connection and create tables."""
        if self.connected:
            return
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = await self._open_connection()
        try:
            await conn.execute(ENTRIES_DDL)
            await conn.execute(ENTRIES_KEY_INDEX_DDL)
            await conn.commit()
        except aiosqlite.Error as e:
            await conn.close()
            raise StoreError(f"Failed to create entries table: {e}") from e
        self._connections.append(conn)
        self._idle.append(conn)
        self._slots = asyncio.Semaphore(self.pool_size)
        logger.info(f"Credential store connected: {self.db_path} (pool size {self.pool_size})")

    async def close(self):
        """Close every pooled connection."""
        connections, self._connections, self._idle = self._connections, [], []
        self._slots = None
        for conn in connections:
            await conn.close()
        if connections:
            logger.debug(f"Closed {len(connections)} store connections")

    async def _open_connection(self) -> aiosqlite.Connection:
        try:
            conn = await aiosqlite.connect(str(self.db_path), timeout=self.busy_timeout)
            await conn.execute("PRAGMA journal_mode=WAL")
        except (aiosqlite.Error, OSError) as e:
            raise StoreError(f"Failed to open database {self.db_path}: {e}") from e
        return conn

    @asynccontextmanager
    async def lease(self) -> AsyncIterator[aiosqlite.Connection]:
        """
        Lease a connection for the duration of the ``async with`` block.

        Waits while all ``pool_size`` connections are leased. The connection is
        rolled back if the block left a transaction open.

        Raises:
            StoreError: If the store is not connected or a connection cannot be opened
        """
        slots = self._slots
        if slots is None:
            raise StoreError("Credential store is not connected")

        await slots.acquire()
        conn: Optional[aiosqlite.Connection] = None
        try:
            if self._idle:
                conn = self._idle.pop()
            else:
                conn = await self._open_connection()
                self._connections.append(conn)
            yield conn
        finally:
            if conn is not None:
                await self._return(conn)
            slots.release()

    async def _return(self, conn: aiosqlite.Connection) -> None:
        if conn not in self._connections:
            # store was closed while the lease was held
            await conn.close()
            return
        try:
            if conn.in_transaction:
                await conn.rollback()
        except aiosqlite.Error as e:
            logger.warning(f"Discarding connection after failed rollback: {e}")
            self._connections.remove(conn)
            await conn.close()
            return
        self._idle.append(conn)

    # === Entry queries ===

    async def count_entries(self) -> int:
        """Total number of stored entries."""
        async with self.lease() as conn:
            async with conn.execute("SELECT COUNT(*) FROM entries") as cursor:
                row = await cursor.fetchone()
                return row[0] if row else 0

    async def list_entries(self, limit: int = 100, offset: int = 0) -> List[CredentialEntry]:
        """Entries newest first."""
        entries = []
        async with self.lease() as conn:
            async with conn.execute(
                "SELECT id, url, username, password, created FROM entries ORDER BY id DESC LIMIT ? OFFSET ?",
                (limit, offset)
            ) as cursor:
                async for row in cursor:
                    entries.append(CredentialEntry.from_row(row))
        return entries


__all__ = ["CredentialStore", "INSERT_ENTRY_SQL", "ENTRIES_DDL"]
