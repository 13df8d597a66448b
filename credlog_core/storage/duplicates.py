"""
Duplicate resolution for stored credential entries.

Entries sharing an identical (url, username, password) form a duplicate group.
Within a group rows are ranked by ascending id; the first row (the earliest
insert) is retained and every other row is a duplicate.
"""
from __future__ import annotations

from typing import List, Sequence

import aiosqlite

from credlog_core.errors import StoreError
from credlog_core.storage.schemas import CredentialEntry, DuplicateReport
from credlog_core.storage.sqlite import CredentialStore
from credlog_core.utils.logger import get_logger

logger = get_logger(__name__)

FIND_DUPLICATES_SQL = """
    WITH ranked AS (
        SELECT id, url, username, password, created,
               ROW_NUMBER() OVER (PARTITION BY url, username, password ORDER BY id) AS row_num
        FROM entries
    )
    SELECT id, url, username, password, created
    FROM ranked
    WHERE row_num > 1
    ORDER BY url, username, password, id
"""

# Stay well under SQLite's bound-parameter limit
DELETE_CHUNK_SIZE = 500


class DuplicateResolver:
    """
    Find, and optionally delete, duplicate credential entries.

    Example:
        >>> resolver = DuplicateResolver(store)
        >>> report = await resolver.find_duplicates()
        >>> print(f"{report.found} duplicates")
        >>> report = await resolver.remove_duplicates()
        >>> print(f"removed {report.removed}")
    """

    def __init__(self, store: CredentialStore):
        self.store = store

    async def resolve(self, remove: bool = False) -> DuplicateReport:
        """Read-only listing, or identification plus deletion when ``remove`` is set."""
        if remove:
            return await self.remove_duplicates()
        return await self.find_duplicates()

    async def find_duplicates(self) -> DuplicateReport:
        """
        List every row that is not the retained member of its group.

        Returns:
            DuplicateReport with ``removed`` left as None
        """
        try:
            async with self.store.lease() as conn:
                rows = await self._select_duplicates(conn)
        except aiosqlite.Error as e:
            raise StoreError(f"Failed to identify duplicates: {e}") from e

        logger.info(f"Found {len(rows)} duplicate entries")
        return DuplicateReport(found=len(rows), rows=rows)

    async def remove_duplicates(self) -> DuplicateReport:
        """
        Identify and delete duplicates in one transaction.

        Either every identified duplicate is deleted or, on any failure, none
        is: the transaction is rolled back and StoreError is raised.

        Returns:
            DuplicateReport with the deleted rows and the deleted count
        """
        async with self.store.lease() as conn:
            try:
                await conn.execute("BEGIN IMMEDIATE")
                rows = await self._select_duplicates(conn)
                removed = await self._delete_ids(conn, [row.id for row in rows])
                await conn.commit()
            except aiosqlite.Error as e:
                await conn.rollback()
                raise StoreError(f"Failed to remove duplicates: {e}") from e

        logger.info(f"Removed {removed} duplicate entries")
        return DuplicateReport(found=len(rows), removed=removed, rows=rows)

    async def _select_duplicates(self, conn: aiosqlite.Connection) -> List[CredentialEntry]:
        rows = []
        async with conn.execute(FIND_DUPLICATES_SQL) as cursor:
            async for row in cursor:
                rows.append(CredentialEntry.from_row(row))
        return rows

    async def _delete_ids(self, conn: aiosqlite.Connection, ids: Sequence[int]) -> int:
        removed = 0
        for start in range(0, len(ids), DELETE_CHUNK_SIZE):
            chunk = ids[start:start + DELETE_CHUNK_SIZE]
            placeholders = ",".join("?" for _ in chunk)
            cursor = await conn.execute(f"DELETE FROM entries WHERE id IN ({placeholders})", chunk)
            removed += cursor.rowcount
            await cursor.close()
        return removed


__all__ = ["DuplicateResolver", "FIND_DUPLICATES_SQL"]
