"""
Process-wide ingestion state, built once at startup.

The context bundles everything that file runs share: settings, the entry
store and its connection pool, the processed-file ledger and the
cancellation token. It is passed explicitly to the coordinator and its
workers.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Optional

from credlog_core.storage.ledger import ProcessedLedger
from credlog_core.storage.sqlite import CredentialStore
from credlog_core.utils.config import CredlogSettings, get_settings
from credlog_core.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class IngestionContext:
    """Shared state for one running pipeline."""

    settings: CredlogSettings
    store: CredentialStore
    ledger: ProcessedLedger
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event)

    @classmethod
    async def open(cls, settings: Optional[CredlogSettings] = None) -> "IngestionContext":
        """
        Connect the store, create the ledger and load known filenames.

        Raises:
            StoreError: If the database cannot be opened or read
        """
        settings = settings or get_settings()
        storage = settings.storage

        store = CredentialStore(
            storage.sqlite_path,
            pool_size=storage.pool_size,
            busy_timeout=storage.busy_timeout_seconds,
        )
        await store.connect()
        try:
            ledger = ProcessedLedger(storage.sqlite_path, busy_timeout=storage.busy_timeout_seconds)
            await ledger.load()
        except BaseException:
            await store.close()
            raise
        return cls(settings=settings, store=store, ledger=ledger)

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def cancel(self) -> None:
        """Signal every running and queued file run to stop."""
        self.cancel_event.set()

    async def close(self) -> None:
        await self.store.close()
        self.ledger.close()
        logger.debug("Ingestion context closed")

    async def __aenter__(self) -> "IngestionContext":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


__all__ = ["IngestionContext"]
