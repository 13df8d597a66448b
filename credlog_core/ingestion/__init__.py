"""
Ingestion module for credential dump processing.

Provides the pieces that move dump files into the store:
- Directory watching (initial sweep plus live events)
- Batched, transactional entry insertion
- Shared ingestion context (store, ledger, cancellation token)
- Coordination, directory import and reporting
"""

from credlog_core.ingestion.batch_writer import BatchWriter, write_triples, DEFAULT_BATCH_SIZE
from credlog_core.ingestion.watcher import DirectoryWatcher, list_candidates
from credlog_core.ingestion.context import IngestionContext
from credlog_core.ingestion.coordinator import IngestionCoordinator, FileRun

__all__ = [
    "BatchWriter",
    "write_triples",
    "DEFAULT_BATCH_SIZE",
    "DirectoryWatcher",
    "list_candidates",
    "IngestionContext",
    "IngestionCoordinator",
    "FileRun",
]
