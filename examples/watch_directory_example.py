"""
Example: Watching a Dump Directory

This example shows the three ways to feed dump files into the store:

1. One-off directory import with a summary table
2. Manual ingestion of a single file
3. Long-running watcher (initial sweep plus live events)

Run it from a directory containing ./data/*.txt, or point WATCHER_DIRECTORY
elsewhere.
"""

import asyncio
import sys

from credlog_core.errors import CredlogError
from credlog_core.ingestion import IngestionContext, IngestionCoordinator
from credlog_core.utils import get_settings


async def example_1_directory_import(coordinator: IngestionCoordinator):
    """
    Example 1: Import every unprocessed file once

    Files already in the ledger are skipped.
    """
    print("=" * 60)
    print("Example 1: Directory Import")
    print("=" * 60)

    report = await coordinator.import_directory(show_progress=True)
    coordinator.display_summary(report)

    for error in report.error_files:
        print(f"✗ {error['file']}: {error['error']}")
    print()


async def example_2_single_file(coordinator: IngestionCoordinator, filename: str):
    """
    Example 2: Ingest one file on request

    Asking twice for the same file returns the recorded count.
    """
    print("=" * 60)
    print("Example 2: Single File")
    print("=" * 60)

    try:
        count = await coordinator.process_single_file(filename)
    except CredlogError as e:
        print(f"✗ {filename}: {e}")
    else:
        print(f"✓ {filename}: {count} entries")

    duplicates = await coordinator.list_duplicates()
    print(f"✓ {duplicates.found} duplicate entries in the store")
    print(f"✓ {await coordinator.total_records()} entries recorded in the ledger")
    print()


async def example_3_watch(coordinator: IngestionCoordinator):
    """
    Example 3: Watch until interrupted

    Drop new .txt files into the directory while this runs.
    """
    print("=" * 60)
    print("Example 3: Live Watcher (Ctrl+C to stop)")
    print("=" * 60)

    await coordinator.start()
    status = await coordinator.query_watcher_status()
    print(f"Watching {status.watching}: {status.file_count} files, {status.processed_count} processed")

    await coordinator.serve_forever()


async def main(argv):
    settings = get_settings()
    async with await IngestionContext.open(settings) as context:
        coordinator = IngestionCoordinator(context)

        await example_1_directory_import(coordinator)
        if len(argv) > 1:
            await example_2_single_file(coordinator, argv[1])
        await example_3_watch(coordinator)


if __name__ == "__main__":
    print("\nCredential Dump Ingestion Examples")
    print("==================================\n")

    try:
        asyncio.run(main(sys.argv))
    except KeyboardInterrupt:
        print("\nStopped.")
