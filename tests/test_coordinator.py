"""
End-to-end tests for the ingestion coordinator.

Each test opens a real context (SQLite store plus ledger) in tmp_path.
"""
import asyncio
import time

import pytest

from conftest import make_lines, write_dump
from credlog_core.errors import (
    BatchFlushError,
    DirectoryError,
    IngestionInProgress,
    IngestionTimeout,
    SourceFileError,
)
from credlog_core.ingestion import IngestionContext, IngestionCoordinator
from credlog_core.ingestion import coordinator as coordinator_module

FAIL_ON_BOOM_TRIGGER = """
    CREATE TRIGGER fail_on_boom BEFORE INSERT ON entries
    WHEN NEW.username = 'boom'
    BEGIN
        SELECT RAISE(ABORT, 'boom rejected');
    END
"""


async def install_trigger(store, ddl=FAIL_ON_BOOM_TRIGGER):
    async with store.lease() as conn:
        await conn.execute(ddl)
        await conn.commit()


async def wait_until_known(ledger, filename, timeout=10.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if await ledger.is_known(filename):
            return True
        await asyncio.sleep(0.05)
    return False


def test_directory_import_skips_known_files(settings, dump_dir):
    write_dump(dump_dir / "a.txt", make_lines(500, prefix="a"))
    write_dump(dump_dir / "b.txt", make_lines(500, prefix="b"))

    async def run():
        async with await IngestionContext.open(settings) as context:
            await context.ledger.record("b.txt", 500)
            coordinator = IngestionCoordinator(context)
            report = await coordinator.import_directory()
            record_b = await context.ledger.get_record("b.txt")
            return report, record_b, await context.store.count_entries(), await coordinator.total_records()

    report, record_b, stored, total = asyncio.run(run())
    assert report.total_entries == 500
    assert report.files_processed == ["a.txt"]
    assert report.skipped_files == 1
    assert report.total_files == 2
    assert report.errors == 0
    assert record_b.entries_added == 500
    assert stored == 500
    assert total == 1000
    print(f"  ✓ Imported {report.total_entries} entries, skipped {report.skipped_files} file")


def test_directory_import_continues_after_file_failure(settings, dump_dir):
    write_dump(dump_dir / "good.txt", make_lines(20))
    write_dump(dump_dir / "bad.txt", ["https://x.com:boom:p"])

    async def run():
        async with await IngestionContext.open(settings) as context:
            await install_trigger(context.store)
            coordinator = IngestionCoordinator(context)
            report = await coordinator.import_directory()
            return report, await context.ledger.is_known("bad.txt"), await context.ledger.claim("bad.txt")

    report, bad_known, bad_claimable = asyncio.run(run())
    assert report.files_processed == ["good.txt"]
    assert report.total_entries == 20
    assert report.errors == 1
    assert report.error_files[0]["file"] == "bad.txt"
    assert bad_known is False
    assert bad_claimable is True


def test_directory_import_missing_directory(settings, tmp_path):
    async def run():
        async with await IngestionContext.open(settings) as context:
            await IngestionCoordinator(context).import_directory(tmp_path / "nope")

    with pytest.raises(DirectoryError):
        asyncio.run(run())


def test_trigger_directory_import_returns_task(settings, dump_dir):
    write_dump(dump_dir / "a.txt", make_lines(5))

    async def run():
        async with await IngestionContext.open(settings) as context:
            coordinator = IngestionCoordinator(context)
            task = coordinator.trigger_directory_import()
            assert isinstance(task, asyncio.Task)
            return await task

    report = asyncio.run(run())
    assert report.total_entries == 5


def test_process_single_file_is_idempotent(settings, dump_dir):
    write_dump(dump_dir / "one.txt", make_lines(42), newline="\r\n")

    async def run():
        async with await IngestionContext.open(settings) as context:
            coordinator = IngestionCoordinator(context)
            first = await coordinator.process_single_file(dump_dir / "one.txt")
            second = await coordinator.process_single_file("one.txt")
            return first, second, await context.store.count_entries()

    first, second, stored = asyncio.run(run())
    assert first == 42
    assert second == 42
    assert stored == 42
    print("  ✓ Second request returned the recorded count")


def test_process_single_file_missing(settings):
    async def run():
        async with await IngestionContext.open(settings) as context:
            coordinator = IngestionCoordinator(context)
            with pytest.raises(SourceFileError):
                await coordinator.process_single_file("absent.txt")
            with pytest.raises(SourceFileError):
                await coordinator.process_single_file("../outside.txt")
            return await context.ledger.claim("absent.txt")

    assert asyncio.run(run()) is True


def test_process_single_file_in_flight(settings, dump_dir):
    write_dump(dump_dir / "busy.txt", make_lines(3))

    async def run():
        async with await IngestionContext.open(settings) as context:
            await context.ledger.claim("busy.txt")
            with pytest.raises(IngestionInProgress):
                await IngestionCoordinator(context).process_single_file("busy.txt")

    asyncio.run(run())


def test_failed_run_can_be_retried(settings, dump_dir):
    lines = make_lines(150) + ["https://x.com:boom:p"] + make_lines(10, prefix="tail")
    write_dump(dump_dir / "flaky.txt", lines)

    async def run():
        async with await IngestionContext.open(settings) as context:
            await install_trigger(context.store)
            coordinator = IngestionCoordinator(context)
            with pytest.raises(BatchFlushError) as excinfo:
                await coordinator.process_single_file("flaky.txt")
            partial = await context.store.count_entries()
            known_after_failure = await context.ledger.is_known("flaky.txt")

            await install_trigger(context.store, "DROP TRIGGER fail_on_boom")
            retried = await coordinator.process_single_file("flaky.txt")
            return excinfo.value.committed, partial, known_after_failure, retried

    committed, partial, known_after_failure, retried = asyncio.run(run())
    # batch size 100: the first batch is committed, the second fails
    assert committed == 100
    assert partial == 100
    assert known_after_failure is False
    assert retried == 161


def test_cancelled_context_abandons_run(settings, dump_dir):
    write_dump(dump_dir / "late.txt", make_lines(3))

    async def run():
        async with await IngestionContext.open(settings) as context:
            context.cancel()
            with pytest.raises(IngestionTimeout):
                await IngestionCoordinator(context).process_single_file("late.txt")
            return await context.store.count_entries(), await context.ledger.is_known("late.txt")

    stored, known = asyncio.run(run())
    assert stored == 0
    assert known is False


def test_file_timeout(settings, dump_dir, monkeypatch):
    write_dump(dump_dir / "slow.txt", make_lines(3))
    settings.ingestion.file_timeout_seconds = 0.05

    def slow_take(triples, count):
        time.sleep(0.5)
        return []

    monkeypatch.setattr(coordinator_module, "take", slow_take)

    async def run():
        async with await IngestionContext.open(settings) as context:
            with pytest.raises(IngestionTimeout) as excinfo:
                await IngestionCoordinator(context).process_single_file("slow.txt")
            return excinfo.value, await context.ledger.claim("slow.txt")

    error, claimable = asyncio.run(run())
    assert isinstance(error, TimeoutError)
    assert error.committed == 0
    assert claimable is True


def test_watcher_ingests_existing_and_new_files(settings, dump_dir):
    # new files are read after the settle delay, existing ones immediately
    settings.watcher.settle_delay_seconds = 0.5
    write_dump(dump_dir / "existing.txt", make_lines(10, prefix="e"))

    async def run():
        async with await IngestionContext.open(settings) as context:
            coordinator = IngestionCoordinator(context)
            await coordinator.start()
            try:
                assert await wait_until_known(context.ledger, "existing.txt")
                write_dump(dump_dir / "arrived.txt", make_lines(7, prefix="n"))
                assert await wait_until_known(context.ledger, "arrived.txt")
                status = await coordinator.query_watcher_status()
                processed = await coordinator.list_processed_files()
            finally:
                await coordinator.stop()
            return status, processed, await context.store.count_entries()

    status, processed, stored = asyncio.run(run())
    assert status.watcher_active is True
    assert status.watching == str(dump_dir)
    assert status.files == ["arrived.txt", "existing.txt"]
    assert status.file_count == 2
    assert status.processed_filenames == ["arrived.txt", "existing.txt"]
    assert status.processed_count == 2
    dumped = status.model_dump()
    assert dumped["file_count"] == 2
    assert dumped["processed_count"] == 2
    assert {record.filename: record.entries_added for record in processed} == {
        "existing.txt": 10,
        "arrived.txt": 7,
    }
    assert stored == 17
    print("  ✓ Watcher ingested pre-existing and newly created files")


def test_watch_triggered_failure_does_not_stop_coordinator(settings, dump_dir):
    settings.watcher.settle_delay_seconds = 0.5
    write_dump(dump_dir / "bad.txt", ["https://x.com:boom:p"])

    async def run():
        async with await IngestionContext.open(settings) as context:
            await install_trigger(context.store)
            coordinator = IngestionCoordinator(context)
            await coordinator.start()
            try:
                write_dump(dump_dir / "good.txt", make_lines(4))
                assert await wait_until_known(context.ledger, "good.txt")
                return await context.ledger.is_known("bad.txt"), coordinator.pool.running
            finally:
                await coordinator.stop()

    bad_known, pool_running = asyncio.run(run())
    assert bad_known is False
    assert pool_running is True


def test_start_fails_for_uncreatable_directory(settings, tmp_path):
    blocker = tmp_path / "occupied"
    blocker.write_text("not a directory")

    async def run():
        async with await IngestionContext.open(settings) as context:
            coordinator = IngestionCoordinator(context)
            with pytest.raises(DirectoryError):
                await coordinator.start(blocker)
            return coordinator.pool.running

    assert asyncio.run(run()) is False


def test_list_duplicates_through_coordinator(settings, dump_dir):
    write_dump(dump_dir / "a.txt", ["https://dup.com:u:p", "https://dup.com:u:p", "https://solo.com:u:p"])

    async def run():
        async with await IngestionContext.open(settings) as context:
            coordinator = IngestionCoordinator(context)
            await coordinator.process_single_file("a.txt")
            listed = await coordinator.list_duplicates()
            removed = await coordinator.list_duplicates(remove=True)
            return listed, removed, await context.store.count_entries(), await coordinator.total_records()

    listed, removed, stored, total = asyncio.run(run())
    assert listed.found == 1
    assert removed.removed == 1
    assert stored == 2
    # ledger counts are insert-time values
    assert total == 3


def test_serve_forever_stops_on_cancel(settings, dump_dir):
    write_dump(dump_dir / "a.txt", make_lines(3))

    async def run():
        async with await IngestionContext.open(settings) as context:
            coordinator = IngestionCoordinator(context)
            server = asyncio.create_task(coordinator.serve_forever())
            assert await wait_until_known(context.ledger, "a.txt")
            context.cancel()
            await asyncio.wait_for(server, timeout=10)
            return coordinator.watcher.active, coordinator.pool.running

    watcher_active, pool_running = asyncio.run(run())
    assert watcher_active is False
    assert pool_running is False


def test_concurrent_requests_ingest_file_once(settings, dump_dir):
    write_dump(dump_dir / "a.txt", make_lines(250))

    async def run():
        async with await IngestionContext.open(settings) as context:
            coordinator = IngestionCoordinator(context)
            results = await asyncio.gather(
                coordinator.import_directory(),
                coordinator.import_directory(),
                coordinator.process_single_file("a.txt"),
                return_exceptions=True,
            )
            record = await context.ledger.get_record("a.txt")
            return results, record, await context.store.count_entries()

    (first, second, single), record, stored = asyncio.run(run())
    assert stored == 250
    assert record.entries_added == 250
    assert first.total_entries + second.total_entries in (0, 250)
    assert first.errors == second.errors == 0
    if isinstance(single, BaseException):
        assert isinstance(single, IngestionInProgress)
    else:
        assert single == 250
    print("  ✓ Concurrent requests stored the file once")


def test_watcher_and_manual_request_ingest_file_once(settings, dump_dir):
    write_dump(dump_dir / "a.txt", make_lines(120))

    async def run():
        async with await IngestionContext.open(settings) as context:
            coordinator = IngestionCoordinator(context)
            await coordinator.start()
            try:
                try:
                    await coordinator.process_single_file("a.txt")
                except IngestionInProgress:
                    pass
                assert await wait_until_known(context.ledger, "a.txt")
                await coordinator.pool.join()
            finally:
                await coordinator.stop()
            return await context.store.count_entries()

    assert asyncio.run(run()) == 120
