"""
Tests for directory watching and candidate detection.
"""
import asyncio
import time

import pytest

from credlog_core.errors import DirectoryError
from credlog_core.ingestion import DirectoryWatcher, list_candidates


async def wait_for_names(delivered, names, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if names <= {name for name, _ in delivered}:
            return True
        await asyncio.sleep(0.05)
    return False


def test_list_candidates_filters_by_suffix(dump_dir):
    (dump_dir / "b.txt").write_text("x")
    (dump_dir / "a.TXT").write_text("x")
    (dump_dir / "notes.log").write_text("x")
    (dump_dir / "partial.txt.part").write_text("x")
    (dump_dir / "nested.txt").mkdir()

    assert [path.name for path in list_candidates(dump_dir)] == ["a.TXT", "b.txt"]
    assert list_candidates(dump_dir / "missing") == []


def test_existing_files_delivered_on_start(dump_dir):
    (dump_dir / "a.txt").write_text("x")
    (dump_dir / "b.log").write_text("x")
    delivered = []

    async def run():
        watcher = DirectoryWatcher(dump_dir, lambda path, live: delivered.append((path.name, live)))
        try:
            existing = await watcher.start()
            return [path.name for path in existing], watcher.active
        finally:
            watcher.stop()

    existing, active = asyncio.run(run())
    assert existing == ["a.txt"]
    assert active is True
    assert delivered == [("a.txt", False)]
    print("  ✓ Pre-existing file delivered before live events")


def test_new_file_delivered_live(dump_dir):
    delivered = []

    async def run():
        watcher = DirectoryWatcher(dump_dir, lambda path, live: delivered.append((path.name, live)))
        await watcher.start()
        try:
            (dump_dir / "fresh.txt").write_text("https://a.com:u:p\n")
            (dump_dir / "ignored.csv").write_text("x")
            return await wait_for_names(delivered, {"fresh.txt"})
        finally:
            watcher.stop()

    assert asyncio.run(run()) is True
    assert ("fresh.txt", True) in delivered
    assert all(name != "ignored.csv" for name, _ in delivered)
    print("  ✓ Live create event delivered")


def test_renamed_into_place_delivered(dump_dir):
    delivered = []
    staging = dump_dir / "upload.tmp"

    async def run():
        watcher = DirectoryWatcher(dump_dir, lambda path, live: delivered.append((path.name, live)))
        await watcher.start()
        try:
            staging.write_text("https://a.com:u:p\n")
            staging.rename(dump_dir / "final.txt")
            return await wait_for_names(delivered, {"final.txt"})
        finally:
            watcher.stop()

    assert asyncio.run(run()) is True


def test_each_filename_delivered_once(dump_dir):
    delivered = []

    async def run():
        watcher = DirectoryWatcher(dump_dir, lambda path, live: delivered.append(path.name))
        watcher._deliver(dump_dir / "same.txt", live=True)
        watcher._deliver(dump_dir / "same.txt", live=True)
        watcher._deliver(dump_dir / "other.txt", live=False)

    asyncio.run(run())
    assert delivered == ["same.txt", "other.txt"]


def test_async_callback_is_scheduled(dump_dir):
    (dump_dir / "a.txt").write_text("x")
    seen = []

    async def on_file(path, live):
        await asyncio.sleep(0)
        seen.append(path.name)

    async def run():
        watcher = DirectoryWatcher(dump_dir, on_file)
        await watcher.start()
        try:
            for _ in range(50):
                if seen:
                    break
                await asyncio.sleep(0.01)
        finally:
            watcher.stop()

    asyncio.run(run())
    assert seen == ["a.txt"]


def test_missing_directory_is_created(tmp_path):
    target = tmp_path / "new" / "dumps"

    async def run():
        watcher = DirectoryWatcher(target, lambda path, live: None)
        await watcher.start()
        watcher.stop()
        watcher.stop()
        return watcher.active

    assert asyncio.run(run()) is False
    assert target.is_dir()


def test_uncreatable_directory_raises(tmp_path):
    blocker = tmp_path / "occupied"
    blocker.write_text("a file, not a directory")

    async def run():
        watcher = DirectoryWatcher(blocker, lambda path, live: None)
        await watcher.start()

    with pytest.raises(DirectoryError):
        asyncio.run(run())
