"""
Shared fixtures for credlog-core tests.

Every test gets its own dump directory and SQLite database under tmp_path.
"""
from pathlib import Path
from typing import Iterable

import pytest

from credlog_core.utils import load_config_from_dict


def write_dump(path: Path, lines: Iterable[str], newline: str = "\n") -> Path:
    """Write dump lines to ``path`` and return it."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(newline.join(lines).encode("utf-8") + newline.encode("utf-8"))
    return path


def make_lines(count: int, prefix: str = "site") -> list[str]:
    """``count`` distinct well-formed dump lines."""
    return [f"https://{prefix}{i}.example.com/login:user{i}@mail.com:pass{i}" for i in range(count)]


@pytest.fixture
def dump_dir(tmp_path):
    directory = tmp_path / "dumps"
    directory.mkdir()
    return directory


@pytest.fixture
def settings(tmp_path, dump_dir):
    return load_config_from_dict({
        "watcher": {"directory": dump_dir, "settle_delay_seconds": 0.0},
        "storage": {"sqlite_path": tmp_path / "credlog.db", "pool_size": 4, "busy_timeout_seconds": 10.0},
        "ingestion": {"batch_size": 100, "max_workers": 2, "queue_size": 8},
    })
