"""Integration test fixtures.

Two independent aiosqlite connections on one temporary database file stand in
for two processes (or two devices after sync) sharing the same account.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import aiosqlite
import pytest

from readlater.backend import SqliteBackend

if TYPE_CHECKING:
    from pathlib import Path


@pytest.fixture()
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "readlater.db"


@pytest.fixture()
async def backend_pair(db_path: Path):
    """(local, remote) backends over separate connections to the same file."""
    async with aiosqlite.connect(db_path) as local_db, aiosqlite.connect(db_path) as remote_db:
        local = SqliteBackend(local_db)
        remote = SqliteBackend(remote_db)
        await local.init_db()
        await remote.init_db()
        yield local, remote
        await local.close()
        await remote.close()
