"""Unit-specific fixtures (no I/O beyond in-memory SQLite)."""

from __future__ import annotations

from typing import TYPE_CHECKING

import aiosqlite
import pytest

from readlater.backend import SqliteBackend
from readlater.store import ItemStore

if TYPE_CHECKING:
    from tests.conftest import FakeClock, RecordingBackend


@pytest.fixture()
async def store(backend: RecordingBackend, clock: FakeClock):
    """ItemStore over a recording in-memory backend."""
    async with ItemStore(backend, clock=clock) as s:
        yield s


@pytest.fixture()
async def sqlite_backend():
    """SqliteBackend over an in-memory database."""
    async with aiosqlite.connect(":memory:") as db:
        b = SqliteBackend(db)
        await b.init_db()
        yield b
        await b.close()
