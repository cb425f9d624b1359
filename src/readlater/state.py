"""Application wiring: one backend and one item store built from Settings."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path

import aiosqlite
import structlog

from readlater.backend import MemoryBackend, PersistenceBackend, SqliteBackend
from readlater.config import Settings
from readlater.store import ItemStore

log = structlog.get_logger()


@dataclass
class AppState:
    settings: Settings
    backend: PersistenceBackend
    store: ItemStore


def _build_store(settings: Settings, backend: PersistenceBackend) -> ItemStore:
    return ItemStore(
        backend,
        key=settings.store.key,
        max_items=settings.store.max_items,
        compare_and_swap=settings.store.compare_and_swap,
    )


@asynccontextmanager
async def open_app_state(settings: Settings | None = None) -> AsyncIterator[AppState]:
    """Open the configured backend and an item store over it.

    On exit the store is closed before the backend, so no change notification
    reaches a half-torn-down store.
    """
    settings = settings or Settings()

    if settings.backend.kind == "memory":
        backend: PersistenceBackend = MemoryBackend()
        store = _build_store(settings, backend)
        log.info("app_state_opened", backend="memory")
        try:
            yield AppState(settings=settings, backend=backend, store=store)
        finally:
            store.close()
            await backend.close()
        return

    db_path = Path(settings.backend.db_path).expanduser()
    db_path.parent.mkdir(parents=True, exist_ok=True)
    async with aiosqlite.connect(db_path) as db:
        sqlite_backend = SqliteBackend(db)
        await sqlite_backend.init_db()
        store = _build_store(settings, sqlite_backend)
        await sqlite_backend.start_watching(settings.backend.poll_interval_seconds)
        log.info("app_state_opened", backend="sqlite", db_path=str(db_path))
        try:
            yield AppState(settings=settings, backend=sqlite_backend, store=store)
        finally:
            store.close()
            await sqlite_backend.close()
