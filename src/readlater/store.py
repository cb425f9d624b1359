"""Item store: the single owner of the saved-items collection.

All reads and writes of saved items go through ``ItemStore``. The collection
lives in the backend as one blob; every mutation reads the whole blob, edits
it in memory and writes it back. Reads are served from a per-instance cache
that any change notification for the key drops.

Concurrency model
-----------------
Mutations on one instance are serialized by an ``asyncio.Lock`` and each does
exactly one backend ``get`` (never the cache) and at most one ``set``.
Between instances there is no lock: with ``compare_and_swap`` enabled (the
default) the write carries the version that was read, so a writer that lost
the race gets ``ConflictError`` instead of silently dropping the other
writer's change. With it disabled the last writer wins.

Cache invalidation bumps a generation counter. A read that started before an
invalidation finishes without warming the cache, so a view populated before a
known write is never served afterwards.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from collections.abc import Callable, Iterable
from enum import Enum, auto
from typing import TYPE_CHECKING

import structlog
from pydantic import ValidationError

from readlater.errors import (
    BackendUnavailableError,
    ConflictError,
    InvalidUrlError,
    StorageFullError,
)
from readlater.models import AddItemInput, Item, ItemCollection, favicon_url_for

if TYPE_CHECKING:
    from types import TracebackType

    from readlater.backend import PersistenceBackend

log = structlog.get_logger()

STORAGE_KEY = "items"
MAX_ITEMS = 512


class CacheState(Enum):
    """Cache lifecycle of one store instance.

    COLD -> POPULATING: a read found no valid cache and went to the backend
    POPULATING -> WARM: the read finished with no invalidation in between
    POPULATING -> COLD: the read failed or was overtaken by an invalidation
    WARM -> COLD: change notification, failed write, or close()
    """

    COLD = auto()
    POPULATING = auto()
    WARM = auto()


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


def _sorted_by_recency(items: Iterable[Item]) -> list[Item]:
    # sorted() is stable and keeps that stability with reverse=True.
    return sorted(items, key=lambda item: item.added_at, reverse=True)


class ItemStore:
    """Save-for-later list over a ``PersistenceBackend``.

    The store subscribes to its key on construction; ``close()`` (or leaving
    an ``async with`` block) cancels the subscription and drops the cache.
    """

    def __init__(
        self,
        backend: PersistenceBackend,
        *,
        key: str = STORAGE_KEY,
        max_items: int = MAX_ITEMS,
        compare_and_swap: bool = True,
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        self._backend = backend
        self._key = key
        self._max_items = max_items
        self._compare_and_swap = compare_and_swap
        self._clock = clock

        self._cache: tuple[Item, ...] | None = None
        self._state = CacheState.COLD
        self._generation = 0
        self._write_lock = asyncio.Lock()
        self._closed = False
        self._subscription = backend.subscribe(key, self.invalidate)
        self._log = log.bind(key=key)

    @property
    def state(self) -> CacheState:
        return self._state

    @property
    def max_items(self) -> int:
        return self._max_items

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> ItemStore:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._subscription.cancel()
        self.invalidate()

    def _ensure_open(self) -> None:
        if self._closed:
            raise RuntimeError("item store is closed")

    def invalidate(self) -> None:
        """Drop the cache. Safe to call any number of times."""
        self._generation += 1
        if self._cache is not None:
            self._log.debug("cache_invalidated", generation=self._generation)
        self._cache = None
        self._state = CacheState.COLD

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def _read_collection(self) -> tuple[list[Item], int]:
        snapshot = await self._backend.get(self._key)
        if snapshot.value is None:
            return [], snapshot.version
        try:
            collection = ItemCollection.model_validate(snapshot.value)
        except ValidationError as exc:
            self._log.error("collection_unreadable", version=snapshot.version, exc_info=True)
            raise BackendUnavailableError(
                f"stored collection under {self._key!r} is unreadable"
            ) from exc
        return collection.items, snapshot.version

    async def _current_items(self) -> tuple[Item, ...]:
        """Return cached items, reading through to the backend on a miss."""
        self._ensure_open()
        if self._state is CacheState.WARM and self._cache is not None:
            return self._cache

        generation = self._generation
        self._state = CacheState.POPULATING
        try:
            items, version = await self._read_collection()
        except BaseException:
            # Covers cancellation too; no read is in flight any more.
            if self._generation == generation:
                self._state = CacheState.COLD
            raise

        snapshot = tuple(items)
        if self._generation == generation and not self._closed:
            self._cache = snapshot
            self._state = CacheState.WARM
            self._log.debug("cache_populated", count=len(snapshot), version=version)
        return snapshot

    async def list(self) -> list[Item]:
        """All items, most recently added first."""
        return _sorted_by_recency(await self._current_items())

    async def search(self, query: str) -> list[Item]:
        """Items whose title or URL contains ``query``, case-insensitively.

        The query is a literal substring. An empty query returns ``list()``.
        """
        if not query:
            return await self.list()
        needle = query.lower()
        items = await self._current_items()
        return _sorted_by_recency(
            item for item in items if needle in item.title.lower() or needle in item.url.lower()
        )

    async def count(self) -> int:
        return len(await self._current_items())

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def _write_collection(self, items: list[Item], read_version: int) -> int:
        expected = read_version if self._compare_and_swap else None
        try:
            version = await self._backend.set(
                self._key, ItemCollection(items=items).to_blob(), expected_version=expected
            )
        except (BackendUnavailableError, ConflictError):
            self.invalidate()
            raise
        # Our own notification (if any) has already fired; the post-write
        # state is what the backend now holds.
        self.invalidate()
        if not self._closed:
            self._cache = tuple(items)
            self._state = CacheState.WARM
        return version

    def _new_id(self, taken: set[str]) -> str:
        while True:
            candidate = f"item-{self._clock()}-{uuid.uuid4().hex[:9]}"
            if candidate not in taken:
                return candidate

    async def add(self, url: str, title: str) -> Item:
        """Save ``url`` or, if it is already saved, refresh its title and timestamp.

        Raises:
            InvalidUrlError: ``url`` is not an absolute http(s) URL.
            StorageFullError: ``url`` is new and the list is at ``max_items``.
            BackendUnavailableError: the backend read or write failed.
            ConflictError: another writer committed between our read and write.
        """
        self._ensure_open()
        try:
            payload = AddItemInput(url=url, title=title)
        except ValidationError as exc:
            if any(error["loc"][:1] == ("url",) for error in exc.errors()):
                raise InvalidUrlError(f"Invalid URL: {url!r}") from exc
            raise

        async with self._write_lock:
            items, version = await self._read_collection()
            index = next((i for i, item in enumerate(items) if item.url == payload.url), None)
            now = self._clock()

            if index is not None:
                saved = items[index].model_copy(update={"title": payload.title, "added_at": now})
                items[index] = saved
                await self._write_collection(items, version)
                self._log.info("item_updated", item_id=saved.id, url=saved.url)
                return saved

            if len(items) >= self._max_items:
                self._log.warning("storage_full", count=len(items), max_items=self._max_items)
                raise StorageFullError(self._max_items)

            saved = Item(
                id=self._new_id({item.id for item in items}),
                url=payload.url,
                title=payload.title,
                favicon_url=favicon_url_for(payload.url),
                added_at=now,
            )
            items.append(saved)
            await self._write_collection(items, version)
            self._log.info("item_added", item_id=saved.id, url=saved.url, count=len(items))
            return saved

    async def remove(self, item_id: str) -> None:
        """Delete the item with ``item_id``. Removing an unknown id is a no-op."""
        self._ensure_open()
        async with self._write_lock:
            items, version = await self._read_collection()
            remaining = [item for item in items if item.id != item_id]
            await self._write_collection(remaining, version)
            if len(remaining) == len(items):
                self._log.debug("item_remove_noop", item_id=item_id)
            else:
                self._log.info("item_removed", item_id=item_id, count=len(remaining))
