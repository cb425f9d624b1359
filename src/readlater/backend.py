"""Persistence backends: asynchronous key -> JSON blob stores with change notification.

A backend holds whole blobs under string keys and knows nothing about items.
Each key carries an integer version that increases by one on every committed
write; ``set(..., expected_version=n)`` only commits if the stored version is
still ``n`` and raises ``ConflictError`` otherwise. ``expected_version=None``
is an unconditional write (last writer wins).

Failures are never swallowed: every read or write error surfaces as
``BackendUnavailableError`` so the item store can hand it to its caller.

Listeners registered with ``subscribe`` receive no payload, only the fact that
the key changed. They may be called for writes made through this backend
object and, for ``SqliteBackend``, for commits from other connections picked
up by ``poll_changes``.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Protocol

import aiosqlite
import structlog

from readlater.errors import BackendUnavailableError, ConflictError

log = structlog.get_logger()

Listener = Callable[[], None]


@dataclass(frozen=True)
class Snapshot:
    """A blob as read, plus the version it was read at (0 when the key is absent)."""

    value: dict[str, Any] | None
    version: int = 0


class Subscription:
    """Handle returned by ``subscribe``; ``cancel()`` detaches the listener."""

    def __init__(self, on_cancel: Callable[[], None]) -> None:
        self._on_cancel = on_cancel
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self) -> None:
        if not self._active:
            return
        self._active = False
        self._on_cancel()


class PersistenceBackend(Protocol):
    async def get(self, key: str) -> Snapshot: ...

    async def set(
        self, key: str, value: dict[str, Any], *, expected_version: int | None = None
    ) -> int: ...

    def subscribe(self, key: str, listener: Listener) -> Subscription: ...

    async def close(self) -> None: ...


class _ListenerRegistry:
    def __init__(self) -> None:
        self._by_key: dict[str, list[Listener]] = {}

    def add(self, key: str, listener: Listener) -> Subscription:
        bucket = self._by_key.setdefault(key, [])
        bucket.append(listener)

        def _remove() -> None:
            current = self._by_key.get(key)
            if current is None:
                return
            with contextlib.suppress(ValueError):
                current.remove(listener)
            if not current:
                del self._by_key[key]

        return Subscription(_remove)

    def keys(self) -> list[str]:
        return list(self._by_key)

    def notify(self, key: str) -> None:
        for listener in list(self._by_key.get(key, ())):
            # One faulty listener must not turn a committed write into a failure.
            try:
                listener()
            except Exception:
                log.error("change_listener_error", key=key, exc_info=True)


def _encode(key: str, value: dict[str, Any]) -> str:
    try:
        return json.dumps(value, separators=(",", ":"))
    except (TypeError, ValueError) as exc:
        raise BackendUnavailableError(f"value for {key!r} is not JSON serializable") from exc


def _decode(key: str, blob: str) -> dict[str, Any]:
    try:
        value = json.loads(blob)
    except json.JSONDecodeError as exc:
        log.error("backend_corrupt_blob", key=key, exc_info=True)
        raise BackendUnavailableError(f"stored value for {key!r} is not valid JSON") from exc
    if not isinstance(value, dict):
        log.error("backend_corrupt_blob", key=key, type=type(value).__name__)
        raise BackendUnavailableError(f"stored value for {key!r} is not an object")
    return value


# ----------------------------------------------------------------------
# In-process backend
# ----------------------------------------------------------------------


class MemoryBackend:
    """Dict-backed backend holding serialized blobs.

    Several item stores sharing one ``MemoryBackend`` behave like several
    windows signed in to the same account. Every call yields to the event
    loop at least once; ``latency`` (seconds) widens that suspension point.
    """

    def __init__(self, *, latency: float = 0.0) -> None:
        self._blobs: dict[str, tuple[str, int]] = {}
        self._listeners = _ListenerRegistry()
        self._latency = latency
        self._closed = False

    async def _suspend(self) -> None:
        await asyncio.sleep(self._latency)
        if self._closed:
            raise BackendUnavailableError("backend is closed")

    async def get(self, key: str) -> Snapshot:
        await self._suspend()
        entry = self._blobs.get(key)
        if entry is None:
            return Snapshot(None, 0)
        blob, version = entry
        return Snapshot(_decode(key, blob), version)

    async def set(
        self, key: str, value: dict[str, Any], *, expected_version: int | None = None
    ) -> int:
        blob = _encode(key, value)
        await self._suspend()
        current = self._blobs.get(key, ("", 0))[1]
        if expected_version is not None and expected_version != current:
            log.info(
                "backend_write_conflict",
                key=key,
                expected_version=expected_version,
                actual_version=current,
            )
            raise ConflictError(key, expected_version, current)
        version = current + 1
        self._blobs[key] = (blob, version)
        self._listeners.notify(key)
        return version

    def subscribe(self, key: str, listener: Listener) -> Subscription:
        return self._listeners.add(key, listener)

    async def close(self) -> None:
        self._closed = True


# ----------------------------------------------------------------------
# SQLite backend
# ----------------------------------------------------------------------

_CREATE_KV_TABLE = """
CREATE TABLE IF NOT EXISTS kv_store (
    key         TEXT PRIMARY KEY,
    value       TEXT NOT NULL,
    version     INTEGER NOT NULL,
    updated_at  TEXT NOT NULL
)
"""

_UPSERT = (
    "INSERT INTO kv_store (key, value, version, updated_at) VALUES (?, ?, 1, ?) "
    "ON CONFLICT(key) DO UPDATE SET value = excluded.value, "
    "version = kv_store.version + 1, updated_at = excluded.updated_at"
)
_INSERT_NEW = (
    "INSERT OR IGNORE INTO kv_store (key, value, version, updated_at) VALUES (?, ?, 1, ?)"
)
_UPDATE_IF_VERSION = (
    "UPDATE kv_store SET value = ?, version = version + 1, updated_at = ? "
    "WHERE key = ? AND version = ?"
)


class SqliteBackend:
    """SQLite-backed key/blob store over one ``aiosqlite`` connection.

    The connection is owned by the caller. Several processes (or several
    connections in one process) may open the same database file; commits made
    elsewhere are detected through ``PRAGMA data_version`` either by calling
    ``poll_changes`` or by the background task started with
    ``start_watching``.
    """

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db
        self._listeners = _ListenerRegistry()
        # Serializes statements on the shared connection so a read never sees
        # another coroutine's uncommitted write.
        self._lock = asyncio.Lock()
        self._data_version: int | None = None
        # Last version listeners were told about, per key. Reads must not advance it.
        self._known_versions: dict[str, int] = {}
        self._watcher: asyncio.Task[None] | None = None

    async def init_db(self) -> None:
        """Create the table and set WAL mode. Called once at startup."""
        await self._db.execute("PRAGMA journal_mode = WAL")
        await self._db.execute(_CREATE_KV_TABLE)
        await self._db.commit()

    async def get(self, key: str) -> Snapshot:
        async with self._lock:
            try:
                cursor = await self._db.execute(
                    "SELECT value, version FROM kv_store WHERE key = ?", (key,)
                )
                row = await cursor.fetchone()
            except aiosqlite.Error as exc:
                log.warning("backend_read_error", key=key, exc_info=True)
                raise BackendUnavailableError(f"failed to read {key!r}") from exc
        if row is None:
            return Snapshot(None, 0)
        return Snapshot(_decode(key, row[0]), row[1])

    async def set(
        self, key: str, value: dict[str, Any], *, expected_version: int | None = None
    ) -> int:
        blob = _encode(key, value)
        now = datetime.now(UTC).isoformat()
        async with self._lock:
            stale_version: int | None = None
            try:
                if expected_version is None:
                    await self._db.execute(_UPSERT, (key, blob, now))
                else:
                    if expected_version == 0:
                        cursor = await self._db.execute(_INSERT_NEW, (key, blob, now))
                    else:
                        cursor = await self._db.execute(
                            _UPDATE_IF_VERSION, (blob, now, key, expected_version)
                        )
                    if cursor.rowcount != 1:
                        stale_version = expected_version
                cursor = await self._db.execute(
                    "SELECT version FROM kv_store WHERE key = ?", (key,)
                )
                row = await cursor.fetchone()
                if stale_version is not None:
                    await self._db.rollback()
                else:
                    await self._db.commit()
            except aiosqlite.Error as exc:
                log.warning("backend_write_error", key=key, exc_info=True)
                with contextlib.suppress(aiosqlite.Error):
                    await self._db.rollback()
                raise BackendUnavailableError(f"failed to write {key!r}") from exc

        version = row[0] if row is not None else 0
        if stale_version is not None:
            log.info(
                "backend_write_conflict",
                key=key,
                expected_version=stale_version,
                actual_version=version,
            )
            raise ConflictError(key, stale_version, version)

        self._known_versions[key] = version
        self._listeners.notify(key)
        return version

    def subscribe(self, key: str, listener: Listener) -> Subscription:
        return self._listeners.add(key, listener)

    # ------------------------------------------------------------------
    # External change detection
    # ------------------------------------------------------------------

    async def _read_data_version(self) -> int:
        cursor = await self._db.execute("PRAGMA data_version")
        row = await cursor.fetchone()
        return int(row[0]) if row is not None else 0

    async def poll_changes(self) -> list[str]:
        """Notify listeners of subscribed keys changed by other connections.

        Returns the keys whose listeners were notified.
        """
        async with self._lock:
            try:
                data_version = await self._read_data_version()
                if data_version == self._data_version:
                    return []
                self._data_version = data_version
                keys = self._listeners.keys()
                if not keys:
                    return []
                placeholders = ", ".join("?" for _ in keys)
                cursor = await self._db.execute(
                    f"SELECT key, version FROM kv_store WHERE key IN ({placeholders})", keys
                )
                rows = await cursor.fetchall()
            except aiosqlite.Error as exc:
                log.warning("backend_poll_error", exc_info=True)
                raise BackendUnavailableError("failed to poll for external changes") from exc

        current = {row[0]: row[1] for row in rows}
        changed = [key for key in keys if current.get(key, 0) != self._known_versions.get(key)]
        for key in changed:
            self._known_versions[key] = current.get(key, 0)
            log.info("external_change_detected", key=key, version=self._known_versions[key])
            self._listeners.notify(key)
        return changed

    async def start_watching(self, interval_seconds: float) -> None:
        """Start a background task calling ``poll_changes`` every ``interval_seconds``."""
        if self._watcher is not None:
            return
        async with self._lock:
            self._data_version = await self._read_data_version()
        self._watcher = asyncio.create_task(self._watch(interval_seconds))

    async def _watch(self, interval_seconds: float) -> None:
        while True:
            await asyncio.sleep(interval_seconds)
            try:
                await self.poll_changes()
            except BackendUnavailableError:
                # Already logged; try again on the next tick.
                continue

    async def close(self) -> None:
        """Stop the watcher. The connection itself belongs to the caller."""
        if self._watcher is None:
            return
        self._watcher.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._watcher
        self._watcher = None
