from __future__ import annotations

from readlater.backend import (
    MemoryBackend,
    PersistenceBackend,
    Snapshot,
    SqliteBackend,
    Subscription,
)
from readlater.errors import (
    BackendUnavailableError,
    ConflictError,
    ErrorCode,
    InvalidUrlError,
    ReadLaterError,
    StorageFullError,
)
from readlater.models import Item
from readlater.store import MAX_ITEMS, CacheState, ItemStore

__all__ = [
    # store
    "ItemStore",
    "CacheState",
    "Item",
    "MAX_ITEMS",
    # backends
    "PersistenceBackend",
    "MemoryBackend",
    "SqliteBackend",
    "Snapshot",
    "Subscription",
    # errors
    "ErrorCode",
    "ReadLaterError",
    "InvalidUrlError",
    "StorageFullError",
    "BackendUnavailableError",
    "ConflictError",
]
