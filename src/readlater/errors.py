"""Error taxonomy shared by the item store and its backends.

Every failure a caller can observe is a ``ReadLaterError`` carrying a stable
``ErrorCode``, so views can tell "list is full" apart from "couldn't reach
storage" without string matching. ``recoverable`` marks the classes where a
caller-initiated retry makes sense; the store never retries on its own.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any


class ErrorCode(StrEnum):
    INVALID_URL = "INVALID_URL"
    STORAGE_FULL = "STORAGE_FULL"
    BACKEND_UNAVAILABLE = "BACKEND_UNAVAILABLE"
    CONFLICT = "CONFLICT"


class ReadLaterError(Exception):
    """Base class for caller-visible failures."""

    def __init__(self, code: ErrorCode, message: str, *, recoverable: bool = False) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.recoverable = recoverable

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": {
                "code": self.code.value,
                "message": self.message,
                "recoverable": self.recoverable,
            }
        }


class InvalidUrlError(ReadLaterError):
    """URL is unparsable or not http/https."""

    def __init__(self, message: str = "Invalid URL") -> None:
        super().__init__(ErrorCode.INVALID_URL, message)


class StorageFullError(ReadLaterError):
    """A new URL was added to a collection already at its item ceiling."""

    def __init__(self, max_items: int) -> None:
        super().__init__(ErrorCode.STORAGE_FULL, f"Storage limit reached ({max_items} items)")
        self.max_items = max_items


class BackendUnavailableError(ReadLaterError):
    """The persistence backend failed a read or write."""

    def __init__(self, message: str = "Persistence backend unavailable") -> None:
        super().__init__(ErrorCode.BACKEND_UNAVAILABLE, message, recoverable=True)


class ConflictError(ReadLaterError):
    """A compare-and-swap write found the stored version had moved on."""

    def __init__(self, key: str, expected_version: int, actual_version: int | None = None) -> None:
        detail = f"expected version {expected_version}"
        if actual_version is not None:
            detail += f", found {actual_version}"
        super().__init__(
            ErrorCode.CONFLICT,
            f"Concurrent modification of {key!r} ({detail})",
            recoverable=True,
        )
        self.key = key
        self.expected_version = expected_version
        self.actual_version = actual_version
