from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel

from readlater.errors import ErrorCode
from readlater.models.item import Item


class SaveOutcome(StrEnum):
    SAVED = "saved"
    SKIPPED = "skipped"  # internal or dangerous URL, nothing attempted
    FAILED = "failed"


class SaveResult(BaseModel):
    """What a save entry point reports back to the view that triggered it."""

    outcome: SaveOutcome
    item: Item | None = None
    error_code: ErrorCode | None = None
    message: str | None = None
