from __future__ import annotations

from readlater.models.inputs import (
    MAX_TITLE_LENGTH,
    AddItemInput,
    favicon_url_for,
    parse_http_url,
    sanitize_title,
)
from readlater.models.intake import SaveOutcome, SaveResult
from readlater.models.item import Item, ItemCollection

__all__ = [
    # item
    "Item",
    "ItemCollection",
    # inputs
    "AddItemInput",
    "MAX_TITLE_LENGTH",
    "parse_http_url",
    "sanitize_title",
    "favicon_url_for",
    # intake
    "SaveOutcome",
    "SaveResult",
]
