"""Entry points used by "save this page" / "save this link" actions.

Views call these instead of ``ItemStore.add`` directly: browser-internal and
script-bearing URLs are skipped without touching storage, and failures come
back as a ``SaveResult`` the view can turn into a badge or message.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from readlater.errors import ReadLaterError
from readlater.models import SaveOutcome, SaveResult

if TYPE_CHECKING:
    from readlater.store import ItemStore

log = structlog.get_logger()

INTERNAL_URL_PREFIXES = (
    "chrome://",
    "chrome-extension://",
    "about:",
    "edge://",
    "brave://",
)
DANGEROUS_URL_PREFIXES = ("javascript:", "data:")


def is_internal_url(url: str) -> bool:
    return url.lower().startswith(INTERNAL_URL_PREFIXES)


def is_dangerous_url(url: str) -> bool:
    return url.lower().startswith(DANGEROUS_URL_PREFIXES)


async def _save(store: ItemStore, url: str, title: str, source: str) -> SaveResult:
    try:
        item = await store.add(url, title)
    except ReadLaterError as exc:
        log.warning("save_failed", source=source, url=url, code=exc.code.value)
        return SaveResult(outcome=SaveOutcome.FAILED, error_code=exc.code, message=exc.message)
    return SaveResult(outcome=SaveOutcome.SAVED, item=item)


async def save_page(store: ItemStore, url: str | None, title: str | None = None) -> SaveResult:
    """Save the page currently shown in a tab; the title falls back to the URL."""
    if not url or is_internal_url(url):
        return SaveResult(outcome=SaveOutcome.SKIPPED)
    return await _save(store, url, title or url, source="page")


async def save_link(store: ItemStore, link_url: str | None) -> SaveResult:
    """Save a link target. Links carry no title, so the URL is used."""
    if not link_url or is_internal_url(link_url) or is_dangerous_url(link_url):
        return SaveResult(outcome=SaveOutcome.SKIPPED)
    return await _save(store, link_url, link_url, source="link")
