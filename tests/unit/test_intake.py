"""Unit tests for readlater.intake."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from readlater.errors import ErrorCode
from readlater.intake import is_dangerous_url, is_internal_url, save_link, save_page
from readlater.models import SaveOutcome
from readlater.store import ItemStore

if TYPE_CHECKING:
    from tests.conftest import FakeClock, RecordingBackend


class TestUrlClassification:
    @pytest.mark.parametrize(
        "url",
        [
            "chrome://extensions",
            "chrome-extension://abc/popup.html",
            "about:blank",
            "edge://settings",
            "brave://rewards",
        ],
    )
    def test_internal(self, url: str) -> None:
        assert is_internal_url(url)

    @pytest.mark.parametrize("url", ["javascript:void(0)", "data:text/plain,hi", "JAVASCRIPT:x"])
    def test_dangerous(self, url: str) -> None:
        assert is_dangerous_url(url)

    def test_regular_url_is_neither(self) -> None:
        url = "https://example.com/about:blank"
        assert not is_internal_url(url)
        assert not is_dangerous_url(url)


class TestSavePage:
    async def test_saves_with_title(self, store: ItemStore) -> None:
        result = await save_page(store, "https://example.com/a", "A page")
        assert result.outcome is SaveOutcome.SAVED
        assert result.item is not None
        assert result.item.title == "A page"

    async def test_title_falls_back_to_url(self, store: ItemStore) -> None:
        result = await save_page(store, "https://example.com/a", "")
        assert result.item is not None
        assert result.item.title == "https://example.com/a"

    @pytest.mark.parametrize("url", [None, "", "chrome://newtab", "about:blank"])
    async def test_skips_without_touching_storage(
        self, store: ItemStore, backend: RecordingBackend, url: str | None
    ) -> None:
        result = await save_page(store, url, "title")
        assert result.outcome is SaveOutcome.SKIPPED
        assert backend.get_calls == 0

    async def test_invalid_url_reported_as_failure(self, store: ItemStore) -> None:
        result = await save_page(store, "ftp://example.com/file", "file")
        assert result.outcome is SaveOutcome.FAILED
        assert result.error_code is ErrorCode.INVALID_URL

    async def test_backend_failure_reported(
        self, store: ItemStore, backend: RecordingBackend
    ) -> None:
        backend.fail_next_set = True
        result = await save_page(store, "https://example.com/a", "A")
        assert result.outcome is SaveOutcome.FAILED
        assert result.error_code is ErrorCode.BACKEND_UNAVAILABLE
        assert result.message == "simulated quota exceeded"


class TestSaveLink:
    async def test_link_url_is_title(self, store: ItemStore) -> None:
        result = await save_link(store, "https://example.com/linked")
        assert result.item is not None
        assert result.item.title == "https://example.com/linked"

    @pytest.mark.parametrize(
        "url", [None, "javascript:alert(1)", "data:text/html,x", "chrome://settings"]
    )
    async def test_skips(self, store: ItemStore, backend: RecordingBackend, url: str | None) -> None:
        result = await save_link(store, url)
        assert result.outcome is SaveOutcome.SKIPPED
        assert backend.get_calls == 0

    async def test_full_store_reported(self, backend: RecordingBackend, clock: FakeClock) -> None:
        async with ItemStore(backend, max_items=1, clock=clock) as small:
            await save_link(small, "https://example.com/1")
            result = await save_link(small, "https://example.com/2")
        assert result.outcome is SaveOutcome.FAILED
        assert result.error_code is ErrorCode.STORAGE_FULL
