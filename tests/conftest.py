"""Shared fixtures: deterministic clock and a backend that records its calls."""

from __future__ import annotations

from typing import Any

import pytest

from readlater.backend import MemoryBackend, Snapshot
from readlater.errors import BackendUnavailableError

T0 = 1_700_000_000_000


class FakeClock:
    """Epoch-millisecond clock that only moves when told to."""

    def __init__(self, start: int = T0) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int = 1000) -> None:
        self.now += ms


class RecordingBackend(MemoryBackend):
    """MemoryBackend that counts calls and can fail the next get/set."""

    def __init__(self, *, latency: float = 0.0) -> None:
        super().__init__(latency=latency)
        self.get_calls = 0
        self.set_calls = 0
        self.fail_next_get = False
        self.fail_next_set = False

    async def get(self, key: str) -> Snapshot:
        self.get_calls += 1
        if self.fail_next_get:
            self.fail_next_get = False
            raise BackendUnavailableError("simulated read failure")
        return await super().get(key)

    async def set(
        self, key: str, value: dict[str, Any], *, expected_version: int | None = None
    ) -> int:
        self.set_calls += 1
        if self.fail_next_set:
            self.fail_next_set = False
            raise BackendUnavailableError("simulated quota exceeded")
        return await super().set(key, value, expected_version=expected_version)


def item_blob(
    item_id: str, url: str, title: str, added_at: int, favicon_url: str | None = None
) -> dict[str, Any]:
    blob: dict[str, Any] = {"id": item_id, "url": url, "title": title, "addedAt": added_at}
    if favicon_url is not None:
        blob["faviconUrl"] = favicon_url
    return blob


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def backend() -> RecordingBackend:
    return RecordingBackend()
