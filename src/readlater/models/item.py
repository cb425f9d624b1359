from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class Item(BaseModel):
    """One saved page.

    Field aliases match the persisted blob (``faviconUrl``, ``addedAt``) so
    collections written by other clients of the same account load unchanged.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    url: str
    title: str
    favicon_url: str | None = Field(default=None, alias="faviconUrl")
    added_at: int = Field(alias="addedAt")  # epoch milliseconds, ordering only


class ItemCollection(BaseModel):
    """The whole list as stored under one backend key. Storage order carries no meaning."""

    items: list[Item] = []

    def to_blob(self) -> dict[str, object]:
        return self.model_dump(by_alias=True, exclude_none=True)
