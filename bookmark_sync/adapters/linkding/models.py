"""Pydantic models for the Linkding REST API."""

from __future__ import annotations

from datetime import datetime  # noqa: TC003 - Pydantic needs this at runtime
from typing import Any

from pydantic import BaseModel, Field, field_validator


class Bookmark(BaseModel):
    """Linkding bookmark model."""

    id: int
    url: str = ""
    title: str = ""
    description: str = ""
    notes: str = ""
    tag_names: list[str] = Field(default_factory=list)
    is_archived: bool = False
    unread: bool = False
    shared: bool = False
    date_added: datetime | None = None
    date_modified: datetime | None = None

    model_config = {"extra": "ignore"}

    @field_validator("title", "description", "notes", mode="before")
    @classmethod
    def _null_to_empty(cls, value: Any) -> str:
        return "" if value is None else value


class BookmarkList(BaseModel):
    """Paginated list of bookmarks (``{count, next, previous, results}``)."""

    count: int = 0
    next: str | None = None
    previous: str | None = None
    results: list[Bookmark] = Field(default_factory=list)

    model_config = {"extra": "ignore"}


class BookmarkCreate(BaseModel):
    """Request to create a new bookmark."""

    url: str
    title: str | None = None
    description: str | None = None
    notes: str | None = None
    tag_names: list[str] | None = None
    is_archived: bool | None = None
    unread: bool | None = None
    shared: bool | None = None

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class BookmarkUpdate(BaseModel):
    """Partial update: only fields that are set reach the wire."""

    url: str | None = None
    title: str | None = None
    description: str | None = None
    notes: str | None = None
    tag_names: list[str] | None = None
    is_archived: bool | None = None
    unread: bool | None = None
    shared: bool | None = None

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)

    def is_empty(self) -> bool:
        return not self.to_payload()


class CheckMetadata(BaseModel):
    title: str | None = None
    description: str | None = None

    model_config = {"extra": "ignore"}


class CheckBookmarkResponse(BaseModel):
    """Response of ``GET /api/bookmarks/check/?url=...``."""

    bookmark: Bookmark | None = None
    metadata: CheckMetadata = Field(default_factory=CheckMetadata)
    auto_tags: list[str] = Field(default_factory=list)

    model_config = {"extra": "ignore"}


class Asset(BaseModel):
    """File attached to a bookmark (snapshot, upload)."""

    id: int
    asset_type: str = ""
    content_type: str = ""
    display_name: str = ""
    file_size: int | None = None
    status: str = ""
    date_created: str = ""
    file: str | None = None

    model_config = {"extra": "ignore"}


class AssetList(BaseModel):
    count: int = 0
    next: str | None = None
    previous: str | None = None
    results: list[Asset] = Field(default_factory=list)

    model_config = {"extra": "ignore"}
