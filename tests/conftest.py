"""Shared test helpers.

``FakeLinkdingClient`` is an in-memory stand-in for ``LinkdingClient`` that
records every call so tests can assert on the exact remote traffic.
"""

from __future__ import annotations

import json
from typing import Any

import httpx

from bookmark_sync.adapters.linkding.client import LinkdingClient
from bookmark_sync.adapters.linkding.errors import NotFoundError
from bookmark_sync.adapters.linkding.executor import RetryPolicy
from bookmark_sync.adapters.linkding.models import (
    Bookmark,
    BookmarkCreate,
    BookmarkUpdate,
    CheckBookmarkResponse,
)
from bookmark_sync.adapters.linkding.rate_limiter import TokenBucket

API_URL = "https://links.example.test"
API_TOKEN = "test-token"


class FakeLinkdingClient:
    """In-memory Linkding store with call recording and failure injection."""

    def __init__(self, bookmarks: list[Bookmark] | None = None, *, next_id: int = 100) -> None:
        self.bookmarks: dict[int, Bookmark] = {b.id: b for b in bookmarks or []}
        self.calls: list[tuple[str, Any]] = []
        self.failures: dict[str, BaseException] = {}
        self.entered = 0
        self.exited = 0
        self._next_id = next_id

    async def __aenter__(self) -> FakeLinkdingClient:
        self.entered += 1
        return self

    async def __aexit__(self, *args: object) -> None:
        self.exited += 1

    def fail(self, operation: str, exc: BaseException) -> None:
        self.failures[operation] = exc

    def count(self, operation: str) -> int:
        return sum(1 for name, _ in self.calls if name == operation)

    def _record(self, operation: str, payload: Any) -> None:
        self.calls.append((operation, payload))
        if operation in self.failures:
            raise self.failures[operation]

    async def create_bookmark(self, request: BookmarkCreate, *, cancel: Any = None) -> Bookmark:
        self._record("create", request.to_payload())
        bookmark_id = self._next_id
        self._next_id += 1
        bookmark = Bookmark(
            id=bookmark_id,
            url=request.url,
            title=request.title or "",
            description=request.description or "",
            notes=request.notes or "",
            tag_names=request.tag_names or [],
            is_archived=bool(request.is_archived),
        )
        self.bookmarks[bookmark_id] = bookmark
        return bookmark

    async def get_bookmark(self, bookmark_id: int, *, cancel: Any = None) -> Bookmark:
        self._record("get", bookmark_id)
        if bookmark_id not in self.bookmarks:
            raise NotFoundError("bookmark not found", status_code=404, operation="get_bookmark")
        return self.bookmarks[bookmark_id]

    async def update_bookmark(
        self, bookmark_id: int, update: BookmarkUpdate, *, cancel: Any = None
    ) -> Bookmark:
        payload = update.to_payload()
        self._record("update", (bookmark_id, payload))
        if bookmark_id not in self.bookmarks:
            raise NotFoundError("bookmark not found", status_code=404, operation="update_bookmark")
        updated = self.bookmarks[bookmark_id].model_copy(update=payload)
        self.bookmarks[bookmark_id] = updated
        return updated

    async def check_bookmark(self, url: str, *, cancel: Any = None) -> CheckBookmarkResponse:
        self._record("check", url)
        for bookmark in self.bookmarks.values():
            if bookmark.url == url:
                return CheckBookmarkResponse(bookmark=bookmark)
        return CheckBookmarkResponse()


def make_bookmark(bookmark_id: int, url: str = "https://x.test", **fields: Any) -> Bookmark:
    return Bookmark(id=bookmark_id, url=url, **fields)


def bookmark_json(bookmark_id: int, url: str = "https://x.test", **fields: Any) -> dict[str, Any]:
    data: dict[str, Any] = {
        "id": bookmark_id,
        "url": url,
        "title": "",
        "description": "",
        "notes": "",
        "tag_names": [],
        "is_archived": False,
        "unread": False,
        "shared": False,
        "date_added": "2024-05-01T10:00:00Z",
        "date_modified": "2024-05-01T10:00:00Z",
    }
    data.update(fields)
    return data


def request_json(request: httpx.Request) -> Any:
    return json.loads(request.content.decode()) if request.content else None


def make_http_client(handler: Any, *, max_retries: int = 3) -> LinkdingClient:
    """Real client wired to ``httpx.MockTransport`` with zero backoff and no throttling."""
    return LinkdingClient(
        API_URL,
        API_TOKEN,
        rate_limiter=TokenBucket(rate=1000.0, burst=1000),
        retry_policy=RetryPolicy(max_retries=max_retries, base_delay=0.0),
        transport=httpx.MockTransport(handler),
    )
