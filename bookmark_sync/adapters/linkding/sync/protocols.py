"""Protocol definitions (ports) for Linkding sync.

Keeping these as Protocols isolates the reconciliation logic from concrete
document storage and the HTTP client.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from os import PathLike

    from bookmark_sync.adapters.linkding.models import (
        Bookmark,
        BookmarkCreate,
        BookmarkUpdate,
        CheckBookmarkResponse,
    )
    from bookmark_sync.core.cancellation import CancellationToken


@runtime_checkable
class SyncDocument(Protocol):
    """A locally stored document with named metadata fields."""

    @property
    def path(self) -> str | PathLike[str]: ...

    def get_field(self, name: str) -> Any: ...

    def set_field(self, name: str, value: Any) -> None: ...


class LinkdingClientProtocol(Protocol):
    async def create_bookmark(
        self, request: BookmarkCreate, *, cancel: CancellationToken | None = None
    ) -> Bookmark: ...

    async def get_bookmark(
        self, bookmark_id: int, *, cancel: CancellationToken | None = None
    ) -> Bookmark: ...

    async def update_bookmark(
        self,
        bookmark_id: int,
        update: BookmarkUpdate,
        *,
        cancel: CancellationToken | None = None,
    ) -> Bookmark: ...

    async def check_bookmark(
        self, url: str, *, cancel: CancellationToken | None = None
    ) -> CheckBookmarkResponse: ...
