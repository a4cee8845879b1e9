"""Linkding API client."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from bookmark_sync.adapters.linkding.errors import (
    ConfigurationError,
    ResponseDecodeError,
    raise_for_status,
)
from bookmark_sync.adapters.linkding.executor import (
    RequestTemplate,
    ResilientRequestExecutor,
    RetryPolicy,
)
from bookmark_sync.adapters.linkding.models import (
    Asset,
    AssetList,
    Bookmark,
    BookmarkCreate,
    BookmarkList,
    BookmarkUpdate,
    CheckBookmarkResponse,
)
from bookmark_sync.adapters.linkding.transport import HttpTransport, TransportConfig
from bookmark_sync.core.logging_utils import truncate_log_content

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from typing import Self

    import httpx

    from bookmark_sync.adapters.linkding.rate_limiter import TokenBucket
    from bookmark_sync.core.cancellation import CancellationToken

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

BOOKMARKS_PATH = "/api/bookmarks/"


def _bookmark_path(bookmark_id: int) -> str:
    return f"{BOOKMARKS_PATH}{int(bookmark_id)}/"


class LinkdingClient:
    """Async client for the Linkding bookmark API.

    Usage::

        async with LinkdingClient("https://links.example.com", token) as client:
            bookmark = await client.get_bookmark(42)
    """

    def __init__(
        self,
        api_url: str,
        api_token: str,
        *,
        rate_limiter: TokenBucket | None = None,
        retry_policy: RetryPolicy | None = None,
        transport_config: TransportConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize Linkding client.

        Args:
            api_url: Service root URL (without ``/api``)
            api_token: API token sent as ``Authorization: Token <token>``
            rate_limiter: Shared token bucket; a default 5 req/s bucket otherwise
            retry_policy: Transport retry policy
            transport_config: Timeouts and connection-pool bounds
            transport: Network transport override, used by tests

        Raises:
            ConfigurationError: If ``api_url`` or ``api_token`` is empty.
        """
        if not api_url or not api_url.strip():
            msg = "Linkding API URL is required"
            raise ConfigurationError(msg, parameter="api_url")
        if not api_token or not api_token.strip():
            msg = "Linkding API token is required"
            raise ConfigurationError(msg, parameter="api_token")

        self.api_url = api_url.strip().rstrip("/")
        self._transport = HttpTransport(
            self.api_url,
            headers={
                "Authorization": f"Token {api_token.strip()}",
                "Content-Type": "application/json",
                "Accept": "application/json",
            },
            config=transport_config,
            transport=transport,
        )
        self._executor = ResilientRequestExecutor(
            self._transport, rate_limiter=rate_limiter, retry_policy=retry_policy
        )

    async def __aenter__(self) -> Self:
        await self._transport.open()
        return self

    async def __aexit__(self, *args: object) -> None:
        await self._transport.aclose()

    @property
    def executor(self) -> ResilientRequestExecutor:
        return self._executor

    async def _request(
        self,
        template: RequestTemplate,
        *,
        cancel: CancellationToken | None,
    ) -> httpx.Response:
        response = await self._executor.execute(template, cancel=cancel)
        logger.debug(
            "linkding_response",
            extra={
                "operation": template.operation,
                "method": template.method,
                "status_code": response.status_code,
            },
        )
        return response

    @staticmethod
    def _check(response: httpx.Response, operation: str) -> None:
        raise_for_status(
            response.status_code,
            operation=operation,
            body=truncate_log_content(response.text),
        )

    @staticmethod
    def _decode(response: httpx.Response, model: type[ModelT], operation: str) -> ModelT:
        try:
            return model.model_validate(response.json())
        except (ValueError, PydanticValidationError) as exc:
            msg = f"decoding {operation} response failed: {exc}"
            raise ResponseDecodeError(
                msg, context={"status_code": response.status_code}
            ) from exc

    async def create_bookmark(
        self, request: BookmarkCreate, *, cancel: CancellationToken | None = None
    ) -> Bookmark:
        """Create a bookmark. Returns the stored record with its assigned id."""
        template = RequestTemplate.build(
            "POST", BOOKMARKS_PATH, json_body=request.to_payload(), operation="create_bookmark"
        )
        response = await self._request(template, cancel=cancel)
        self._check(response, "create_bookmark")
        bookmark = self._decode(response, Bookmark, "create_bookmark")
        logger.info(
            "linkding_bookmark_created",
            extra={"bookmark_id": bookmark.id, "url": truncate_log_content(request.url)},
        )
        return bookmark

    async def get_bookmark(
        self, bookmark_id: int, *, cancel: CancellationToken | None = None
    ) -> Bookmark:
        """Get a single bookmark.

        Raises:
            NotFoundError: If no bookmark has this id.
        """
        template = RequestTemplate.build(
            "GET", _bookmark_path(bookmark_id), operation="get_bookmark"
        )
        response = await self._request(template, cancel=cancel)
        self._check(response, "get_bookmark")
        return self._decode(response, Bookmark, "get_bookmark")

    async def list_bookmarks(
        self,
        *,
        query: str | None = None,
        limit: int | None = None,
        offset: int | None = None,
        page_url: str | None = None,
        cancel: CancellationToken | None = None,
    ) -> BookmarkList:
        """Get one page of bookmarks.

        Args:
            query: Linkding search phrase
            limit: Page size
            offset: Page offset
            page_url: Continuation token (the ``next`` URL of a previous page);
                overrides the other arguments
        """
        if page_url:
            template = RequestTemplate.build("GET", page_url, operation="list_bookmarks")
        else:
            params: dict[str, Any] = {}
            if query:
                params["q"] = query
            if limit is not None:
                params["limit"] = limit
            if offset is not None:
                params["offset"] = offset
            template = RequestTemplate.build(
                "GET", BOOKMARKS_PATH, params=params, operation="list_bookmarks"
            )
        response = await self._request(template, cancel=cancel)
        self._check(response, "list_bookmarks")
        return self._decode(response, BookmarkList, "list_bookmarks")

    async def iter_bookmarks(
        self,
        *,
        query: str | None = None,
        limit: int | None = None,
        cancel: CancellationToken | None = None,
    ) -> AsyncIterator[Bookmark]:
        """Yield bookmarks page by page, following ``next`` links lazily."""
        page = await self.list_bookmarks(query=query, limit=limit, cancel=cancel)
        while True:
            for bookmark in page.results:
                yield bookmark
            if not page.next:
                return
            page = await self.list_bookmarks(page_url=page.next, cancel=cancel)

    async def get_all_bookmarks(
        self, *, query: str | None = None, cancel: CancellationToken | None = None
    ) -> list[Bookmark]:
        bookmarks = [bm async for bm in self.iter_bookmarks(query=query, cancel=cancel)]
        logger.info("linkding_fetched_all_bookmarks", extra={"count": len(bookmarks)})
        return bookmarks

    async def update_bookmark(
        self,
        bookmark_id: int,
        update: BookmarkUpdate,
        *,
        cancel: CancellationToken | None = None,
    ) -> Bookmark:
        """Partially update a bookmark; only set fields are sent."""
        template = RequestTemplate.build(
            "PATCH",
            _bookmark_path(bookmark_id),
            json_body=update.to_payload(),
            operation="update_bookmark",
        )
        response = await self._request(template, cancel=cancel)
        self._check(response, "update_bookmark")
        bookmark = self._decode(response, Bookmark, "update_bookmark")
        logger.info(
            "linkding_bookmark_updated",
            extra={"bookmark_id": bookmark_id, "fields": sorted(update.to_payload())},
        )
        return bookmark

    async def delete_bookmark(
        self, bookmark_id: int, *, cancel: CancellationToken | None = None
    ) -> None:
        template = RequestTemplate.build(
            "DELETE", _bookmark_path(bookmark_id), operation="delete_bookmark"
        )
        response = await self._request(template, cancel=cancel)
        self._check(response, "delete_bookmark")
        logger.info("linkding_bookmark_deleted", extra={"bookmark_id": bookmark_id})

    async def check_bookmark(
        self, url: str, *, cancel: CancellationToken | None = None
    ) -> CheckBookmarkResponse:
        """Ask the service whether ``url`` is already bookmarked.

        A 404 means "not bookmarked" and yields an empty response rather
        than an error. So does a success status with no body.
        Every other non-success status raises.
        """
        template = RequestTemplate.build(
            "GET", f"{BOOKMARKS_PATH}check/", params={"url": url}, operation="check_bookmark"
        )
        response = await self._request(template, cancel=cancel)
        if response.status_code == 404:
            return CheckBookmarkResponse()
        self._check(response, "check_bookmark")
        if not response.content.strip():
            return CheckBookmarkResponse()
        return self._decode(response, CheckBookmarkResponse, "check_bookmark")

    async def find_existing(
        self, url: str, *, cancel: CancellationToken | None = None
    ) -> Bookmark | None:
        """Existing bookmark for ``url``, or None."""
        return (await self.check_bookmark(url, cancel=cancel)).bookmark

    async def list_assets(
        self, bookmark_id: int, *, cancel: CancellationToken | None = None
    ) -> list[Asset]:
        template = RequestTemplate.build(
            "GET", f"{_bookmark_path(bookmark_id)}assets/", operation="list_assets"
        )
        response = await self._request(template, cancel=cancel)
        self._check(response, "list_assets")
        return self._decode(response, AssetList, "list_assets").results

    async def download_asset(
        self,
        bookmark_id: int,
        asset_id: int,
        destination: str | Path,
        *,
        cancel: CancellationToken | None = None,
    ) -> Path:
        """Stream an asset's file to ``destination`` and return the path."""
        template = RequestTemplate.build(
            "GET",
            f"{_bookmark_path(bookmark_id)}assets/{int(asset_id)}/download/",
            operation="download_asset",
        )
        response = await self._executor.execute(template, cancel=cancel, stream=True)
        dest = Path(destination)
        try:
            if response.status_code not in (200, 201, 204):
                await response.aread()
                self._check(response, "download_asset")
            written = 0
            with dest.open("wb") as handle:
                async for chunk in response.aiter_bytes():
                    handle.write(chunk)
                    written += len(chunk)
        finally:
            await response.aclose()

        logger.debug(
            "linkding_asset_downloaded",
            extra={
                "bookmark_id": bookmark_id,
                "asset_id": asset_id,
                "bytes": written,
                "destination": str(dest),
            },
        )
        return dest
