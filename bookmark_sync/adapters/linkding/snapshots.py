"""Readable text for a bookmark: archived snapshot first, live page second."""

from __future__ import annotations

import contextlib
import datetime as dt
import gzip
import logging
import tempfile
from html.parser import HTMLParser
from pathlib import Path
from typing import TYPE_CHECKING, Any

import httpx

from bookmark_sync.adapters.linkding.errors import LinkdingError, TransportError
from bookmark_sync.adapters.linkding.sync.documents import coerce_remote_id
from bookmark_sync.core.cancellation import OperationCancelledError, cancellable

if TYPE_CHECKING:
    from bookmark_sync.adapters.linkding.client import LinkdingClient
    from bookmark_sync.adapters.linkding.models import Asset
    from bookmark_sync.core.cancellation import CancellationToken

logger = logging.getLogger(__name__)

SNAPSHOT_ASSET_TYPE = "snapshot"
SNAPSHOT_COMPLETE_STATUS = "complete"
DEFAULT_MAX_BYTES = 10 * 1024 * 1024
DEFAULT_FETCH_TIMEOUT = 10.0
USER_AGENT = "bookmark-sync/1.0"

_BLOCK_TAGS = frozenset({"p", "div", "br", "h1", "h2", "h3", "h4", "h5", "h6", "li", "tr"})
_GZIP_MAGIC = b"\x1f\x8b"


class SnapshotNotFoundError(LinkdingError):
    """Bookmark has no complete snapshot asset."""


class _TextExtractor(HTMLParser):
    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self._buf: list[str] = []
        self._skip_depth = 0  # inside script/style

    def handle_starttag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        if tag in ("script", "style"):
            self._skip_depth += 1
        elif tag == "br" and self._skip_depth == 0:
            self._buf.append(" ")

    def handle_endtag(self, tag: str) -> None:
        if tag in ("script", "style"):
            if self._skip_depth > 0:
                self._skip_depth -= 1
        elif tag in _BLOCK_TAGS and self._skip_depth == 0:
            self._buf.append(" ")

    def handle_data(self, data: str) -> None:
        if self._skip_depth == 0:
            text = data.strip()
            if text:
                self._buf.append(text)
                self._buf.append(" ")

    def get_text(self) -> str:
        return " ".join("".join(self._buf).split())


def extract_text_from_html(html: str) -> str:
    """Visible text of an HTML document on a single whitespace-collapsed line."""
    parser = _TextExtractor()
    parser.feed(html)
    parser.close()
    return parser.get_text()


def _parse_created(value: str) -> dt.datetime | None:
    if not value:
        return None
    try:
        parsed = dt.datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=dt.UTC)
    return parsed


def pick_latest_snapshot(assets: list[Asset]) -> Asset:
    """Newest complete snapshot asset.

    Assets are ordered by ``date_created``; when either date fails to parse
    the raw strings are compared instead.

    Raises:
        SnapshotNotFoundError: If there is no complete snapshot.
    """
    snapshots = [
        asset
        for asset in assets
        if asset.asset_type == SNAPSHOT_ASSET_TYPE and asset.status == SNAPSHOT_COMPLETE_STATUS
    ]
    if not snapshots:
        msg = "no complete snapshots found"
        raise SnapshotNotFoundError(msg, context={"assets": len(assets)})

    latest = snapshots[0]
    for candidate in snapshots[1:]:
        cand_dt = _parse_created(candidate.date_created)
        latest_dt = _parse_created(latest.date_created)
        if cand_dt is not None and latest_dt is not None:
            newer = cand_dt > latest_dt
        else:
            newer = candidate.date_created > latest.date_created
        if newer:
            latest = candidate
    return latest


def _decode_html(raw: bytes, encoding: str | None = None) -> str:
    if raw.startswith(_GZIP_MAGIC):
        raw = gzip.decompress(raw)
    return raw.decode(encoding or "utf-8", errors="replace")


class SnapshotContentFetcher:
    """Fetch bookmark text from a Linkding snapshot, falling back to the live URL."""

    def __init__(
        self,
        client: LinkdingClient,
        *,
        max_bytes: int = DEFAULT_MAX_BYTES,
        timeout: float = DEFAULT_FETCH_TIMEOUT,
        tmp_dir: str | Path | None = None,
        http_transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = client
        self.max_bytes = max_bytes
        self.timeout = timeout
        self.tmp_dir = str(tmp_dir) if tmp_dir is not None else None
        self._http_transport = http_transport

    async def get_content(
        self,
        bookmark_id: Any,
        fallback_url: Any,
        *,
        cancel: CancellationToken | None = None,
    ) -> str:
        """Text for a bookmark.

        ``bookmark_id`` and ``fallback_url`` are raw metadata values; either
        may be missing. Snapshot failures are logged and fall through to the
        live URL.

        Raises:
            LinkdingError: If neither source yields content.
        """
        remote_id = coerce_remote_id(bookmark_id)
        if remote_id is not None:
            try:
                text = await self._from_snapshot(remote_id, cancel=cancel)
            except OperationCancelledError:
                raise
            except LinkdingError as exc:
                logger.info(
                    "linkding_snapshot_unavailable",
                    extra={"bookmark_id": remote_id, "error": str(exc)},
                )
            else:
                logger.debug("linkding_snapshot_content", extra={"bookmark_id": remote_id})
                return text

        if isinstance(fallback_url, str) and fallback_url.strip():
            return await self._from_live_url(fallback_url.strip(), cancel=cancel)

        msg = "no valid bookmark id or url available"
        raise LinkdingError(msg, context={"bookmark_id": bookmark_id})

    async def _from_snapshot(self, bookmark_id: int, *, cancel: CancellationToken | None) -> str:
        assets = await self._client.list_assets(bookmark_id, cancel=cancel)
        snapshot = pick_latest_snapshot(assets)

        with tempfile.NamedTemporaryFile(
            prefix="linkding-snapshot-", suffix=".html", dir=self.tmp_dir, delete=False
        ) as handle:
            tmp_path = Path(handle.name)
        try:
            await self._client.download_asset(bookmark_id, snapshot.id, tmp_path, cancel=cancel)
            return extract_text_from_html(_decode_html(tmp_path.read_bytes()))
        finally:
            with contextlib.suppress(OSError):
                tmp_path.unlink()

    async def _from_live_url(self, url: str, *, cancel: CancellationToken | None) -> str:
        try:
            raw, encoding = await cancellable(self._download_live(url), cancel)
        except httpx.HTTPError as exc:
            msg = f"fetching {url} failed: {exc}"
            raise TransportError(msg, cause=exc, context={"url": url}) from exc
        logger.debug("linkding_live_content", extra={"url": url, "bytes": len(raw)})
        return extract_text_from_html(_decode_html(raw, encoding))

    async def _download_live(self, url: str) -> tuple[bytes, str | None]:
        async with httpx.AsyncClient(
            timeout=self.timeout,
            follow_redirects=True,
            headers={"User-Agent": USER_AGENT},
            transport=self._http_transport,
        ) as http:
            async with http.stream("GET", url) as response:
                if response.status_code != 200:
                    msg = f"HTTP {response.status_code} fetching {url}"
                    raise LinkdingError(msg, context={"status_code": response.status_code})
                length = response.headers.get("Content-Length")
                if length and length.isdigit() and int(length) > self.max_bytes:
                    msg = f"content size {length} bytes exceeds limit {self.max_bytes} bytes"
                    raise LinkdingError(msg, context={"url": url})

                chunks: list[bytes] = []
                received = 0
                async for chunk in response.aiter_bytes():
                    remaining = self.max_bytes - received
                    if remaining <= 0:
                        break
                    chunks.append(chunk[:remaining])
                    received += len(chunks[-1])
                return b"".join(chunks), response.charset_encoding
