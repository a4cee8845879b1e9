"""Per-document reconciliation against Linkding.

Decision table:

- no URL                              -> skipped, no remote calls
- URL, no stored id                   -> [probe] + create   -> created
                                         probe hit          -> verified (id adopted)
- URL, stored id, skip_verification   -> verified, no remote calls
- URL, stored id                      -> get
    fields match / sync flags off     -> verified
    enabled fields differ             -> update             -> updated
    not found                         -> [probe] + create   -> created (id replaced)
- any client error                    -> error, id untouched

Calls for one document are strictly sequential; each decision depends on
the previous response.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from bookmark_sync.adapters.linkding.errors import LinkdingError, NotFoundError
from bookmark_sync.adapters.linkding.sync.comparison import (
    build_create_request,
    build_update_request,
)
from bookmark_sync.adapters.linkding.sync.documents import extract_remote_id, extract_url
from bookmark_sync.adapters.linkding.sync.models import SyncAction, SyncOutcome
from bookmark_sync.core.logging_utils import truncate_log_content

if TYPE_CHECKING:
    from bookmark_sync.adapters.linkding.sync.models import SyncOptions
    from bookmark_sync.adapters.linkding.sync.protocols import (
        LinkdingClientProtocol,
        SyncDocument,
    )
    from bookmark_sync.core.cancellation import CancellationToken

logger = logging.getLogger(__name__)


class DocumentReconciler:
    """Decides and executes the sync action for a single document."""

    def __init__(self, client: LinkdingClientProtocol, options: SyncOptions) -> None:
        self._client = client
        self._options = options

    @property
    def options(self) -> SyncOptions:
        return self._options

    async def reconcile(
        self,
        document: SyncDocument,
        *,
        cancel: CancellationToken | None = None,
        correlation_id: str = "",
    ) -> SyncOutcome:
        """Reconcile one document.

        Adapter errors become an ``error`` outcome. Cancellation and
        programming errors propagate to the caller.
        """
        options = self._options
        url = extract_url(document, options)
        if url is None:
            return SyncOutcome(document=document, action=SyncAction.SKIPPED, dry_run=options.dry_run)

        stored_id = extract_remote_id(document, options)
        try:
            if stored_id is None:
                return await self._create(
                    document, url, previous_id=None, probe=options.check_existing, cancel=cancel
                )
            return await self._verify(document, url, stored_id, cancel=cancel)
        except LinkdingError as exc:
            logger.warning(
                "linkding_reconcile_failed",
                extra={
                    "correlation_id": correlation_id,
                    "path": str(document.path),
                    "url": truncate_log_content(url),
                    "remote_id": stored_id,
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                },
            )
            return SyncOutcome(
                document=document,
                action=SyncAction.ERROR,
                remote_id=stored_id,
                previous_id=stored_id,
                error=exc,
                dry_run=options.dry_run,
            )

    async def _verify(
        self,
        document: SyncDocument,
        url: str,
        stored_id: int,
        *,
        cancel: CancellationToken | None,
    ) -> SyncOutcome:
        options = self._options
        if options.skip_verification:
            return SyncOutcome(
                document=document,
                action=SyncAction.VERIFIED,
                remote_id=stored_id,
                previous_id=stored_id,
                dry_run=options.dry_run,
            )

        try:
            remote = await self._client.get_bookmark(stored_id, cancel=cancel)
        except NotFoundError:
            logger.info(
                "linkding_stale_identifier",
                extra={"path": str(document.path), "remote_id": stored_id},
            )
            return await self._create(
                document,
                url,
                previous_id=stored_id,
                probe=options.reprobe_on_stale,
                cancel=cancel,
            )

        update = build_update_request(document, remote, options)
        if update.is_empty():
            return SyncOutcome(
                document=document,
                action=SyncAction.VERIFIED,
                remote_id=stored_id,
                previous_id=stored_id,
                dry_run=options.dry_run,
            )

        payload = update.to_payload()
        if options.dry_run:
            return SyncOutcome(
                document=document,
                action=SyncAction.UPDATED,
                remote_id=stored_id,
                previous_id=stored_id,
                planned=payload,
                dry_run=True,
            )

        await self._client.update_bookmark(stored_id, update, cancel=cancel)
        return SyncOutcome(
            document=document,
            action=SyncAction.UPDATED,
            remote_id=stored_id,
            previous_id=stored_id,
            planned=payload,
        )

    async def _create(
        self,
        document: SyncDocument,
        url: str,
        *,
        previous_id: int | None,
        probe: bool,
        cancel: CancellationToken | None,
    ) -> SyncOutcome:
        options = self._options

        if probe:
            existing = (await self._client.check_bookmark(url, cancel=cancel)).bookmark
            if existing is not None and existing.id > 0:
                if not options.dry_run:
                    document.set_field(options.id_field, existing.id)
                logger.info(
                    "linkding_existing_bookmark_adopted",
                    extra={"path": str(document.path), "remote_id": existing.id},
                )
                return SyncOutcome(
                    document=document,
                    action=SyncAction.VERIFIED,
                    remote_id=existing.id,
                    previous_id=previous_id,
                    dry_run=options.dry_run,
                )

        request = build_create_request(document, url, options)
        if options.dry_run:
            return SyncOutcome(
                document=document,
                action=SyncAction.CREATED,
                previous_id=previous_id,
                planned=request.to_payload(),
                dry_run=True,
            )

        bookmark = await self._client.create_bookmark(request, cancel=cancel)
        if bookmark.id <= 0:
            msg = f"service returned invalid bookmark id {bookmark.id}"
            raise LinkdingError(msg, context={"url": url})
        document.set_field(options.id_field, bookmark.id)
        return SyncOutcome(
            document=document,
            action=SyncAction.CREATED,
            remote_id=bookmark.id,
            previous_id=previous_id,
            planned=request.to_payload(),
        )
