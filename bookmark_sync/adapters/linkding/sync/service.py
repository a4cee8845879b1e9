"""Public Linkding sync service."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from bookmark_sync.adapters.linkding.client import LinkdingClient
from bookmark_sync.adapters.linkding.errors import ConfigurationError
from bookmark_sync.adapters.linkding.rate_limiter import TokenBucket
from bookmark_sync.adapters.linkding.sync.batch import BatchSyncer
from bookmark_sync.adapters.linkding.sync.models import SyncOptions
from bookmark_sync.adapters.linkding.sync.reconciler import DocumentReconciler
from bookmark_sync.core.logging_utils import generate_correlation_id

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    import httpx

    from bookmark_sync.adapters.linkding.executor import RetryPolicy
    from bookmark_sync.adapters.linkding.sync.models import BatchResult
    from bookmark_sync.adapters.linkding.sync.protocols import SyncDocument
    from bookmark_sync.adapters.linkding.transport import TransportConfig
    from bookmark_sync.config.integrations import LinkdingConfig
    from bookmark_sync.core.cancellation import CancellationToken

logger = logging.getLogger(__name__)


class LinkdingSyncService:
    """Sync local documents to Linkding.

    Thin entry point: validates preconditions, owns the client for the
    duration of a run and delegates the work to ``BatchSyncer``. The rate
    limiter is shared by every run of one service instance.
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
        client_factory: Callable[..., Any] | None = None,
    ) -> None:
        self.api_url = (api_url or "").strip()
        self.api_token = (api_token or "").strip()
        self._rate_limiter = rate_limiter or TokenBucket()
        self._retry_policy = retry_policy
        self._transport_config = transport_config
        self._transport = transport
        self._client_factory = client_factory or LinkdingClient

    @classmethod
    def from_config(
        cls, config: LinkdingConfig, *, transport: httpx.AsyncBaseTransport | None = None
    ) -> LinkdingSyncService:
        return cls(
            config.api_url,
            config.api_token,
            rate_limiter=config.rate_limiter(),
            retry_policy=config.retry_policy(),
            transport_config=config.transport_config(),
            transport=transport,
        )

    def _require_credentials(self) -> None:
        if not self.api_url:
            msg = "Linkding API URL is required"
            raise ConfigurationError(msg, parameter="api_url")
        if not self.api_token:
            msg = "Linkding API token is required"
            raise ConfigurationError(msg, parameter="api_token")

    async def run(
        self,
        documents: Iterable[SyncDocument],
        options: SyncOptions | None = None,
        cancel: CancellationToken | None = None,
    ) -> BatchResult:
        """Reconcile ``documents`` against the service.

        Raises:
            ConfigurationError: If the base URL or token is missing. Raised
                before any remote call is made.
        """
        self._require_credentials()
        options = options or SyncOptions()
        correlation_id = generate_correlation_id()

        logger.info(
            "linkding_sync_started",
            extra={
                "correlation_id": correlation_id,
                "api_url": self.api_url,
                "dry_run": options.dry_run,
            },
        )

        async with self._client_factory(
            self.api_url,
            self.api_token,
            rate_limiter=self._rate_limiter,
            retry_policy=self._retry_policy,
            transport_config=self._transport_config,
            transport=self._transport,
        ) as client:
            syncer = BatchSyncer(DocumentReconciler(client, options))
            result = await syncer.run(documents, cancel=cancel, correlation_id=correlation_id)

        logger.info(
            "linkding_sync_completed",
            extra={
                "correlation_id": correlation_id,
                "documents": len(result),
                "errors": len(result.errors),
                "cancelled": result.cancelled,
                "changed_identifiers": sum(1 for _ in result.changed_identifiers()),
            },
        )
        return result
