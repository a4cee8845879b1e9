"""Batch orchestration: one outcome per document, failures isolated."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING

from bookmark_sync.adapters.linkding.sync.documents import extract_remote_id
from bookmark_sync.adapters.linkding.sync.models import BatchResult, SyncAction, SyncOutcome
from bookmark_sync.core.cancellation import OperationCancelledError
from bookmark_sync.core.logging_utils import generate_correlation_id

if TYPE_CHECKING:
    from collections.abc import Iterable

    from bookmark_sync.adapters.linkding.sync.models import SyncOptions
    from bookmark_sync.adapters.linkding.sync.protocols import SyncDocument
    from bookmark_sync.adapters.linkding.sync.reconciler import DocumentReconciler
    from bookmark_sync.core.cancellation import CancellationToken

logger = logging.getLogger(__name__)


class BatchSyncer:
    """Run a reconciler over a sequence of documents.

    With ``max_workers == 1`` documents are processed strictly in input
    order. Larger values run up to that many reconciliations concurrently;
    results are still reported in input order unless ``ordered`` is off.
    """

    def __init__(self, reconciler: DocumentReconciler) -> None:
        self._reconciler = reconciler

    @property
    def options(self) -> SyncOptions:
        return self._reconciler.options

    async def run(
        self,
        documents: Iterable[SyncDocument],
        *,
        cancel: CancellationToken | None = None,
        correlation_id: str | None = None,
    ) -> BatchResult:
        correlation_id = correlation_id or generate_correlation_id()
        docs = list(documents)
        options = self.options
        started = time.perf_counter()

        logger.info(
            "linkding_batch_started",
            extra={
                "correlation_id": correlation_id,
                "documents": len(docs),
                "dry_run": options.dry_run,
                "max_workers": options.max_workers,
            },
        )

        if options.max_workers > 1 and len(docs) > 1:
            outcomes, cancelled = await self._run_pool(docs, cancel, correlation_id)
        else:
            outcomes, cancelled = await self._run_sequential(docs, cancel, correlation_id)

        result = BatchResult(
            outcomes=tuple(outcomes),
            cancelled=cancelled,
            correlation_id=correlation_id,
            duration_seconds=time.perf_counter() - started,
        )
        counts = result.counts()
        logger.info(
            "linkding_batch_completed",
            extra={
                "correlation_id": correlation_id,
                "cancelled": cancelled,
                "duration_sec": round(result.duration_seconds, 3),
                **{f"count_{action}": count for action, count in counts.items()},
            },
        )
        return result

    async def _run_sequential(
        self,
        docs: list[SyncDocument],
        cancel: CancellationToken | None,
        correlation_id: str,
    ) -> tuple[list[SyncOutcome], bool]:
        outcomes: list[SyncOutcome] = []
        for doc in docs:
            if cancel is not None and cancel.cancelled:
                return outcomes, True
            try:
                outcome = await self._reconcile_one(doc, cancel, correlation_id)
            except OperationCancelledError:
                logger.info(
                    "linkding_batch_cancelled",
                    extra={"correlation_id": correlation_id, "completed": len(outcomes)},
                )
                return outcomes, True
            outcomes.append(outcome)
            self._notify(outcome, correlation_id)
        return outcomes, False

    async def _run_pool(
        self,
        docs: list[SyncDocument],
        cancel: CancellationToken | None,
        correlation_id: str,
    ) -> tuple[list[SyncOutcome], bool]:
        semaphore = asyncio.Semaphore(self.options.max_workers)
        completed: list[tuple[int, SyncOutcome]] = []
        cancelled = False

        async def worker(index: int, doc: SyncDocument) -> None:
            nonlocal cancelled
            async with semaphore:
                if cancelled or (cancel is not None and cancel.cancelled):
                    cancelled = True
                    return
                try:
                    outcome = await self._reconcile_one(doc, cancel, correlation_id)
                except OperationCancelledError:
                    cancelled = True
                    return
                completed.append((index, outcome))
                self._notify(outcome, correlation_id)

        await asyncio.gather(*(worker(i, doc) for i, doc in enumerate(docs)))

        if cancelled:
            logger.info(
                "linkding_batch_cancelled",
                extra={"correlation_id": correlation_id, "completed": len(completed)},
            )
        if self.options.ordered:
            completed.sort(key=lambda item: item[0])
        return [outcome for _, outcome in completed], cancelled

    async def _reconcile_one(
        self,
        doc: SyncDocument,
        cancel: CancellationToken | None,
        correlation_id: str,
    ) -> SyncOutcome:
        try:
            return await self._reconciler.reconcile(
                doc, cancel=cancel, correlation_id=correlation_id
            )
        except (OperationCancelledError, asyncio.CancelledError):
            raise
        except Exception as exc:
            logger.exception(
                "linkding_document_failed",
                extra={"correlation_id": correlation_id, "path": str(doc.path)},
            )
            stored_id = extract_remote_id(doc, self.options)
            return SyncOutcome(
                document=doc,
                action=SyncAction.ERROR,
                remote_id=stored_id,
                previous_id=stored_id,
                error=exc,
                dry_run=self.options.dry_run,
            )

    def _notify(self, outcome: SyncOutcome, correlation_id: str) -> None:
        callback = self.options.progress_callback
        if callback is None:
            return
        try:
            callback(outcome)
        except Exception:
            logger.exception(
                "linkding_progress_callback_failed",
                extra={"correlation_id": correlation_id, "path": outcome.path},
            )
