"""Batch-wide cancellation token for the sync pipeline.

A single ``CancellationToken`` spans one batch run. Every point where a call
may block (rate-limiter waits, retry backoff, the HTTP round-trip) races
against the token so that a cancelled batch stops issuing requests promptly.
"""

from __future__ import annotations

import asyncio
import contextlib
from typing import TYPE_CHECKING, TypeVar

if TYPE_CHECKING:
    from collections.abc import Awaitable

T = TypeVar("T")


class OperationCancelledError(Exception):
    """Raised when a blocking operation observes a cancelled token."""

    def __init__(self, message: str = "Operation cancelled") -> None:
        super().__init__(message)
        self.message = message


class CancellationToken:
    """Cooperative cancellation signal shared by all calls of a batch."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        return self._reason

    def cancel(self, reason: str | None = None) -> None:
        """Trigger cancellation. Idempotent; the first reason wins."""
        if not self._event.is_set():
            self._reason = reason
            self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelledError(self._reason or "Operation cancelled")

    async def sleep(self, delay: float) -> None:
        """Sleep for ``delay`` seconds unless cancelled first.

        Raises:
            OperationCancelledError: If the token fires before the delay ends.
        """
        self.raise_if_cancelled()
        if delay <= 0:
            return
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(self._event.wait(), timeout=delay)
        self.raise_if_cancelled()

    async def run(self, awaitable: Awaitable[T]) -> T:
        """Await ``awaitable``, abandoning it if the token fires first."""
        self.raise_if_cancelled()
        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except BaseException:
            task.cancel()
            waiter.cancel()
            raise

        if task in done:
            waiter.cancel()
            return task.result()

        task.cancel()
        with contextlib.suppress(asyncio.CancelledError, Exception):
            await task
        raise OperationCancelledError(self._reason or "Operation cancelled")


async def cancellable_sleep(delay: float, cancel: CancellationToken | None) -> None:
    """Sleep that honours an optional token."""
    if cancel is None:
        await asyncio.sleep(delay)
        return
    await cancel.sleep(delay)


async def cancellable(awaitable: Awaitable[T], cancel: CancellationToken | None) -> T:
    """Await with an optional token."""
    if cancel is None:
        return await awaitable
    return await cancel.run(awaitable)
