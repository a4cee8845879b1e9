"""Token-bucket rate limiter gating every outbound Linkding request."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING

from bookmark_sync.core.cancellation import cancellable_sleep

if TYPE_CHECKING:
    from collections.abc import Callable

    from bookmark_sync.core.cancellation import CancellationToken

logger = logging.getLogger(__name__)

DEFAULT_RATE_PER_SECOND = 5.0
DEFAULT_BURST = 2


class TokenBucket:
    """Async token bucket shared by every request of a client.

    Tokens refill continuously at ``rate`` per second up to ``burst``. The
    bucket starts full. Instances are safe for concurrent use from tasks on
    the same event loop; pass one instance to every executor that should
    share the budget.
    """

    def __init__(
        self,
        rate: float = DEFAULT_RATE_PER_SECOND,
        burst: int = DEFAULT_BURST,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if rate <= 0:
            msg = "rate must be positive"
            raise ValueError(msg)
        if burst < 1:
            msg = "burst must be at least 1"
            raise ValueError(msg)
        self.rate = float(rate)
        self.burst = int(burst)
        self._clock = clock
        self._tokens = float(burst)
        self._updated_at = clock()
        self._lock = asyncio.Lock()

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._updated_at)
        self._tokens = min(float(self.burst), self._tokens + elapsed * self.rate)
        self._updated_at = now

    @property
    def available(self) -> float:
        """Tokens available right now (refreshed on read)."""
        self._refill()
        return self._tokens

    def try_acquire(self) -> bool:
        """Take a token without waiting. Returns False when the bucket is empty."""
        self._refill()
        if self._tokens >= 1.0:
            self._tokens -= 1.0
            return True
        return False

    async def acquire(self, cancel: CancellationToken | None = None) -> None:
        """Wait until a token is available and take it.

        Raises:
            OperationCancelledError: If ``cancel`` fires while waiting.
        """
        while True:
            async with self._lock:
                self._refill()
                if self._tokens >= 1.0:
                    self._tokens -= 1.0
                    return
                wait_seconds = (1.0 - self._tokens) / self.rate

            logger.debug("rate_limiter_wait", extra={"wait_seconds": round(wait_seconds, 3)})
            await cancellable_sleep(wait_seconds, cancel)
