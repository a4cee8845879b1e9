"""Resilient request execution: rate limiting plus bounded transport retries.

Only failures that never produced a response are retried. Non-2xx responses
are returned to the caller untouched; status handling belongs to the client.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import httpx

from bookmark_sync.adapters.linkding.errors import RetryExhaustedError, TransportError
from bookmark_sync.adapters.linkding.rate_limiter import TokenBucket
from bookmark_sync.core.cancellation import cancellable, cancellable_sleep

if TYPE_CHECKING:
    from bookmark_sync.adapters.linkding.transport import HttpTransport
    from bookmark_sync.core.cancellation import CancellationToken

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 3
DEFAULT_BASE_DELAY = 1.0  # seconds

RETRYABLE_EXCEPTION_TYPES: tuple[type[BaseException], ...] = (
    httpx.TimeoutException,
    httpx.ConnectError,
    httpx.ReadError,
    httpx.WriteError,
    httpx.RemoteProtocolError,
)

# Matched against the lower-cased error text of anything not in the type list.
RETRYABLE_MESSAGES = (
    "connection refused",
    "connection reset",
    "connection timeout",
    "timed out",
    "dial tcp",
    "no such host",
    "name or service not known",
    "temporary failure in name resolution",
    "nodename nor servname",
    "network is unreachable",
    "i/o timeout",
    "invalid argument",
)


def is_retryable_error(exc: BaseException) -> bool:
    """Check whether a transport failure is worth another attempt."""
    if isinstance(exc, RETRYABLE_EXCEPTION_TYPES):
        return True
    if isinstance(exc, OSError | httpx.TransportError):
        message = str(exc).lower()
        return any(pattern in message for pattern in RETRYABLE_MESSAGES)
    return False


@dataclass(frozen=True)
class RetryPolicy:
    """Linear backoff: attempt ``n`` (1-based) waits ``n * base_delay``."""

    max_retries: int = DEFAULT_MAX_RETRIES
    base_delay: float = DEFAULT_BASE_DELAY

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def delay_for(self, attempt_index: int) -> float:
        return attempt_index * self.base_delay


@dataclass(frozen=True)
class RequestTemplate:
    """Immutable description of a request, replayed once per attempt.

    The body is captured as bytes when the template is built; every attempt
    gets a fresh ``httpx.Request`` with its own body stream.
    """

    method: str
    url: str
    params: tuple[tuple[str, str], ...] = ()
    headers: tuple[tuple[str, str], ...] = ()
    body: bytes | None = None
    operation: str = field(default="request", compare=False)

    @classmethod
    def build(
        cls,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        json_body: Any = None,
        operation: str = "request",
    ) -> RequestTemplate:
        body = None
        if json_body is not None:
            body = json.dumps(json_body, ensure_ascii=False, separators=(",", ":")).encode()
        return cls(
            method=method.upper(),
            url=url,
            params=tuple((key, str(value)) for key, value in (params or {}).items()),
            body=body,
            operation=operation,
        )

    def to_request(self, transport: HttpTransport) -> httpx.Request:
        return transport.build_request(
            self.method,
            self.url,
            params=list(self.params) or None,
            headers=dict(self.headers) or None,
            content=bytes(self.body) if self.body is not None else None,
        )


class ResilientRequestExecutor:
    """Executes request templates through the transport with retries."""

    def __init__(
        self,
        transport: HttpTransport,
        rate_limiter: TokenBucket | None = None,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        self.transport = transport
        self.rate_limiter = rate_limiter or TokenBucket()
        self.retry_policy = retry_policy or RetryPolicy()

    async def execute(
        self,
        template: RequestTemplate,
        *,
        cancel: CancellationToken | None = None,
        stream: bool = False,
    ) -> httpx.Response:
        """Send ``template`` and return whatever response the server produced.

        Raises:
            TransportError: Non-retryable transport failure.
            RetryExhaustedError: Every attempt failed with a retryable error.
            OperationCancelledError: ``cancel`` fired while waiting.
        """
        policy = self.retry_policy
        last_error: BaseException | None = None

        for attempt in range(policy.max_attempts):
            if cancel is not None:
                cancel.raise_if_cancelled()
            await self.rate_limiter.acquire(cancel)

            request = template.to_request(self.transport)
            try:
                response = await cancellable(self.transport.send(request, stream=stream), cancel)
            except (httpx.TransportError, OSError) as exc:
                last_error = exc
                if not is_retryable_error(exc):
                    logger.warning(
                        "linkding_request_failed",
                        extra={
                            "operation": template.operation,
                            "method": template.method,
                            "attempt": attempt + 1,
                            "error": str(exc),
                        },
                    )
                    msg = f"{template.operation} failed: {exc}"
                    raise TransportError(msg, attempts=attempt + 1, cause=exc) from exc

                if attempt + 1 >= policy.max_attempts:
                    break

                delay = policy.delay_for(attempt + 1)
                logger.warning(
                    "linkding_retry_attempt",
                    extra={
                        "operation": template.operation,
                        "attempt": attempt + 1,
                        "max_attempts": policy.max_attempts,
                        "delay_seconds": delay,
                        "error": str(exc),
                    },
                )
                await cancellable_sleep(delay, cancel)
                continue

            if attempt > 0:
                logger.info(
                    "linkding_retry_succeeded",
                    extra={"operation": template.operation, "attempts": attempt + 1},
                )
            return response

        logger.error(
            "linkding_retry_exhausted",
            extra={
                "operation": template.operation,
                "attempts": policy.max_attempts,
                "error": str(last_error),
            },
        )
        msg = f"request failed after {policy.max_attempts} attempts: {last_error}"
        raise RetryExhaustedError(
            msg, attempts=policy.max_attempts, cause=last_error
        ) from last_error
