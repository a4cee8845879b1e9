"""Tests for retry and rate limiting in the resilient request executor."""

from __future__ import annotations

import asyncio
import time
import unittest
from unittest.mock import patch

import httpx

from bookmark_sync.adapters.linkding.errors import RetryExhaustedError, TransportError
from bookmark_sync.adapters.linkding.executor import (
    RequestTemplate,
    ResilientRequestExecutor,
    RetryPolicy,
    is_retryable_error,
)
from bookmark_sync.adapters.linkding.rate_limiter import TokenBucket
from bookmark_sync.adapters.linkding.transport import HttpTransport, TransportConfig
from bookmark_sync.core.cancellation import CancellationToken, OperationCancelledError
from tests.conftest import API_URL


class ScriptedHandler:
    """MockTransport handler failing a fixed number of times before succeeding."""

    def __init__(self, failures: int, exc_factory=None, status_code: int = 200) -> None:
        self.failures = failures
        self.exc_factory = exc_factory or (
            lambda request: httpx.ConnectError("connection refused", request=request)
        )
        self.status_code = status_code
        self.requests: list[httpx.Request] = []
        self.bodies: list[bytes] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        self.bodies.append(request.read())
        if len(self.requests) <= self.failures:
            raise self.exc_factory(request)
        return httpx.Response(self.status_code, json={"ok": True})


def _executor(handler: ScriptedHandler, *, max_retries: int = 3) -> tuple[
    ResilientRequestExecutor, HttpTransport
]:
    transport = HttpTransport(API_URL, transport=httpx.MockTransport(handler))
    executor = ResilientRequestExecutor(
        transport,
        rate_limiter=TokenBucket(rate=1000.0, burst=1000),
        retry_policy=RetryPolicy(max_retries=max_retries, base_delay=0.0),
    )
    return executor, transport


# ---------------------------------------------------------------------------
# RetryPolicy tests
# ---------------------------------------------------------------------------


class TestRetryPolicy(unittest.TestCase):
    def test_linear_delays(self):
        policy = RetryPolicy()
        assert policy.max_attempts == 4
        assert [policy.delay_for(n) for n in (1, 2, 3)] == [1.0, 2.0, 3.0]

    def test_custom_base_delay(self):
        policy = RetryPolicy(max_retries=2, base_delay=0.5)
        assert policy.max_attempts == 3
        assert policy.delay_for(2) == 1.0


# ---------------------------------------------------------------------------
# is_retryable_error tests
# ---------------------------------------------------------------------------


class TestIsRetryableError(unittest.TestCase):
    def test_known_transport_types_are_retryable(self):
        assert is_retryable_error(httpx.ConnectTimeout("slow"))
        assert is_retryable_error(httpx.ReadTimeout("slow"))
        assert is_retryable_error(httpx.ConnectError("boom"))
        assert is_retryable_error(httpx.ReadError("boom"))

    def test_message_patterns_are_retryable(self):
        assert is_retryable_error(OSError("Network is unreachable"))
        assert is_retryable_error(OSError("dial tcp 10.0.0.1:443: i/o timeout"))
        assert is_retryable_error(OSError("Temporary failure in name resolution"))

    def test_other_errors_are_not_retryable(self):
        assert not is_retryable_error(httpx.UnsupportedProtocol("ftp is not supported"))
        assert not is_retryable_error(OSError("permission denied"))
        assert not is_retryable_error(ValueError("connection refused"))


# ---------------------------------------------------------------------------
# RequestTemplate tests
# ---------------------------------------------------------------------------


class TestRequestTemplate(unittest.TestCase):
    def test_build_captures_json_body_as_bytes(self):
        template = RequestTemplate.build(
            "post", "/api/bookmarks/", json_body={"url": "https://x.test"}, operation="create"
        )
        assert template.method == "POST"
        assert template.body == b'{"url":"https://x.test"}'
        assert template.operation == "create"

    def test_params_are_frozen(self):
        template = RequestTemplate.build("GET", "/api/bookmarks/", params={"limit": 10})
        assert template.params == (("limit", "10"),)


# ---------------------------------------------------------------------------
# ResilientRequestExecutor tests
# ---------------------------------------------------------------------------


class TestResilientRequestExecutor(unittest.IsolatedAsyncioTestCase):
    async def test_five_failures_exhaust_after_four_attempts(self):
        """Three retries mean four attempts before giving up."""
        handler = ScriptedHandler(failures=5)
        executor, transport = _executor(handler)
        template = RequestTemplate.build("GET", "/api/bookmarks/1/", operation="get_bookmark")

        async with transport:
            with self.assertRaises(RetryExhaustedError) as ctx:
                await executor.execute(template)

        assert len(handler.requests) == 4
        assert ctx.exception.attempts == 4
        assert isinstance(ctx.exception.cause, httpx.ConnectError)
        assert isinstance(ctx.exception.__cause__, httpx.ConnectError)
        assert "4 attempts" in str(ctx.exception)

    async def test_two_failures_then_success(self):
        handler = ScriptedHandler(failures=2)
        executor, transport = _executor(handler)
        template = RequestTemplate.build("GET", "/api/bookmarks/1/")

        async with transport:
            response = await executor.execute(template)

        assert response.status_code == 200
        assert len(handler.requests) == 3

    async def test_non_retryable_error_fails_immediately(self):
        """Errors off the allow-list are raised after one attempt."""
        handler = ScriptedHandler(
            failures=5,
            exc_factory=lambda request: httpx.UnsupportedProtocol(
                "unsupported scheme", request=request
            ),
        )
        executor, transport = _executor(handler)
        template = RequestTemplate.build("GET", "/api/bookmarks/1/")

        async with transport:
            with self.assertRaises(TransportError) as ctx:
                await executor.execute(template)

        assert not isinstance(ctx.exception, RetryExhaustedError)
        assert ctx.exception.attempts == 1
        assert len(handler.requests) == 1

    async def test_message_classified_os_error_is_retried(self):
        handler = ScriptedHandler(
            failures=1, exc_factory=lambda request: OSError("network is unreachable")
        )
        executor, transport = _executor(handler)

        async with transport:
            response = await executor.execute(RequestTemplate.build("GET", "/api/bookmarks/"))

        assert response.status_code == 200
        assert len(handler.requests) == 2

    async def test_error_status_is_returned_without_retry(self):
        """A 500 response is handed back, not retried."""
        handler = ScriptedHandler(failures=0, status_code=500)
        executor, transport = _executor(handler)

        async with transport:
            response = await executor.execute(RequestTemplate.build("GET", "/api/bookmarks/"))

        assert response.status_code == 500
        assert len(handler.requests) == 1

    async def test_body_is_replayed_on_every_attempt(self):
        """Each attempt gets a fresh request with the same body."""
        handler = ScriptedHandler(
            failures=2,
            exc_factory=lambda request: httpx.ReadError("connection reset", request=request),
        )
        executor, transport = _executor(handler)
        template = RequestTemplate.build(
            "POST", "/api/bookmarks/", json_body={"url": "https://x.test", "title": "X"}
        )

        async with transport:
            await executor.execute(template)

        assert len(handler.bodies) == 3
        assert handler.bodies[0] == handler.bodies[1] == handler.bodies[2]
        assert handler.bodies[0] == b'{"url":"https://x.test","title":"X"}'
        assert len({id(request) for request in handler.requests}) == 3

    async def test_zero_retries_makes_single_attempt(self):
        handler = ScriptedHandler(failures=1)
        executor, transport = _executor(handler, max_retries=0)

        async with transport:
            with self.assertRaises(RetryExhaustedError) as ctx:
                await executor.execute(RequestTemplate.build("GET", "/api/bookmarks/"))

        assert ctx.exception.attempts == 1
        assert len(handler.requests) == 1

    async def test_cancelled_token_prevents_request(self):
        """A cancelled token stops the request before it is sent."""
        handler = ScriptedHandler(failures=0)
        executor, transport = _executor(handler)
        token = CancellationToken()
        token.cancel("stop")

        async with transport:
            with self.assertRaises(OperationCancelledError):
                await executor.execute(RequestTemplate.build("GET", "/api/bookmarks/"), cancel=token)

        assert handler.requests == []

    async def test_backoff_waits_grow_linearly(self):
        """Attempt n waits n * base_delay before the next try."""
        handler = ScriptedHandler(failures=5)
        transport = HttpTransport(API_URL, transport=httpx.MockTransport(handler))
        executor = ResilientRequestExecutor(
            transport,
            rate_limiter=TokenBucket(rate=1000.0, burst=1000),
            retry_policy=RetryPolicy(max_retries=3, base_delay=1.0),
        )
        delays: list[float] = []

        async def record_sleep(seconds: float, cancel: object = None) -> None:
            delays.append(seconds)

        with patch(
            "bookmark_sync.adapters.linkding.executor.cancellable_sleep", record_sleep
        ):
            async with transport:
                with self.assertRaises(RetryExhaustedError):
                    await executor.execute(RequestTemplate.build("GET", "/api/bookmarks/"))

        assert delays == [1.0, 2.0, 3.0]
        assert len(handler.requests) == 4

    async def test_cancel_during_backoff_stops_retrying(self):
        """Cancelling while waiting to retry aborts without another attempt."""
        handler = ScriptedHandler(failures=5)
        transport = HttpTransport(API_URL, transport=httpx.MockTransport(handler))
        executor = ResilientRequestExecutor(
            transport,
            rate_limiter=TokenBucket(rate=1000.0, burst=1000),
            retry_policy=RetryPolicy(max_retries=3, base_delay=5.0),
        )
        token = CancellationToken()

        async with transport:
            task = asyncio.create_task(
                executor.execute(RequestTemplate.build("GET", "/api/bookmarks/"), cancel=token)
            )
            while not handler.requests:
                await asyncio.sleep(0.01)
            await asyncio.sleep(0.05)
            started = time.monotonic()
            token.cancel("user abort")

            with self.assertRaises(OperationCancelledError):
                await task

        assert time.monotonic() - started < 1.0
        assert len(handler.requests) == 1

    async def test_each_attempt_consumes_a_token(self):
        """Retries draw from the rate limiter like first attempts."""
        handler = ScriptedHandler(failures=2)
        bucket = TokenBucket(rate=0.001, burst=5)
        transport = HttpTransport(API_URL, transport=httpx.MockTransport(handler))
        executor = ResilientRequestExecutor(
            transport, rate_limiter=bucket, retry_policy=RetryPolicy(base_delay=0.0)
        )

        async with transport:
            await executor.execute(RequestTemplate.build("GET", "/api/bookmarks/"))

        assert bucket.available < 3


# ---------------------------------------------------------------------------
# HttpTransport tests
# ---------------------------------------------------------------------------


class TestTransport(unittest.IsolatedAsyncioTestCase):
    async def test_client_requires_open(self):
        transport = HttpTransport(API_URL)
        with self.assertRaises(RuntimeError):
            _ = transport.client

    def test_config_defaults(self):
        config = TransportConfig()
        timeout = config.timeout()
        assert timeout.connect == 10.0
        assert timeout.read == 30.0
        assert config.force_ipv4 is True
        assert config.limits().max_keepalive_connections == 10

    async def test_request_timeout_bounds_trickling_response(self):
        """A server dribbling its body is cut off at the overall request timeout."""

        async def trickle(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
            await reader.readuntil(b"\r\n\r\n")
            writer.write(b"HTTP/1.1 200 OK\r\nContent-Length: 8\r\n\r\n")
            try:
                await writer.drain()
                for _ in range(8):
                    await asyncio.sleep(0.2)
                    writer.write(b"x")
                    await writer.drain()
            except ConnectionError:
                pass
            finally:
                writer.close()

        server = await asyncio.start_server(trickle, "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]
        config = TransportConfig(request_timeout=0.5, connect_timeout=1.0)
        try:
            async with HttpTransport(f"http://127.0.0.1:{port}", config=config) as transport:
                started = time.monotonic()
                with self.assertRaises(httpx.TimeoutException) as ctx:
                    await transport.send(transport.build_request("GET", "/slow"))
                elapsed = time.monotonic() - started
        finally:
            server.close()

        assert elapsed < 1.2
        assert is_retryable_error(ctx.exception)


if __name__ == "__main__":
    unittest.main()
