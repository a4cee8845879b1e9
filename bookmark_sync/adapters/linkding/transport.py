"""Single-attempt HTTP transport for the Linkding client.

Owns the ``httpx.AsyncClient`` and its connection pool. Connections are
dialed over IPv4 only so that hosts resolving to unreachable IPv6 addresses
do not stall the sync. No retry or rate limiting lives here.
"""

from __future__ import annotations

import asyncio
import logging
import socket
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import httpx

if TYPE_CHECKING:
    from typing import Self

logger = logging.getLogger(__name__)

IPV4_ANY_ADDRESS = "0.0.0.0"  # noqa: S104 - local bind address, selects the IPv4 family


@dataclass(frozen=True)
class TransportConfig:
    """Timeouts and pool bounds for the transport."""

    connect_timeout: float = 10.0
    request_timeout: float = 30.0
    keepalive_interval: float = 30.0
    idle_timeout: float = 90.0
    max_idle_connections: int = 10
    force_ipv4: bool = True

    def timeout(self) -> httpx.Timeout:
        return httpx.Timeout(self.request_timeout, connect=self.connect_timeout)

    def limits(self) -> httpx.Limits:
        return httpx.Limits(
            max_keepalive_connections=self.max_idle_connections,
            keepalive_expiry=self.idle_timeout,
        )


def _keepalive_socket_options(interval: float) -> list[tuple[int, int, int]]:
    options: list[tuple[int, int, int]] = [(socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1)]
    seconds = max(1, int(interval))
    if hasattr(socket, "TCP_KEEPIDLE"):
        options.append((socket.IPPROTO_TCP, socket.TCP_KEEPIDLE, seconds))
    if hasattr(socket, "TCP_KEEPINTVL"):
        options.append((socket.IPPROTO_TCP, socket.TCP_KEEPINTVL, seconds))
    return options


def build_transport(config: TransportConfig) -> httpx.AsyncHTTPTransport:
    """Build the pooled network transport described by ``config``."""
    return httpx.AsyncHTTPTransport(
        limits=config.limits(),
        local_address=IPV4_ANY_ADDRESS if config.force_ipv4 else None,
        socket_options=_keepalive_socket_options(config.keepalive_interval),
        retries=0,
    )


class HttpTransport:
    """Async context manager executing exactly one HTTP attempt per call."""

    def __init__(
        self,
        base_url: str,
        *,
        headers: dict[str, str] | None = None,
        config: TransportConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the transport.

        Args:
            base_url: Service root, e.g. ``https://links.example.com``
            headers: Headers sent with every request
            config: Timeouts and pool bounds
            transport: Override the network transport (tests pass
                ``httpx.MockTransport``)
        """
        self.base_url = base_url.rstrip("/")
        self.headers = dict(headers or {})
        self.config = config or TransportConfig()
        self._transport_override = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> Self:
        await self.open()
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    async def open(self) -> None:
        if self._client is not None:
            return
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=self.headers,
            timeout=self.config.timeout(),
            transport=self._transport_override or build_transport(self.config),
        )
        logger.debug(
            "linkding_transport_opened",
            extra={"base_url": self.base_url, "force_ipv4": self.config.force_ipv4},
        )

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            msg = "Transport not opened. Use 'async with' or call open()."
            raise RuntimeError(msg)
        return self._client

    def build_request(
        self,
        method: str,
        url: str,
        *,
        params: Any = None,
        headers: dict[str, str] | None = None,
        content: bytes | None = None,
    ) -> httpx.Request:
        return self.client.build_request(
            method, url, params=params, headers=headers, content=content
        )

    async def send(self, request: httpx.Request, *, stream: bool = False) -> httpx.Response:
        """Send one request. Transport failures surface as ``httpx`` exceptions.

        The whole round-trip, body included unless ``stream`` is set, is bounded
        by ``request_timeout``. Expiry raises ``httpx.TimeoutException``.
        """
        deadline = self.config.request_timeout
        try:
            async with asyncio.timeout(deadline):
                return await self.client.send(request, stream=stream)
        except TimeoutError as exc:
            msg = f"request exceeded {deadline}s overall timeout"
            raise httpx.TimeoutException(msg, request=request) from exc
