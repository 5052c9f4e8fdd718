"""Network boundary -- the only place cachelane touches the wire.

This module provides :class:`NetworkFetcher`, a thin wrapper around
:class:`httpx.AsyncClient` used by every strategy, by the install-time
pre-cache, and by the offline-action replayer. It deliberately does *not*
retry: a failed fetch is reported immediately so the calling strategy can
fall back to a partition.

Transport-level failures (DNS, connection refused, timeouts, protocol
errors) are raised as :class:`~cachelane.exceptions.NetworkError`. Any
HTTP status, including 4xx and 5xx, is returned as a normal response.
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from cachelane.exceptions import NetworkError
from cachelane.models import NetworkConfig, ResourceRequest

logger = logging.getLogger(__name__)


class NetworkFetcher:
    """Asynchronous fetcher for intercepted requests.

    Can be used as an async context manager; a client is also created on
    first use so that components sharing one fetcher need not coordinate
    who opens it.

    Args:
        config: Network settings (origin, timeout, SSL verification).
        transport: Optional transport passed to :class:`httpx.AsyncClient`,
            e.g. :class:`httpx.MockTransport` in tests.

    Example::

        async with NetworkFetcher(NetworkConfig()) as fetcher:
            response = await fetcher.fetch(ResourceRequest(url="https://example.com/"))
    """

    def __init__(
        self,
        config: NetworkConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._config = config
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    # ------------------------------------------------------------------ #
    # Async context manager
    # ------------------------------------------------------------------ #

    async def __aenter__(self) -> NetworkFetcher:
        self._ensure_client()
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying :class:`httpx.AsyncClient`, if open."""
        if self._client:
            await self._client.aclose()
            self._client = None

    # ------------------------------------------------------------------ #
    # Fetching
    # ------------------------------------------------------------------ #

    async def fetch(self, request: ResourceRequest) -> httpx.Response:
        """Send *request* to the network and return the fully-read response.

        Args:
            request: The intercepted request.

        Returns:
            The :class:`httpx.Response`, body already read.

        Raises:
            NetworkError: If no HTTP response could be obtained.
        """
        client = self._ensure_client()
        try:
            response = await client.send(request.to_httpx())
        except httpx.TransportError as exc:
            logger.debug("Fetch failed for %s %s: %s", request.method, request.url, exc)
            raise NetworkError(f"{request.method} {request.url} failed: {exc}") from exc
        logger.debug("Fetched %s %s -> %d", request.method, request.url, response.status_code)
        return response

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._config.timeout),
                verify=self._config.verify_ssl,
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client
