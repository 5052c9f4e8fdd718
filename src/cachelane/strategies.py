"""Caching strategies -- how a classified request is answered.

:class:`StrategyExecutor` runs one of five strategies for a request and a
partition:

* **CacheFirst** -- cached entry if present (no network call), otherwise
  fetch and write through on 2xx.  On network failure: a placeholder SVG
  for images, otherwise a ``503 Offline`` text response, or the original
  :class:`~cachelane.exceptions.NetworkError` when the route asks for it.
* **NetworkFirst** -- fetch and write through on 2xx; on network failure
  the cached entry, else ``503 {"error": "Offline"}``.  Navigations use
  a longer fallback chain: cached page, then the offline document from
  the static partition, then an inline HTML page.
* **StaleWhileRevalidate** -- the cached entry is returned immediately
  while a background fetch refreshes the partition.  With nothing cached
  the caller waits for that same fetch.
* **NetworkOnly** -- straight to the network, no cache involved.
* **CacheOnly** -- cached entry, else ``503 Offline``; never fetches.

Lookups search every partition (so pre-cached shell assets in ``static``
are found whatever route a request takes); writes go to the route's
partition.  A failed write-through is logged and never costs the caller
the response that was already obtained.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import httpx

from cachelane.cache.store import CacheStoreManager
from cachelane.classifier import Route
from cachelane.client.fetcher import NetworkFetcher
from cachelane.client.response import (
    offline_document_response,
    offline_json_response,
    offline_text_response,
    placeholder_image_response,
)
from cachelane.exceptions import CacheStoreError, NetworkError
from cachelane.models import DestinationKind, ResourceRequest, Strategy, WorkerConfig

logger = logging.getLogger(__name__)


class StrategyExecutor:
    """Runs caching strategies against the partitions and the network.

    Args:
        stores: Partition manager shared with the rest of the worker.
        fetcher: Network fetcher.
        config: Worker configuration (partition names, offline document).
    """

    def __init__(
        self,
        stores: CacheStoreManager,
        fetcher: NetworkFetcher,
        config: WorkerConfig,
    ) -> None:
        self._stores = stores
        self._fetcher = fetcher
        self._config = config
        self._background: set[asyncio.Task] = set()

    async def execute(self, request: ResourceRequest, route: Route) -> httpx.Response:
        """Answer *request* the way *route* says."""
        if route.navigation:
            return await self.navigation(request, route.partition or self._config.partitions.navigation)
        if route.strategy == Strategy.CACHE_FIRST:
            return await self.cache_first(request, route.partition, propagate_errors=route.propagate_errors)
        if route.strategy == Strategy.NETWORK_FIRST:
            return await self.network_first(request, route.partition)
        if route.strategy == Strategy.STALE_WHILE_REVALIDATE:
            return await self.stale_while_revalidate(request, route.partition)
        if route.strategy == Strategy.CACHE_ONLY:
            return await self.cache_only(request)
        return await self.network_only(request)

    # ------------------------------------------------------------------ #
    # Strategies
    # ------------------------------------------------------------------ #

    async def cache_first(
        self,
        request: ResourceRequest,
        partition: Optional[str],
        propagate_errors: bool = False,
    ) -> httpx.Response:
        cached = await self._lookup(request)
        if cached is not None:
            return cached

        try:
            response = await self._fetcher.fetch(request)
        except NetworkError:
            logger.info("Cache-first failed for %s", request.url)
            if request.destination == DestinationKind.IMAGE:
                return placeholder_image_response(request)
            if propagate_errors:
                raise
            return offline_text_response(request)

        await self._write_through(partition, request, response)
        return response

    async def network_first(self, request: ResourceRequest, partition: Optional[str]) -> httpx.Response:
        try:
            response = await self._fetcher.fetch(request)
        except NetworkError:
            logger.info("Network failed, checking cache for %s", request.url)
            cached = await self._lookup(request)
            if cached is not None:
                return cached
            return offline_json_response(request)

        await self._write_through(partition, request, response)
        return response

    async def stale_while_revalidate(
        self, request: ResourceRequest, partition: Optional[str]
    ) -> httpx.Response:
        cached = await self._lookup(request)
        revalidation = asyncio.create_task(self._revalidate(request, partition))

        if cached is not None:
            self._background.add(revalidation)
            revalidation.add_done_callback(self._finish_background)
            return cached

        try:
            return await revalidation
        except NetworkError:
            return offline_json_response(request)

    async def network_only(self, request: ResourceRequest) -> httpx.Response:
        return await self._fetcher.fetch(request)

    async def cache_only(self, request: ResourceRequest) -> httpx.Response:
        cached = await self._lookup(request)
        if cached is not None:
            return cached
        return offline_text_response(request)

    async def navigation(self, request: ResourceRequest, partition: str) -> httpx.Response:
        """NetworkFirst with the navigation fallback chain."""
        try:
            response = await self._fetcher.fetch(request)
        except NetworkError:
            logger.info("Network failed for navigation to %s, checking cache", request.url)
        else:
            await self._write_through(partition, request, response)
            return response

        cached = await self._lookup(request)
        if cached is not None:
            return cached

        offline_page = ResourceRequest(url=request.resolve(self._config.install.offline_document))
        cached = await self._lookup(offline_page, self._config.partitions.static)
        if cached is not None:
            return cached

        return offline_document_response(request)

    # ------------------------------------------------------------------ #
    # Background work
    # ------------------------------------------------------------------ #

    async def drain(self) -> None:
        """Wait for every in-flight background revalidation to settle."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    @property
    def pending(self) -> int:
        """Number of background revalidations still running."""
        return len(self._background)

    async def _revalidate(self, request: ResourceRequest, partition: Optional[str]) -> httpx.Response:
        response = await self._fetcher.fetch(request)
        await self._write_through(partition, request, response)
        return response

    def _finish_background(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning("Background revalidation failed: %s", exc)

    # ------------------------------------------------------------------ #
    # Cache helpers
    # ------------------------------------------------------------------ #

    async def _lookup(
        self, request: ResourceRequest, partition: Optional[str] = None
    ) -> Optional[httpx.Response]:
        try:
            return await self._stores.match(request, partition)
        except CacheStoreError as exc:
            logger.warning("Cache lookup failed for %s: %s", request.url, exc)
            return None

    async def _write_through(
        self,
        partition: Optional[str],
        request: ResourceRequest,
        response: httpx.Response,
    ) -> None:
        if partition is None or not response.is_success:
            return
        try:
            await self._stores.put(partition, request, response)
        except CacheStoreError as exc:
            logger.warning("Write-through to %s failed for %s: %s", partition, request.url, exc)
