"""Network client module for cachelane.

Provides the fetcher every strategy uses to reach the network, plus the
helpers that build synthetic and cache-backed :class:`httpx.Response`
objects.

Classes:
    :class:`NetworkFetcher` -- non-blocking fetcher backed by :class:`httpx.AsyncClient`.
"""

from cachelane.client.fetcher import NetworkFetcher
from cachelane.client.response import FROM_CACHE, is_from_cache

__all__ = ["NetworkFetcher", "FROM_CACHE", "is_from_cache"]
