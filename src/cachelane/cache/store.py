"""Named cache partitions backed by :mod:`diskcache`.

Each partition is a :class:`diskcache.Cache` in its own directory under the
storage root, named ``<prefix>-<partition>-<generation>``. Entries are
serialised :class:`~cachelane.models.CacheEntry` dicts keyed by
``"<METHOD> <url>"``.

Ordering matters here: eviction is FIFO by *insertion*, so keys are read
back in SQLite rowid order (``iter(cache)``), not in key order
(``cache.iterkeys()``). A put deletes any existing row first so that a
rewritten key becomes the newest entry.

diskcache is blocking; every public operation on
:class:`CacheStoreManager` runs it through :func:`asyncio.to_thread` so
each lookup or write is a suspension point for the event loop.

See Also:
    :class:`~cachelane.models.StorageConfig` -- prefix, generation,
    retained set, and per-partition TTLs.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
import sqlite3
import time
from pathlib import Path
from typing import Any, Callable, Optional, TypeVar

import diskcache
import httpx

from cachelane.client.response import entry_to_response, response_to_entry
from cachelane.config import get_cache_dir
from cachelane.exceptions import CacheStoreError
from cachelane.models import CacheEntry, ResourceRequest, WorkerConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")

_STORE_ERRORS = (OSError, sqlite3.Error, diskcache.Timeout)


class CacheStore:
    """One partition on disk.

    All methods are blocking; use them through :class:`CacheStoreManager`.

    Args:
        name: Full store name (``<prefix>-<partition>-<generation>``).
        directory: Directory holding the diskcache database.
        max_age_seconds: Entries older than this are treated as misses and
            removed on lookup.  ``None`` disables expiry.
    """

    def __init__(self, name: str, directory: Path, max_age_seconds: Optional[int] = None) -> None:
        self.name = name
        self.directory = directory
        self._max_age = max_age_seconds
        self._cache = diskcache.Cache(str(directory), eviction_policy="none")

    def get(self, key: str) -> Optional[CacheEntry]:
        data = self._cache.get(key)
        if data is None:
            return None
        entry = CacheEntry.model_validate(data)
        if self._max_age is not None and time.time() - entry.stored_at > self._max_age:
            logger.debug("Expired %s in %s", key, self.name)
            self._cache.delete(key)
            return None
        return entry

    def set(self, entry: CacheEntry) -> None:
        with self._cache.transact():
            self._cache.delete(entry.key)
            self._cache.set(entry.key, entry.model_dump())

    def delete(self, key: str) -> bool:
        return self._cache.delete(key)

    def keys(self) -> list[str]:
        """Return keys oldest-inserted first."""
        return list(self._cache)

    def count(self) -> int:
        return len(self._cache)

    def volume(self) -> int:
        return self._cache.volume()

    def close(self) -> None:
        self._cache.close()


class CacheStoreManager:
    """Owns every partition of the current generation.

    Partition arguments are *logical* names (``"static"``, ``"dynamic"``,
    ...).  :meth:`store_names` and :meth:`delete_store` work on full
    on-disk store names, which also covers stores left behind by earlier
    generations.

    Args:
        config: Worker configuration (``storage`` and ``partitions``).
        directory: Override for the storage root.  Defaults to
            ``config.storage.directory`` or ``<cache_dir>/stores``.

    Example::

        stores = CacheStoreManager(WorkerConfig(), directory="/tmp/stores")
        await stores.put("api", request, response)
        cached = await stores.match(request)
    """

    def __init__(self, config: WorkerConfig, directory: str | Path | None = None) -> None:
        self._config = config
        root = directory or config.storage.directory
        self._root = Path(root) if root else get_cache_dir() / "stores"
        self._stores: dict[str, CacheStore] = {}

    @property
    def root(self) -> Path:
        return self._root

    def store_name(self, partition: str) -> str:
        """Full store name for a logical *partition* in the current generation."""
        storage = self._config.storage
        return f"{storage.prefix}-{partition}-{storage.generation}"

    def retained_names(self) -> set[str]:
        """Store names that survive a generation cutover."""
        return {self.store_name(p) for p in self._config.storage.retained}

    # ------------------------------------------------------------------ #
    # Partition access
    # ------------------------------------------------------------------ #

    async def open(self, partition: str) -> CacheStore:
        """Return the store for *partition*, creating it on demand."""
        name = self.store_name(partition)
        store = self._stores.get(name)
        if store is None:
            store = await self._run(self._create, name, partition)
            # Another task may have opened it while we were creating ours.
            existing = self._stores.setdefault(name, store)
            if existing is not store:
                store.close()
            store = existing
        return store

    def _create(self, name: str, partition: str) -> CacheStore:
        ttl = self._config.storage.max_age_seconds.get(partition)
        return CacheStore(name, self._root / name, max_age_seconds=ttl)

    def _exists(self, partition: str) -> bool:
        name = self.store_name(partition)
        return name in self._stores or (self._root / name).is_dir()

    # ------------------------------------------------------------------ #
    # Entry operations
    # ------------------------------------------------------------------ #

    async def match_entry(
        self, request: ResourceRequest, partition: Optional[str] = None
    ) -> Optional[CacheEntry]:
        """Look up the stored entry for *request*.

        Args:
            request: The request to match.  Only GET requests can match.
            partition: Partition to search.  When ``None``, every existing
                partition of the current generation is searched in
                :meth:`~cachelane.models.PartitionNames.ordered` order.

        Returns:
            The first matching :class:`CacheEntry`, or ``None``.
        """
        if request.method != "GET":
            return None
        if partition is not None:
            partitions = [partition]
        else:
            partitions = [p for p in self._config.partitions.ordered() if self._exists(p)]
        for name in partitions:
            store = await self.open(name)
            entry = await self._run(store.get, request.cache_key)
            if entry is not None:
                return entry
        return None

    async def match(
        self, request: ResourceRequest, partition: Optional[str] = None
    ) -> Optional[httpx.Response]:
        """Like :meth:`match_entry` but rebuilds the stored :class:`httpx.Response`."""
        entry = await self.match_entry(request, partition)
        if entry is None:
            return None
        return entry_to_response(entry, request)

    async def put(self, partition: str, request: ResourceRequest, response: httpx.Response) -> None:
        """Store a fully-read *response* for *request* in *partition*.

        Non-GET requests are skipped.  An existing entry for the same key
        is replaced and becomes the newest entry.

        Raises:
            CacheStoreError: If the write fails on disk.
        """
        if request.method != "GET":
            logger.debug("Not storing %s %s", request.method, request.url)
            return
        store = await self.open(partition)
        await self._run(store.set, response_to_entry(request, response))

    async def delete(self, partition: str, request: ResourceRequest) -> bool:
        """Remove one entry; returns ``True`` if it existed."""
        store = await self.open(partition)
        return await self._run(store.delete, request.cache_key)

    async def keys(self, partition: str) -> list[ResourceRequest]:
        """Return the requests stored in *partition*, oldest-inserted first."""
        store = await self.open(partition)
        raw_keys = await self._run(store.keys)
        requests = []
        for key in raw_keys:
            method, _, url = key.partition(" ")
            requests.append(ResourceRequest(method=method, url=url))
        return requests

    async def evict_oldest(self, partition: str, ceiling: int) -> int:
        """Trim *partition* to at most *ceiling* entries, oldest first.

        Returns:
            The number of entries removed.
        """
        store = await self.open(partition)
        raw_keys = await self._run(store.keys)
        excess = len(raw_keys) - ceiling
        if excess <= 0:
            return 0
        for key in raw_keys[:excess]:
            await self._run(store.delete, key)
        logger.info("Evicted %d entries from %s", excess, store.name)
        return excess

    # ------------------------------------------------------------------ #
    # Store operations
    # ------------------------------------------------------------------ #

    async def store_names(self) -> list[str]:
        """Return every store name on disk, across all generations."""
        return await self._run(self._list_store_names)

    def _list_store_names(self) -> list[str]:
        if not self._root.is_dir():
            return []
        prefix = f"{self._config.storage.prefix}-"
        return sorted(
            p.name for p in self._root.iterdir() if p.is_dir() and p.name.startswith(prefix)
        )

    async def delete_store(self, name: str) -> bool:
        """Delete the store called *name* and everything in it.

        Returns:
            ``True`` if the store existed.
        """
        store = self._stores.pop(name, None)
        if store is not None:
            store.close()
        path = self._root / name
        if not path.is_dir():
            return False
        await self._run(shutil.rmtree, path)
        logger.info("Deleted store %s", name)
        return True

    async def clear(self, partition: Optional[str] = None) -> list[str]:
        """Delete one partition, or every store of every generation.

        Returns:
            Names of the stores that were deleted.
        """
        if partition is not None:
            names = [self.store_name(partition)]
        else:
            names = await self.store_names()
        deleted = []
        for name in names:
            if await self.delete_store(name):
                deleted.append(name)
        return deleted

    async def stats(self) -> dict[str, dict[str, int]]:
        """Return ``{partition: {"count": n, "size": bytes}}`` for existing partitions."""
        result: dict[str, dict[str, int]] = {}
        for partition in self._config.partitions.ordered():
            if not self._exists(partition):
                continue
            store = await self.open(partition)
            result[partition] = {
                "count": await self._run(store.count),
                "size": await self._run(store.volume),
            }
        return result

    def close(self) -> None:
        """Close every open store."""
        for store in self._stores.values():
            store.close()
        self._stores.clear()

    async def _run(self, func: Callable[..., T], *args: Any) -> T:
        try:
            return await asyncio.to_thread(func, *args)
        except _STORE_ERRORS as exc:
            raise CacheStoreError(f"Cache operation {func.__name__} failed: {exc}") from exc
