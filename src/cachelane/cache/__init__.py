"""Disk-based cache partitions for cachelane.

This package provides :class:`CacheStoreManager`, which owns every named
partition (``static``, ``dynamic``, ``images``, ``api``, ``navigation``)
of the current generation, and :class:`CacheStore`, one partition backed
by :mod:`diskcache`.

The manager is shared by the strategy executor, the lifecycle controller,
and the share-target handler, and is controlled by the ``storage`` section
of :class:`~cachelane.models.WorkerConfig`.
"""

from cachelane.cache.store import CacheStore, CacheStoreManager

__all__ = ["CacheStore", "CacheStoreManager"]
