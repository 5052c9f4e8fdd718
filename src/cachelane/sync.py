"""Deferred replay of actions attempted while offline.

The application records a mutation it could not send as an
:class:`~cachelane.models.OfflineAction` and registers the sync tag
(:meth:`BackgroundSyncAgent.defer` does both).  When connectivity returns,
the host delivers a sync trigger and :meth:`BackgroundSyncAgent.handle_sync`
drains the queue:

* each action is replayed against the origin in queue order;
* a replayed action is removed from the queue;
* a failed action is logged, its ``attempts`` counter is bumped, and it
  stays queued for the next trigger.  There is no backoff and no attempt
  ceiling.

Queues implement :class:`OfflineActionQueue`.  :class:`DiskOfflineQueue`
persists actions with :class:`diskcache.Index` so they survive restarts.
"""

from __future__ import annotations

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional

import diskcache
import httpx

from cachelane.client.fetcher import NetworkFetcher
from cachelane.config import get_data_dir
from cachelane.exceptions import ReplayError
from cachelane.models import OfflineAction, ResourceRequest, SyncConfig

logger = logging.getLogger(__name__)

Replayer = Callable[[OfflineAction], Awaitable[Any]]


class OfflineActionQueue(ABC):
    """Durable store of pending offline actions, in insertion order.

    Adding an action whose ``id`` is already queued replaces it in place.
    """

    @abstractmethod
    async def add(self, action: OfflineAction) -> None: ...

    @abstractmethod
    async def list(self) -> list[OfflineAction]: ...

    @abstractmethod
    async def remove(self, action_id: str) -> bool: ...

    def close(self) -> None:
        """Release any resources held by the queue."""


class MemoryOfflineQueue(OfflineActionQueue):
    """Queue kept in a dict; lost on restart."""

    def __init__(self) -> None:
        self._actions: dict[str, OfflineAction] = {}

    async def add(self, action: OfflineAction) -> None:
        self._actions[action.id] = action

    async def list(self) -> list[OfflineAction]:
        return list(self._actions.values())

    async def remove(self, action_id: str) -> bool:
        return self._actions.pop(action_id, None) is not None


class DiskOfflineQueue(OfflineActionQueue):
    """Queue persisted with :class:`diskcache.Index`.

    Args:
        directory: Where the index lives. Defaults to
            ``<data_dir>/offline-actions``.
    """

    def __init__(self, directory: str | Path | None = None) -> None:
        path = Path(directory) if directory else get_data_dir() / "offline-actions"
        self._index = diskcache.Index(str(path))

    async def add(self, action: OfflineAction) -> None:
        await asyncio.to_thread(self._index.__setitem__, action.id, action.model_dump())

    async def list(self) -> list[OfflineAction]:
        values = await asyncio.to_thread(lambda: list(self._index.values()))
        return [OfflineAction.model_validate(v) for v in values]

    async def remove(self, action_id: str) -> bool:
        removed = await asyncio.to_thread(self._index.pop, action_id, None)
        return removed is not None

    def close(self) -> None:
        self._index.cache.close()


@dataclass
class SyncReport:
    """Outcome of one drain of the queue."""

    replayed: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)


class BackgroundSyncAgent:
    """Replays queued offline actions when a sync trigger arrives.

    Args:
        queue: The offline-action queue.
        fetcher: Network fetcher used by the default replayer.
        config: Sync tag settings.
        origin: Origin that relative action URLs resolve against.
        replayer: Optional override for how one action is replayed.
            Defaults to :meth:`replay`.
    """

    def __init__(
        self,
        queue: OfflineActionQueue,
        fetcher: NetworkFetcher,
        config: SyncConfig,
        origin: str,
        replayer: Optional[Replayer] = None,
    ) -> None:
        self._queue = queue
        self._fetcher = fetcher
        self._config = config
        self._origin = httpx.URL(origin)
        self._replayer = replayer or self.replay
        self.registered: set[str] = set()

    @property
    def queue(self) -> OfflineActionQueue:
        return self._queue

    def register(self, tag: Optional[str] = None) -> None:
        """Ask for a sync trigger under *tag* once connectivity returns."""
        tag = tag or self._config.tag
        self.registered.add(tag)
        logger.debug("Registered sync tag %s", tag)

    async def defer(self, action: OfflineAction) -> OfflineAction:
        """Queue *action* for replay and register the sync tag."""
        await self._queue.add(action)
        self.register()
        return action

    async def handle_sync(self, tag: str) -> Optional[SyncReport]:
        """Entry point for a platform sync trigger.

        Returns:
            The :class:`SyncReport`, or ``None`` if *tag* is not ours.
        """
        logger.info("Background sync triggered: %s", tag)
        if tag != self._config.tag:
            return None
        report = await self.replay_all()
        if not report.failed:
            self.registered.discard(tag)
        return report

    async def replay_all(self) -> SyncReport:
        """Replay every queued action once, in order."""
        report = SyncReport()
        for action in await self._queue.list():
            try:
                await self._replayer(action)
            except Exception as exc:
                logger.warning("Failed to process offline action %s: %s", action.id, exc)
                report.failed[action.id] = str(exc)
                await self._queue.add(action.model_copy(update={"attempts": action.attempts + 1}))
                continue
            await self._queue.remove(action.id)
            report.replayed.append(action.id)
        return report

    async def replay(self, action: OfflineAction) -> httpx.Response:
        """Send *action* to the origin.

        Raises:
            ReplayError: If the payload has no URL or the origin answers non-2xx.
            NetworkError: If the origin cannot be reached.
        """
        payload = action.payload
        url = payload.get("url")
        if not url:
            raise ReplayError(f"Offline action {action.id} has no url")
        body = payload.get("body")
        headers = dict(payload.get("headers") or {})
        content = b""
        if body is not None:
            content = json.dumps(body).encode("utf-8")
            headers.setdefault("content-type", "application/json")
        request = ResourceRequest(
            method=payload.get("method", "POST"),
            url=str(self._origin.join(url)),
            headers=headers,
            body=content,
        )
        response = await self._fetcher.fetch(request)
        if not response.is_success:
            raise ReplayError(
                f"Origin rejected offline action {action.id}: HTTP {response.status_code}",
                status_code=response.status_code,
            )
        return response
