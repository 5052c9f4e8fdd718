"""The worker -- one object that owns every component and routes events to them.

Hosts drive cachelane by delivering typed events:

==========================  ============================================
Event                       Handler
==========================  ============================================
:class:`Install`            :meth:`LifecycleController.install`
:class:`Activate`           :meth:`LifecycleController.activate`
:class:`Intercept`          :meth:`Worker.intercept`
:class:`Push`               :meth:`PushNotificationAgent.handle_push`
:class:`NotificationClick`  :meth:`PushNotificationAgent.handle_click`
:class:`Sync`               :meth:`BackgroundSyncAgent.handle_sync`
:class:`EvictionTick`       :meth:`Worker.evict`
==========================  ============================================

Events can be dispatched directly (``await worker.dispatch(event)``) or
posted to the worker's channel (``worker.post(event)``), where
:meth:`Worker.run` picks them up and handles each in its own task.
:meth:`Worker.start` also launches the periodic eviction loop.

Example::

    async with Worker(WorkerConfig()) as worker:
        await worker.dispatch(Install())
        await worker.dispatch(Activate())
        response = await worker.handle_fetch(
            ResourceRequest(url="http://localhost/api/marketplace/products")
        )
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, Union

import httpx

from cachelane.cache.store import CacheStoreManager
from cachelane.classifier import RequestClassifier
from cachelane.client.fetcher import NetworkFetcher
from cachelane.clients import ClientRegistry, InMemoryClientRegistry
from cachelane.config import resolve_config
from cachelane.lifecycle import InstallReport, LifecycleController, WorkerState
from cachelane.logs import configure_logging
from cachelane.models import OfflineAction, ResourceRequest, WorkerConfig
from cachelane.push import (
    InMemoryNotificationCenter,
    Notification,
    NotificationPresenter,
    PushNotificationAgent,
)
from cachelane.share import ShareTargetHandler
from cachelane.strategies import StrategyExecutor
from cachelane.sync import BackgroundSyncAgent, DiskOfflineQueue, OfflineActionQueue, Replayer

logger = logging.getLogger(__name__)


# --- Events ---


@dataclass(frozen=True)
class Install:
    """Pre-cache the shell manifest for this generation."""


@dataclass(frozen=True)
class Activate:
    """Delete stale stores and claim open windows."""


@dataclass(frozen=True)
class Intercept:
    request: ResourceRequest


@dataclass(frozen=True)
class Push:
    payload: Union[bytes, str, dict, None] = None


@dataclass(frozen=True)
class NotificationClick:
    notification: Notification
    action: str = ""


@dataclass(frozen=True)
class Sync:
    tag: str


@dataclass(frozen=True)
class EvictionTick:
    """Run one eviction pass now."""


WorkerEvent = Union[Install, Activate, Intercept, Push, NotificationClick, Sync, EvictionTick]


@dataclass
class _Envelope:
    event: WorkerEvent
    reply: asyncio.Future = field(repr=False)


class Worker:
    """Owns the components of one worker generation and dispatches events.

    Every collaborator can be injected; anything not given is built from
    *config*.  The default offline queue is a :class:`DiskOfflineQueue`, so
    tests normally pass a :class:`~cachelane.sync.MemoryOfflineQueue`.

    Args:
        config: Worker configuration.  Defaults to ``WorkerConfig()``.
        stores: Partition manager.
        fetcher: Network fetcher.  When omitted one is built with
            *transport*.
        clients: Window registry.
        presenter: Notification presenter.
        queue: Offline-action queue.
        transport: Transport for the default fetcher.  Must not route back
            into this worker.
        replayer: Override for how offline actions are replayed.
    """

    def __init__(
        self,
        config: Optional[WorkerConfig] = None,
        *,
        stores: Optional[CacheStoreManager] = None,
        fetcher: Optional[NetworkFetcher] = None,
        clients: Optional[ClientRegistry] = None,
        presenter: Optional[NotificationPresenter] = None,
        queue: Optional[OfflineActionQueue] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        replayer: Optional[Replayer] = None,
    ) -> None:
        self.config = config or WorkerConfig()
        cfg = self.config
        origin = cfg.network.origin

        self.stores = stores or CacheStoreManager(cfg)
        self.fetcher = fetcher or NetworkFetcher(cfg.network, transport=transport)
        self.clients = clients or InMemoryClientRegistry()
        self.presenter = presenter or InMemoryNotificationCenter()
        if queue is None:
            queue = DiskOfflineQueue(cfg.sync.queue_directory)

        self.classifier = RequestClassifier(cfg)
        self.strategies = StrategyExecutor(self.stores, self.fetcher, cfg)
        self.lifecycle = LifecycleController(self.stores, self.fetcher, self.clients, cfg)
        self.sync = BackgroundSyncAgent(queue, self.fetcher, cfg.sync, origin, replayer=replayer)
        self.push = PushNotificationAgent(self.presenter, self.clients, cfg.push, origin)
        self.share = ShareTargetHandler(self.stores, cfg)

        self._handlers: dict[type, Callable[[Any], Awaitable[Any]]] = {
            Install: lambda event: self.install(),
            Activate: lambda event: self.activate(),
            Intercept: lambda event: self.intercept(event.request),
            Push: lambda event: self.push.handle_push(event.payload),
            NotificationClick: lambda event: self.push.handle_click(event.notification, event.action),
            Sync: lambda event: self.sync.handle_sync(event.tag),
            EvictionTick: lambda event: self.evict(),
        }

        self._channel: Optional[asyncio.Queue[_Envelope]] = None
        self._runner: Optional[asyncio.Task] = None
        self._eviction_task: Optional[asyncio.Task] = None
        self._inflight: set[asyncio.Task] = set()

    @classmethod
    def from_config_file(cls, path: str | Path | None = None, **kwargs: Any) -> Worker:
        """Build a worker from the resolved configuration file.

        Also configures the ``cachelane`` logger from the ``logging``
        section.  Keyword arguments are passed to the constructor.
        """
        config = resolve_config(path)
        configure_logging(config.logging)
        return cls(config, **kwargs)

    @property
    def state(self) -> WorkerState:
        return self.lifecycle.state

    # ------------------------------------------------------------------ #
    # Async context manager
    # ------------------------------------------------------------------ #

    async def __aenter__(self) -> Worker:
        await self.start()
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.stop()
        await self.fetcher.aclose()
        self.stores.close()
        self.sync.queue.close()

    # ------------------------------------------------------------------ #
    # Dispatch
    # ------------------------------------------------------------------ #

    async def dispatch(self, event: WorkerEvent) -> Any:
        """Run the handler for *event* and return its result.

        Raises:
            TypeError: If *event* is not a known event type.
        """
        handler = self._handlers.get(type(event))
        if handler is None:
            raise TypeError(f"Unknown worker event: {event!r}")
        logger.debug("Dispatching %s", type(event).__name__)
        return await handler(event)

    async def install(self) -> InstallReport:
        """Pre-cache the shell manifest; see :meth:`LifecycleController.install`."""
        return await self.lifecycle.install()

    async def activate(self) -> list[str]:
        """Clean up old generations; see :meth:`LifecycleController.activate`."""
        return await self.lifecycle.activate()

    async def intercept(self, request: ResourceRequest) -> Optional[httpx.Response]:
        """Answer *request* from the caching layer.

        Share-target submissions are handled first.  Everything else goes
        through the classifier; ``None`` means the request is not ours and
        should go to the network untouched.
        """
        if self.share.matches(request):
            return await self.share.handle(request)
        route = self.classifier.classify(request)
        if route is None:
            return None
        return await self.strategies.execute(request, route)

    async def handle_fetch(self, request: ResourceRequest) -> httpx.Response:
        """Like :meth:`intercept` but falls through to the network."""
        response = await self.intercept(request)
        if response is None:
            response = await self.fetcher.fetch(request)
        return response

    async def evict(self) -> dict[str, int]:
        """Trim every partition that has a ceiling.

        Returns:
            ``{partition: entries_removed}``.
        """
        eviction = self.config.eviction
        ceilings = {eviction.partition: eviction.max_entries, **eviction.ceilings}
        removed = {}
        for partition, ceiling in ceilings.items():
            removed[partition] = await self.stores.evict_oldest(partition, ceiling)
        return removed

    async def defer(self, payload: dict[str, Any]) -> OfflineAction:
        """Queue a mutation for replay on the next sync trigger."""
        return await self.sync.defer(OfflineAction(payload=payload))

    # ------------------------------------------------------------------ #
    # Channel
    # ------------------------------------------------------------------ #

    def post(self, event: WorkerEvent) -> asyncio.Future:
        """Queue *event* for :meth:`run`; the future resolves to the handler result."""
        loop = asyncio.get_running_loop()
        if self._channel is None:
            self._channel = asyncio.Queue()
        envelope = _Envelope(event=event, reply=loop.create_future())
        self._channel.put_nowait(envelope)
        return envelope.reply

    async def run(self) -> None:
        """Consume posted events forever, one task per event."""
        if self._channel is None:
            self._channel = asyncio.Queue()
        while True:
            envelope = await self._channel.get()
            task = asyncio.create_task(self._deliver(envelope))
            self._inflight.add(task)
            task.add_done_callback(self._inflight.discard)

    async def _deliver(self, envelope: _Envelope) -> None:
        try:
            result = await self.dispatch(envelope.event)
        except asyncio.CancelledError:
            envelope.reply.cancel()
            raise
        except Exception as exc:
            logger.warning("Handler for %s failed: %s", type(envelope.event).__name__, exc)
            if not envelope.reply.done():
                envelope.reply.set_exception(exc)
        else:
            if not envelope.reply.done():
                envelope.reply.set_result(result)

    # ------------------------------------------------------------------ #
    # Background tasks
    # ------------------------------------------------------------------ #

    async def start(self) -> None:
        """Start the channel consumer and the periodic eviction loop."""
        if self._runner is None or self._runner.done():
            self._runner = asyncio.create_task(self.run())
        if self._eviction_task is None or self._eviction_task.done():
            self._eviction_task = asyncio.create_task(self._eviction_loop())
            logger.debug("Started eviction loop")

    async def stop(self) -> None:
        """Stop background tasks and wait for pending revalidations."""
        for task in (self._runner, self._eviction_task, *self._inflight):
            if task and not task.done():
                task.cancel()
                with suppress(asyncio.CancelledError):
                    await task
        self._runner = None
        self._eviction_task = None
        await self.strategies.drain()

    async def _eviction_loop(self) -> None:
        interval = self.config.eviction.interval_seconds
        while True:
            try:
                await asyncio.sleep(interval)
                await self.dispatch(EvictionTick())
            except asyncio.CancelledError:
                logger.debug("Eviction loop cancelled")
                break
            except Exception as exc:
                logger.warning("Error in eviction loop: %s", exc)
