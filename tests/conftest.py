"""Shared test fixtures for cachelane.

Provides an isolated XDG environment, a worker configuration rooted in
``tmp_path``, and :class:`FakeOrigin` -- a scripted origin server behind
:class:`httpx.MockTransport` that can be switched offline.  These fixtures
are automatically discovered by pytest and available to all test modules
without explicit imports.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Awaitable, Callable, Union

import httpx
import pytest

from cachelane.cache.store import CacheStoreManager
from cachelane.client.fetcher import NetworkFetcher
from cachelane.models import ResourceRequest, WorkerConfig
from cachelane.strategies import StrategyExecutor
from cachelane.sync import MemoryOfflineQueue
from cachelane.worker import Worker

ORIGIN = "https://app.example.com"

Handler = Callable[[httpx.Request], Union[httpx.Response, Awaitable[httpx.Response]]]


class FakeOrigin:
    """Scripted origin server.

    Routes are keyed by ``(method, path)``.  A route is either a static
    response description or a handler called with the request.  Unknown
    routes answer 404.  While :attr:`offline` is set every request fails
    with :class:`httpx.ConnectError`.
    """

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], Union[dict[str, Any], Handler]] = {}
        self.calls: list[httpx.Request] = []
        self.offline = False

    def route(self, path: str, method: str = "GET", **response: Any) -> None:
        response.setdefault("status_code", 200)
        self.routes[(method, path)] = response

    def handle(self, path: str, handler: Handler, method: str = "GET") -> None:
        self.routes[(method, path)] = handler

    def calls_to(self, path: str) -> list[httpx.Request]:
        return [c for c in self.calls if c.url.path == path]

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        if self.offline:
            raise httpx.ConnectError("origin unreachable", request=request)
        spec = self.routes.get((request.method, request.url.path))
        if spec is None:
            return httpx.Response(404, text="not found")
        if callable(spec):
            result = spec(request)
            if not isinstance(result, httpx.Response):
                result = await result
            return result
        return httpx.Response(**spec)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


# ---------------------------------------------------------------------------
# Environment isolation
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def isolated_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point HOME and every XDG directory at ``tmp_path`` and clear overrides."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(home / ".config"))
    monkeypatch.setenv("XDG_CACHE_HOME", str(home / ".cache"))
    monkeypatch.setenv("XDG_DATA_HOME", str(home / ".local" / "share"))
    for var in ("CACHELANE_CONFIG", "CACHELANE_GENERATION", "CACHELANE_ORIGIN", "CACHELANE_LOG_LEVEL"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)
    return home


@pytest.fixture(autouse=True)
def _reset_logger_between_tests() -> None:
    """Undo :func:`~cachelane.logs.configure_logging` after every test.

    It stops propagation to the root logger, which would hide records
    from ``caplog`` in later tests.
    """
    yield
    logger = logging.getLogger("cachelane")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)
    logger.propagate = True


# ---------------------------------------------------------------------------
# Configuration and requests
# ---------------------------------------------------------------------------


@pytest.fixture
def config(tmp_path: Path) -> WorkerConfig:
    """Worker config with storage under ``tmp_path`` and a small manifest."""
    config = WorkerConfig()
    config.storage.directory = str(tmp_path / "stores")
    config.sync.queue_directory = str(tmp_path / "queue")
    config.network.origin = ORIGIN
    config.install.precache = ["/", "/offline.html", "/manifest.json"]
    return config


@pytest.fixture
def make_request() -> Callable[..., ResourceRequest]:
    """Factory for requests to paths on :data:`ORIGIN`."""

    def _make(path: str, **kwargs: Any) -> ResourceRequest:
        return ResourceRequest(url=str(httpx.URL(ORIGIN).join(path)), **kwargs)

    return _make


# ---------------------------------------------------------------------------
# Components
# ---------------------------------------------------------------------------


@pytest.fixture
def origin() -> FakeOrigin:
    return FakeOrigin()


@pytest.fixture
async def fetcher(config: WorkerConfig, origin: FakeOrigin):
    f = NetworkFetcher(config.network, transport=origin.transport)
    yield f
    await f.aclose()


@pytest.fixture
def stores(config: WorkerConfig):
    manager = CacheStoreManager(config)
    yield manager
    manager.close()


@pytest.fixture
async def executor(stores: CacheStoreManager, fetcher: NetworkFetcher, config: WorkerConfig):
    ex = StrategyExecutor(stores, fetcher, config)
    yield ex
    await ex.drain()


@pytest.fixture
def queue() -> MemoryOfflineQueue:
    return MemoryOfflineQueue()


@pytest.fixture
async def worker(config: WorkerConfig, origin: FakeOrigin, queue: MemoryOfflineQueue):
    w = Worker(config, transport=origin.transport, queue=queue)
    yield w
    await w.stop()
    await w.fetcher.aclose()
    w.stores.close()
