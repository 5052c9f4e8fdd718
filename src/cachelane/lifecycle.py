"""Install and activate phases of a worker generation.

* **Install** pre-warms the ``static`` partition with the shell manifest
  (:attr:`~cachelane.models.InstallConfig.precache`).  Individual failures
  are logged and reported but never block readiness, and the new
  generation skips the waiting phase.
* **Activate** deletes every store whose name is not in the retained set
  of the current generation, then claims every open window.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass, field

import httpx

from cachelane.cache.store import CacheStoreManager
from cachelane.client.fetcher import NetworkFetcher
from cachelane.clients import ClientRegistry
from cachelane.exceptions import CacheStoreError, NetworkError
from cachelane.models import ResourceRequest, WorkerConfig

logger = logging.getLogger(__name__)


class WorkerState(str, enum.Enum):
    """Lifecycle state of the current generation."""

    PARSED = "parsed"
    INSTALLING = "installing"
    INSTALLED = "installed"
    ACTIVATING = "activating"
    ACTIVATED = "activated"


@dataclass
class InstallReport:
    """Outcome of the pre-cache step.

    Attributes:
        cached: Manifest URLs now stored in the static partition.
        failed: Manifest URL -> reason, for entries that could not be stored.
    """

    cached: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)


class LifecycleController:
    """Drives install and activation for one worker generation.

    Args:
        stores: Partition manager.
        fetcher: Network fetcher used to download the manifest.
        clients: Window registry claimed on activation.
        config: Worker configuration.
    """

    def __init__(
        self,
        stores: CacheStoreManager,
        fetcher: NetworkFetcher,
        clients: ClientRegistry,
        config: WorkerConfig,
    ) -> None:
        self._stores = stores
        self._fetcher = fetcher
        self._clients = clients
        self._config = config
        self.state = WorkerState.PARSED
        self.waiting = True

    async def install(self) -> InstallReport:
        """Pre-cache the shell manifest into the static partition."""
        self.state = WorkerState.INSTALLING
        logger.info("Installing generation %s", self._config.storage.generation)

        urls = [self._absolute(path) for path in self._config.install.precache]
        results = await asyncio.gather(*(self._precache(url) for url in urls))

        report = InstallReport()
        for url, error in zip(urls, results):
            if error is None:
                report.cached.append(url)
            else:
                report.failed[url] = error
                logger.warning("Failed to pre-cache %s: %s", url, error)

        logger.info("Pre-cached %d/%d shell files", len(report.cached), len(urls))
        self.state = WorkerState.INSTALLED
        self.skip_waiting()
        return report

    def skip_waiting(self) -> None:
        """Take over immediately instead of waiting for older generations to finish."""
        self.waiting = False

    async def activate(self) -> list[str]:
        """Delete stores outside the retained set and claim open windows.

        Returns:
            Names of the stores that were deleted.
        """
        self.state = WorkerState.ACTIVATING
        retained = self._stores.retained_names()
        deleted = []
        for name in await self._stores.store_names():
            if name in retained:
                continue
            logger.info("Deleting old store %s", name)
            if await self._stores.delete_store(name):
                deleted.append(name)

        claimed = await self._clients.claim()
        self.state = WorkerState.ACTIVATED
        logger.info("Activated; claimed %d window(s)", claimed)
        return deleted

    async def _precache(self, url: str) -> str | None:
        request = ResourceRequest(url=url)
        try:
            response = await self._fetcher.fetch(request)
        except NetworkError as exc:
            return str(exc)
        if not response.is_success:
            return f"HTTP {response.status_code}"
        try:
            await self._stores.put(self._config.partitions.static, request, response)
        except CacheStoreError as exc:
            return str(exc)
        return None

    def _absolute(self, path: str) -> str:
        return str(httpx.URL(self._config.network.origin).join(path))
