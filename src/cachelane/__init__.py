"""cachelane -- client-side resource interception and caching layer.

This package sits between an application and the network. Every outgoing
resource request is classified, answered through one of several caching
strategies backed by named on-disk partitions, and the same worker also
replays offline actions, renders push notifications, and stages content
handed over through an OS share sheet.

Typical usage::

    from cachelane.config import resolve_config
    from cachelane.worker import Worker

    async with Worker(resolve_config()) as worker:
        await worker.install()
        await worker.activate()
        response = await worker.handle_fetch(request)

Modules:
    models: Pydantic models shared across the entire package.
    config: XDG-aware configuration loading and saving.
    logs: Rich logging setup for embedding hosts.
    exceptions: Exception hierarchy rooted at CachelaneError.
    cache: Named on-disk partitions backed by diskcache.
    client: Network fetcher and response construction.
    classifier: Maps a request to a caching strategy and partition.
    strategies: CacheFirst, NetworkFirst, StaleWhileRevalidate, NetworkOnly, CacheOnly.
    clients: Application windows the worker can focus, open, and claim.
    lifecycle: Install-time pre-warm and activate-time generation cutover.
    sync: Offline-action queue and background replay.
    push: Push payload rendering and notification click routing.
    share: Share-target submissions.
    worker: Event dispatcher tying everything together.
    transport: ``httpx`` transport that routes requests through a worker.
"""

__version__ = "0.4.1"
