"""Canonical Pydantic models shared across all cachelane modules.

This is the single source of truth for data shapes in the project. Every other
module imports from here rather than defining its own models. The models fall
into two groups:

**Configuration models** -- built once at startup and passed explicitly to
every component (see :func:`~cachelane.config.resolve_config`):
    :class:`StorageConfig`, :class:`PartitionNames`, :class:`ClassifierConfig`,
    :class:`EvictionConfig`, :class:`InstallConfig`, :class:`NetworkConfig`,
    :class:`PushConfig`, :class:`SyncConfig`, :class:`ShareConfig`,
    :class:`LoggingConfig`, and the root :class:`WorkerConfig`.

**Runtime records** -- the tagged structs that flow between components:
    :class:`ResourceRequest`, :class:`CacheEntry`, :class:`OfflineAction`,
    :class:`NotificationAction`, :class:`PushDescriptor`, and
    :class:`SharedPayload`, plus the :class:`Strategy`,
    :class:`DestinationKind`, and :class:`RequestMode` enums.
"""

from __future__ import annotations

import enum
import time
import uuid
from typing import Any, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field, field_validator


# --- Enums ---


class Strategy(str, enum.Enum):
    """Caching strategies the executor knows how to run."""

    CACHE_FIRST = "cache-first"
    NETWORK_FIRST = "network-first"
    STALE_WHILE_REVALIDATE = "stale-while-revalidate"
    NETWORK_ONLY = "network-only"
    CACHE_ONLY = "cache-only"


class DestinationKind(str, enum.Enum):
    """What the requested resource will be used for (``Request.destination``).

    ``EMPTY`` covers ``fetch()``/XHR style requests that have no rendering
    destination.
    """

    EMPTY = ""
    DOCUMENT = "document"
    IMAGE = "image"
    SCRIPT = "script"
    STYLE = "style"
    FONT = "font"
    MANIFEST = "manifest"
    AUDIO = "audio"
    VIDEO = "video"
    WORKER = "worker"


class RequestMode(str, enum.Enum):
    """Request mode; ``NAVIGATE`` marks a top-level navigation."""

    NAVIGATE = "navigate"
    SAME_ORIGIN = "same-origin"
    NO_CORS = "no-cors"
    CORS = "cors"


# --- Storage / partitions ---


class StorageConfig(BaseModel):
    """Where partitions live on disk and which generation is current.

    Every partition directory is named ``<prefix>-<partition>-<generation>``.
    Bumping ``generation`` makes the next activation delete every store
    whose name is not in the retained set.
    """

    directory: Optional[str] = Field(
        default=None, description="Storage root; defaults to <cache_dir>/stores"
    )
    prefix: str = Field(default="cachelane", description="Store name prefix")
    generation: str = Field(default="v1.0.0", description="Current generation tag")
    retained: list[str] = Field(
        default_factory=lambda: ["static", "dynamic"],
        description="Partitions that survive activation",
    )
    max_age_seconds: dict[str, int] = Field(
        default_factory=dict,
        description="Optional per-partition TTL, keyed by partition name",
    )


class PartitionNames(BaseModel):
    """Logical partition names used by the classifier and lifecycle."""

    static: str = "static"
    dynamic: str = "dynamic"
    images: str = "images"
    api: str = "api"
    navigation: str = "navigation"

    def ordered(self) -> list[str]:
        """Return partition names in lookup order (static first)."""
        return [self.static, self.dynamic, self.navigation, self.api, self.images]


# --- Classifier ---


class ClassifierConfig(BaseModel):
    """Inputs for the ordered rule table built by :mod:`cachelane.classifier`.

    The rule *order* is fixed in code; only the values matched by each rule
    are configurable here.
    """

    api_root: str = "/api/"
    image_namespace: str = "/images/"
    image_extensions: list[str] = Field(
        default_factory=lambda: ["jpg", "jpeg", "png", "gif", "webp", "svg"]
    )
    marketplace_segments: list[str] = Field(
        default_factory=lambda: ["/api/marketplace/"]
    )
    account_segments: list[str] = Field(
        default_factory=lambda: ["/api/user/", "/api/account/"]
    )
    live_segments: list[str] = Field(
        default_factory=lambda: ["/api/notifications/", "/api/rewards/"]
    )
    external_hosts: list[str] = Field(
        default_factory=lambda: ["bybit.com", "coingecko.com", "supabase.co"],
        description="Hosts (and their subdomains) that are never cached",
    )
    cacheable_apis: list[str] = Field(
        default_factory=lambda: [
            "/api/user/profile",
            "/api/notifications",
            "/api/rewards",
            "/api/marketplace/products",
            "/api/marketplace/categories",
            "/api/marketplace/sellers",
        ],
        description="API path prefixes that may be served CacheFirst",
    )


# --- Eviction ---


class EvictionConfig(BaseModel):
    """Periodic FIFO eviction settings."""

    partition: str = Field(default="dynamic", description="Partition trimmed every tick")
    max_entries: int = Field(default=100, ge=0, description="Ceiling for that partition")
    interval_seconds: float = Field(default=300.0, gt=0, description="Seconds between passes")
    ceilings: dict[str, int] = Field(
        default_factory=dict, description="Extra per-partition ceilings"
    )


# --- Install ---


class InstallConfig(BaseModel):
    """Shell routes and assets pre-cached into the static partition."""

    precache: list[str] = Field(
        default_factory=lambda: [
            "/",
            "/app/feed",
            "/marketplace",
            "/crypto",
            "/messages",
            "/profile",
            "/rewards",
            "/offline.html",
            "/manifest.json",
        ]
    )
    offline_document: str = Field(
        default="/offline.html", description="Navigation fallback document"
    )


# --- Network ---


class NetworkConfig(BaseModel):
    """Settings for the outgoing ``httpx.AsyncClient``.

    ``timeout`` of ``None`` means a stalled fetch waits indefinitely.
    """

    origin: str = Field(
        default="http://localhost", description="Origin relative paths resolve against"
    )
    timeout: Optional[float] = Field(default=None, description="Fetch timeout in seconds")
    verify_ssl: bool = Field(default=True, description="Verify SSL certificates")


# --- Push ---


class NotificationAction(BaseModel):
    """A button shown on a rendered notification."""

    action: str
    title: str
    icon: Optional[str] = None


def _default_actions() -> list[NotificationAction]:
    return [
        NotificationAction(action="view", title="View", icon="/icons/view-icon.png"),
        NotificationAction(action="dismiss", title="Dismiss", icon="/icons/dismiss-icon.png"),
    ]


class PushConfig(BaseModel):
    """Defaults used when an inbound push payload omits a field."""

    default_title: str = "Notification"
    default_body: str = "You have a new notification"
    fallback_title: str = Field(
        default="New notification", description="Title used for unparseable payloads"
    )
    fallback_body: str = Field(
        default="You have a new update", description="Body used for unparseable payloads"
    )
    icon: str = "/icons/icon-192x192.png"
    badge: str = "/icons/icon-72x72.png"
    default_tag: str = "general"
    default_actions: list[NotificationAction] = Field(default_factory=_default_actions)


# --- Background sync ---


class SyncConfig(BaseModel):
    """Background sync registration tag and durable queue location."""

    tag: str = "background-sync"
    queue_directory: Optional[str] = Field(
        default=None, description="Queue root; defaults to <data_dir>/offline-actions"
    )


# --- Share target ---


class ShareConfig(BaseModel):
    """Share-target path, staging key, and post-share redirect."""

    path: str = "/share"
    storage_key: str = "/shared-data"
    redirect: str = "/create?shared=true"


# --- Logging ---


class LoggingConfig(BaseModel):
    """Log level and handler style for :func:`~cachelane.logs.configure_logging`."""

    level: str = "WARNING"
    rich: bool = True


class WorkerConfig(BaseModel):
    """Root configuration, constructed once and passed to every component.

    Loaded by :func:`~cachelane.config.resolve_config`. Every section has
    defaults, so ``WorkerConfig()`` is a fully working configuration.
    """

    storage: StorageConfig = Field(default_factory=StorageConfig)
    partitions: PartitionNames = Field(default_factory=PartitionNames)
    classifier: ClassifierConfig = Field(default_factory=ClassifierConfig)
    eviction: EvictionConfig = Field(default_factory=EvictionConfig)
    install: InstallConfig = Field(default_factory=InstallConfig)
    network: NetworkConfig = Field(default_factory=NetworkConfig)
    push: PushConfig = Field(default_factory=PushConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    share: ShareConfig = Field(default_factory=ShareConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# --- Runtime records ---


class ResourceRequest(BaseModel):
    """An intercepted outgoing request.

    Mirrors the parts of a browser ``Request`` that routing and storage
    care about. URLs with an ``http``/``https`` scheme are normalised
    through :class:`httpx.URL` so that cache keys are stable.

    Example::

        ResourceRequest(url="https://app.example.com/images/a.png",
                        destination=DestinationKind.IMAGE)
    """

    model_config = ConfigDict(frozen=True)

    method: str = "GET"
    url: str
    headers: dict[str, str] = Field(default_factory=dict)
    destination: DestinationKind = DestinationKind.EMPTY
    mode: RequestMode = RequestMode.CORS
    body: bytes = b""

    @field_validator("method")
    @classmethod
    def upper_method(cls, value: str) -> str:
        return value.upper()

    @field_validator("url")
    @classmethod
    def normalise_url(cls, value: str) -> str:
        if not value.lower().startswith(("http://", "https://")):
            return value
        try:
            return str(httpx.URL(value))
        except httpx.InvalidURL:
            return value

    @property
    def cache_key(self) -> str:
        """Partition key for this request: ``"<METHOD> <url>"``."""
        return f"{self.method} {self.url}"

    @property
    def parsed_url(self) -> httpx.URL:
        return httpx.URL(self.url)

    @property
    def is_navigation(self) -> bool:
        return self.mode == RequestMode.NAVIGATE

    def resolve(self, path: str) -> str:
        """Resolve *path* against this request's URL (origin-relative for ``/x``)."""
        return str(self.parsed_url.join(path))

    def to_httpx(self) -> httpx.Request:
        """Build the equivalent :class:`httpx.Request` for the network."""
        return httpx.Request(
            self.method,
            self.url,
            headers=self.headers,
            content=self.body or None,
        )

    @classmethod
    def from_httpx(
        cls,
        request: httpx.Request,
        destination: DestinationKind | str | None = None,
        mode: RequestMode | str | None = None,
    ) -> ResourceRequest:
        """Describe an :class:`httpx.Request`.

        ``destination`` and ``mode`` default to the ``"destination"`` and
        ``"mode"`` keys of ``request.extensions`` when not given.
        """
        if destination is None:
            destination = request.extensions.get("destination", DestinationKind.EMPTY)
        if mode is None:
            mode = request.extensions.get("mode", RequestMode.CORS)
        return cls(
            method=request.method,
            url=str(request.url),
            headers=dict(request.headers),
            destination=destination,
            mode=mode,
            body=request.content,
        )


class CacheEntry(BaseModel):
    """A stored response, keyed by ``(method, url)`` inside one partition."""

    method: str
    url: str
    status_code: int
    headers: list[tuple[str, str]] = Field(default_factory=list)
    body: bytes = b""
    stored_at: float = Field(default_factory=time.time)

    @property
    def key(self) -> str:
        return f"{self.method} {self.url}"


class OfflineAction(BaseModel):
    """A mutation attempted while offline, replayed by the sync agent.

    ``payload`` describes the request to replay: ``url`` (absolute or
    origin-relative), optional ``method`` (default ``POST``), ``headers``,
    and a JSON ``body``.
    """

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    payload: dict[str, Any] = Field(default_factory=dict)
    attempts: int = 0


class PushDescriptor(BaseModel):
    """Display options for one rendered notification.

    The title is passed to :meth:`NotificationPresenter.show` separately and
    kept on :class:`~cachelane.push.Notification`, so this model holds only
    the options that accompany it.
    """

    body: str
    icon: Optional[str] = None
    badge: Optional[str] = None
    image: Optional[str] = None
    data: dict[str, Any] = Field(default_factory=dict)
    actions: list[NotificationAction] = Field(default_factory=list)
    tag: str = "general"
    require_interaction: bool = False
    silent: bool = False
    renotify: bool = True
    timestamp: float = Field(default_factory=time.time)


class SharedPayload(BaseModel):
    """Content handed over through the OS share sheet."""

    title: str = ""
    text: str = ""
    url: str = ""
    files: int = 0
