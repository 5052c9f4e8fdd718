"""Request classification -- which strategy and partition serve a request.

:class:`RequestClassifier` evaluates an ordered list of
:class:`StrategyRule` objects and returns the :class:`Route` of the first
rule that matches, or ``None`` (passthrough: the request is not
intercepted and goes to the network untouched).

The order is part of the contract:

1. non-HTTP scheme                      -> passthrough
2. top-level navigation                 -> NetworkFirst, ``navigation`` (with fallback chain)
3. image namespace or image extension   -> CacheFirst, ``images``
4. under the API root:
   a. marketplace segment               -> StaleWhileRevalidate, ``api``
   b. user/account segment              -> NetworkFirst, ``api``
   c. notifications/rewards segment     -> StaleWhileRevalidate, ``api``
   d. external service host             -> NetworkOnly
   e. cacheable-API allow-list          -> CacheFirst, ``api``; anything else passthrough
5. image destination                    -> CacheFirst, ``images``
6. everything else                      -> CacheFirst, ``dynamic``

Rule 3 runs before rule 4, so an image served from an API path is cached
as an image.  Only the values each rule matches against are configurable
(:class:`~cachelane.models.ClassifierConfig`); the order is not.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Callable, Optional

from cachelane.models import (
    DestinationKind,
    RequestMode,
    ResourceRequest,
    Strategy,
    WorkerConfig,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Route:
    """Outcome of classification.

    Attributes:
        strategy: Strategy the executor runs.
        partition: Logical partition written to, ``None`` for NetworkOnly.
        navigation: Use the navigation fallback chain on network failure.
        propagate_errors: Let a CacheFirst network failure propagate instead
            of answering with a synthetic 503.
    """

    strategy: Strategy
    partition: Optional[str] = None
    navigation: bool = False
    propagate_errors: bool = False


@dataclass(frozen=True)
class RequestFacts:
    """The parts of a request the rules look at."""

    scheme: str
    hostname: str
    pathname: str
    destination: DestinationKind
    navigation: bool

    @classmethod
    def of(cls, request: ResourceRequest) -> RequestFacts:
        scheme = request.url.split(":", 1)[0].lower()
        if scheme not in ("http", "https"):
            return cls(scheme, "", "", request.destination, request.is_navigation)
        url = request.parsed_url
        return cls(scheme, url.host, url.path, request.destination, request.is_navigation)


@dataclass(frozen=True)
class StrategyRule:
    """One entry of the ordered rule table; ``route=None`` means passthrough."""

    name: str
    matches: Callable[[RequestFacts], bool]
    route: Optional[Route]


def _contains_any(pathname: str, segments: list[str]) -> bool:
    return any(segment in pathname for segment in segments)


class RequestClassifier:
    """Maps requests to a :class:`Route` using the ordered rule table.

    Args:
        config: Worker configuration (``classifier`` and ``partitions``).

    Example::

        classifier = RequestClassifier(WorkerConfig())
        route = classifier.classify(ResourceRequest(url="https://app.example.com/api/marketplace/products"))
        # Route(strategy=Strategy.STALE_WHILE_REVALIDATE, partition="api", ...)
    """

    def __init__(self, config: WorkerConfig) -> None:
        self._config = config.classifier
        self._partitions = config.partitions
        extensions = "|".join(re.escape(ext) for ext in self._config.image_extensions)
        self._image_extension = re.compile(rf"\.({extensions})$", re.IGNORECASE)
        self.rules = self._build_rules()

    def _build_rules(self) -> list[StrategyRule]:
        names = self._partitions
        cfg = self._config
        return [
            StrategyRule(
                "non-http",
                lambda f: f.scheme not in ("http", "https"),
                None,
            ),
            StrategyRule(
                "navigation",
                lambda f: f.navigation,
                Route(Strategy.NETWORK_FIRST, names.navigation, navigation=True),
            ),
            StrategyRule(
                "image-path",
                self._is_image_path,
                Route(Strategy.CACHE_FIRST, names.images),
            ),
            StrategyRule(
                "api-marketplace",
                lambda f: self._is_api(f) and _contains_any(f.pathname, cfg.marketplace_segments),
                Route(Strategy.STALE_WHILE_REVALIDATE, names.api),
            ),
            StrategyRule(
                "api-account",
                lambda f: self._is_api(f) and _contains_any(f.pathname, cfg.account_segments),
                Route(Strategy.NETWORK_FIRST, names.api),
            ),
            StrategyRule(
                "api-live",
                lambda f: self._is_api(f) and _contains_any(f.pathname, cfg.live_segments),
                Route(Strategy.STALE_WHILE_REVALIDATE, names.api),
            ),
            StrategyRule(
                "api-external",
                lambda f: self._is_api(f) and self._is_external(f.hostname),
                Route(Strategy.NETWORK_ONLY),
            ),
            StrategyRule(
                "api-cacheable",
                lambda f: self._is_api(f) and f.pathname.startswith(tuple(cfg.cacheable_apis)),
                Route(Strategy.CACHE_FIRST, names.api),
            ),
            StrategyRule(
                "api-other",
                self._is_api,
                None,
            ),
            StrategyRule(
                "image-destination",
                lambda f: f.destination == DestinationKind.IMAGE,
                Route(Strategy.CACHE_FIRST, names.images),
            ),
            StrategyRule(
                "default",
                lambda f: True,
                Route(Strategy.CACHE_FIRST, names.dynamic, propagate_errors=True),
            ),
        ]

    def _is_image_path(self, facts: RequestFacts) -> bool:
        return (
            self._config.image_namespace in facts.pathname
            or self._image_extension.search(facts.pathname) is not None
        )

    def _is_api(self, facts: RequestFacts) -> bool:
        return facts.pathname.startswith(self._config.api_root)

    def _is_external(self, hostname: str) -> bool:
        hostname = hostname.lower()
        return any(
            hostname == host or hostname.endswith(f".{host}")
            for host in self._config.external_hosts
        )

    def match_rule(self, request: ResourceRequest) -> StrategyRule:
        """Return the first rule that matches *request*."""
        facts = RequestFacts.of(request)
        for rule in self.rules:
            if rule.matches(facts):
                return rule
        raise AssertionError("default rule must match")  # pragma: no cover

    def classify(self, request: ResourceRequest) -> Optional[Route]:
        """Classify *request*; ``None`` means passthrough."""
        rule = self.match_rule(request)
        logger.debug("%s %s matched rule %s", request.method, request.url, rule.name)
        return rule.route

    def classify_parts(
        self,
        method: str,
        url: str,
        destination: DestinationKind | str = DestinationKind.EMPTY,
        mode: RequestMode | str = RequestMode.CORS,
    ) -> Optional[Route]:
        """Classify from loose parts instead of a :class:`ResourceRequest`."""
        return self.classify(
            ResourceRequest(method=method, url=url, destination=destination, mode=mode)
        )
