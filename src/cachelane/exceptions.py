"""Exception hierarchy for cachelane.

All exceptions inherit from :class:`CachelaneError`. Strategies catch the
specific subclasses they know how to recover from (a failed fetch falls
back to a partition, a failed write-through is logged), so anything that
reaches the host is a genuine failure.

Subclass hierarchy::

    CachelaneError
    +-- ConfigError       configuration files that cannot be read or validated
    +-- NetworkError      transport-level fetch failures (DNS, refused, timeout)
    +-- CacheStoreError   partition reads/writes that failed on disk
    +-- ReplayError       an offline action the origin did not accept
"""


class CachelaneError(Exception):
    """Base exception for all cachelane errors."""


class ConfigError(CachelaneError):
    """Raised for configuration problems (missing file, invalid JSON/YAML, failed validation)."""


class NetworkError(CachelaneError):
    """Raised when a fetch fails before any HTTP response is received.

    An HTTP error status is *not* a network error: a 500 from the origin
    is a successful fetch that strategies simply decline to cache.
    """


class CacheStoreError(CachelaneError):
    """Raised when a partition cannot be read from or written to."""


class ReplayError(CachelaneError):
    """Raised when the origin rejects a replayed offline action.

    Args:
        message: Human-readable error description.
        status_code: HTTP status returned by the origin, if any.
    """

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code
