"""Response construction -- maps between :class:`httpx.Response` and stored entries.

Strategies only ever hand :class:`httpx.Response` objects back to the
caller. This module owns every way such a response can come into being
without a network round trip:

* :func:`entry_to_response` / :func:`response_to_entry` -- convert between
  a live response and a :class:`~cachelane.models.CacheEntry`.
* :func:`offline_text_response`, :func:`offline_json_response`,
  :func:`placeholder_image_response`, :func:`offline_document_response`,
  :func:`redirect_response` -- synthetic responses used as fallbacks.

Every response built here records its origin in
``response.extensions[FROM_CACHE]``.
"""

from __future__ import annotations

from typing import Any

import httpx

from cachelane.models import CacheEntry, ResourceRequest

FROM_CACHE = "cachelane_from_cache"
"""Response extension key: ``True`` when the body came from a partition."""

OFFLINE_HTML = (
    "<html><body><h1>Offline</h1>"
    "<p>You are currently offline. Please check your internet connection.</p>"
    "</body></html>"
)

PLACEHOLDER_SVG = (
    '<svg width="200" height="200" xmlns="http://www.w3.org/2000/svg">'
    '<rect width="200" height="200" fill="#f0f0f0"/>'
    '<text x="50%" y="50%" text-anchor="middle" dy=".3em" fill="#999">'
    "Image unavailable</text></svg>"
)

# Bodies are stored decoded, so these would describe the wrong bytes.
_UNSTORED_HEADERS = frozenset({"content-encoding", "content-length", "transfer-encoding"})


def _storable_headers(headers: httpx.Headers) -> list[tuple[str, str]]:
    return [
        (name, value)
        for name, value in headers.multi_items()
        if name.lower() not in _UNSTORED_HEADERS
    ]


def response_to_entry(request: ResourceRequest, response: httpx.Response) -> CacheEntry:
    """Snapshot a fully-read *response* as a :class:`CacheEntry` for *request*."""
    return CacheEntry(
        method=request.method,
        url=request.url,
        status_code=response.status_code,
        headers=_storable_headers(response.headers),
        body=response.content,
    )


def entry_to_response(entry: CacheEntry, request: ResourceRequest) -> httpx.Response:
    """Rebuild an :class:`httpx.Response` from a stored entry."""
    return httpx.Response(
        status_code=entry.status_code,
        headers=entry.headers,
        content=entry.body,
        request=request.to_httpx(),
        extensions={FROM_CACHE: True},
    )


def copy_response(response: httpx.Response) -> httpx.Response:
    """Detach a read response from the client that produced it.

    The copy carries the decoded body, so encoding headers are dropped.
    """
    extensions = dict(response.extensions)
    extensions.setdefault(FROM_CACHE, False)
    return httpx.Response(
        status_code=response.status_code,
        headers=_storable_headers(response.headers),
        content=response.content,
        request=response.request,
        extensions=extensions,
    )


def _synthetic(request: ResourceRequest, status_code: int, **kwargs: Any) -> httpx.Response:
    return httpx.Response(
        status_code=status_code,
        request=request.to_httpx(),
        extensions={FROM_CACHE: False},
        **kwargs,
    )


def offline_text_response(request: ResourceRequest) -> httpx.Response:
    """Plain ``503 Offline`` used by CacheFirst when nothing is cached."""
    return _synthetic(
        request, 503, text="Offline", headers={"content-type": "text/plain"}
    )


def offline_json_response(request: ResourceRequest) -> httpx.Response:
    """JSON ``503 {"error": "Offline"}`` used by the network-backed strategies."""
    return _synthetic(request, 503, json={"error": "Offline"})


def placeholder_image_response(request: ResourceRequest) -> httpx.Response:
    """Inline SVG placeholder served in place of an unreachable image."""
    return _synthetic(
        request, 200, text=PLACEHOLDER_SVG, headers={"content-type": "image/svg+xml"}
    )


def offline_document_response(request: ResourceRequest) -> httpx.Response:
    """Last-resort HTML page for navigations with nothing cached."""
    return _synthetic(
        request, 200, text=OFFLINE_HTML, headers={"content-type": "text/html"}
    )


def redirect_response(request: ResourceRequest, location: str, status_code: int = 302) -> httpx.Response:
    """Redirect to *location*, resolved against the request URL."""
    return _synthetic(
        request, status_code, headers={"location": request.resolve(location)}
    )


def is_from_cache(response: httpx.Response) -> bool:
    """Return ``True`` if *response* was served from a partition."""
    return bool(response.extensions.get(FROM_CACHE, False))
