"""``httpx`` transport that sends every request through a :class:`~cachelane.worker.Worker`.

Mount it on the application's client and existing call sites pick up the
caching layer unchanged::

    worker = Worker(config, transport=httpx.AsyncHTTPTransport())
    async with httpx.AsyncClient(transport=InterceptingTransport(worker)) as client:
        response = await client.get(
            "https://app.example.com/images/logo.png",
            extensions={"destination": "image"},
        )

``destination`` and ``mode`` travel in ``request.extensions``; a request
without them is treated as a plain ``fetch()``.  Responses served from a
partition carry ``response.extensions["cachelane_from_cache"] = True``.

The worker's own fetcher must use a different transport, otherwise
every network fetch would loop back into the worker.
"""

from __future__ import annotations

import httpx

from cachelane.client.response import copy_response
from cachelane.exceptions import NetworkError
from cachelane.models import ResourceRequest
from cachelane.worker import Worker


class InterceptingTransport(httpx.AsyncBaseTransport):
    """Routes requests through :meth:`Worker.handle_fetch`.

    Args:
        worker: The worker that answers requests.
    """

    def __init__(self, worker: Worker) -> None:
        self._worker = worker

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        await request.aread()
        try:
            response = await self._worker.handle_fetch(ResourceRequest.from_httpx(request))
        except NetworkError as exc:
            # Failures leave the transport as httpx.TransportError subclasses.
            error_type = type(exc.__cause__) if isinstance(exc.__cause__, httpx.TransportError) else httpx.ConnectError
            raise error_type(str(exc), request=request) from exc
        return copy_response(response)
