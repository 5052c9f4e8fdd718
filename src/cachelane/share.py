"""OS share-sheet entry point.

Other applications share content by POSTing a form to the reserved share
path (:attr:`~cachelane.models.ShareConfig.path`).  The handler reads the
``title``, ``text``, and ``url`` fields and counts the ``files`` parts,
stages the result as JSON in the ``dynamic`` partition under a fixed key,
and redirects to the content-creation route so the application shell can
pick it up with :meth:`ShareTargetHandler.load_shared`.

Extraction is defensive: missing fields become ``""``/``0`` and a body
that cannot be parsed yields an empty payload instead of an error.
"""

from __future__ import annotations

import io
import logging
from typing import Any, Optional
from urllib.parse import unquote_plus

import httpx
from python_multipart import parse_form

from cachelane.cache.store import CacheStoreManager
from cachelane.client.response import redirect_response
from cachelane.models import ResourceRequest, SharedPayload, WorkerConfig

logger = logging.getLogger(__name__)

_TEXT_FIELDS = ("title", "text", "url")


class ShareTargetHandler:
    """Accepts share-target submissions and stages them for the shell.

    Args:
        stores: Partition manager; payloads go to the dynamic partition.
        config: Worker configuration (``share`` and ``partitions``).
    """

    def __init__(self, stores: CacheStoreManager, config: WorkerConfig) -> None:
        self._stores = stores
        self._config = config

    def matches(self, request: ResourceRequest) -> bool:
        """Return ``True`` for a POST to the share path."""
        if request.method != "POST":
            return False
        if not request.url.lower().startswith(("http://", "https://")):
            return False
        return request.parsed_url.path == self._config.share.path

    async def handle(self, request: ResourceRequest) -> httpx.Response:
        """Stage the shared content and redirect to the creation route."""
        payload = self.extract(request)
        logger.info("Received shared content (%d file(s))", payload.files)
        staged = httpx.Response(200, json=payload.model_dump())
        await self._stores.put(self._config.partitions.dynamic, self._key(request), staged)
        return redirect_response(request, self._config.share.redirect)

    def extract(self, request: ResourceRequest) -> SharedPayload:
        """Pull the shared fields out of a multipart or urlencoded body."""
        fields: dict[str, str] = {}
        parts: list[Any] = []

        content_type = request.headers.get("content-type") or request.headers.get("Content-Type")
        if not content_type:
            logger.warning("Share submission without a content type")
            return SharedPayload()
        # The querystring parser hands over raw, still percent-encoded bytes.
        urlencoded = content_type.split(";", 1)[0].strip().lower() == "application/x-www-form-urlencoded"

        def decode(raw: Optional[bytes]) -> str:
            value = (raw or b"").decode("utf-8", "replace")
            return unquote_plus(value) if urlencoded else value

        def on_field(field) -> None:
            name = decode(field.field_name)
            if name in _TEXT_FIELDS and name not in fields:
                fields[name] = decode(field.value)

        headers = {"Content-Type": content_type, "Content-Length": str(len(request.body))}
        try:
            parse_form(headers, io.BytesIO(request.body), on_field, parts.append)
        except ValueError as exc:
            logger.warning("Could not parse share submission: %s", exc)
            return SharedPayload()
        finally:
            # Parts stay open until the parser has finished with them.
            for part in parts:
                part.close()
        files = sum(1 for part in parts if part.field_name == b"files" and part.file_name)

        return SharedPayload(
            title=fields.get("title", ""),
            text=fields.get("text", ""),
            url=fields.get("url", ""),
            files=files,
        )

    async def load_shared(self, origin: Optional[str] = None) -> Optional[SharedPayload]:
        """Return the most recently staged payload, if any.

        Args:
            origin: Origin the payload was shared to; defaults to the
                configured network origin.
        """
        base = ResourceRequest(url=origin or self._config.network.origin)
        response = await self._stores.match(self._key(base), self._config.partitions.dynamic)
        if response is None:
            return None
        return SharedPayload.model_validate(response.json())

    def _key(self, request: ResourceRequest) -> ResourceRequest:
        return ResourceRequest(url=request.resolve(self._config.share.storage_key))
