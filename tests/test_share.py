"""Tests for cachelane.share -- share-target submissions."""

from __future__ import annotations

from typing import Any, Optional

import httpx
import pytest

from cachelane.cache.store import CacheStoreManager
from cachelane.models import ResourceRequest, SharedPayload, WorkerConfig
from cachelane.share import ShareTargetHandler

ORIGIN = "https://app.example.com"


def _share_request(
    data: Optional[dict[str, Any]] = None,
    files: Optional[list[tuple[str, tuple[str, bytes, str]]]] = None,
    path: str = "/share",
) -> ResourceRequest:
    """Build a share submission the way a browser form post would."""
    request = httpx.Request("POST", f"{ORIGIN}{path}", data=data, files=files)
    request.read()
    return ResourceRequest.from_httpx(request)


@pytest.fixture
def handler(stores: CacheStoreManager, config: WorkerConfig) -> ShareTargetHandler:
    return ShareTargetHandler(stores, config)


# ------------------------------------------------------------------ #
# Matching
# ------------------------------------------------------------------ #


class TestMatches:
    def test_post_to_share_path(self, handler: ShareTargetHandler) -> None:
        assert handler.matches(_share_request({"title": "x"}))

    def test_get_is_not_a_share(self, handler: ShareTargetHandler, make_request) -> None:
        assert not handler.matches(make_request("/share"))

    def test_other_paths(self, handler: ShareTargetHandler) -> None:
        assert not handler.matches(_share_request({"title": "x"}, path="/share/extra"))
        assert not handler.matches(_share_request({"title": "x"}, path="/api/share"))


# ------------------------------------------------------------------ #
# Extraction
# ------------------------------------------------------------------ #


class TestExtract:
    def test_multipart_fields_and_files(self, handler: ShareTargetHandler) -> None:
        request = _share_request(
            {"title": "Look", "text": "at this", "url": "https://example.org/x"},
            files=[
                ("files", ("a.png", b"\x89PNG", "image/png")),
                ("files", ("b.jpg", b"\xff\xd8", "image/jpeg")),
            ],
        )
        payload = handler.extract(request)
        assert payload == SharedPayload(title="Look", text="at this", url="https://example.org/x", files=2)

    def test_missing_fields_default(self, handler: ShareTargetHandler) -> None:
        request = _share_request({"text": "only text"}, files=[("other", ("c.txt", b"c", "text/plain"))])
        payload = handler.extract(request)
        assert payload == SharedPayload(text="only text")

    def test_urlencoded(self, handler: ShareTargetHandler) -> None:
        payload = handler.extract(_share_request({"title": "T", "url": "https://example.org"}))
        assert payload.title == "T"
        assert payload.url == "https://example.org"
        assert payload.files == 0

    def test_urlencoded_values_are_decoded(self, handler: ShareTargetHandler) -> None:
        payload = handler.extract(_share_request({"text": "a b & c", "url": "https://x.org/?q=1"}))
        assert payload.text == "a b & c"
        assert payload.url == "https://x.org/?q=1"

    def test_single_file_keeps_fields(self, handler: ShareTargetHandler) -> None:
        request = _share_request({"title": "Look"}, files=[("files", ("a.png", b"x", "image/png"))])
        assert handler.extract(request) == SharedPayload(title="Look", files=1)

    def test_multipart_values_are_not_unquoted(self, handler: ShareTargetHandler) -> None:
        request = _share_request({"text": "50%+off"}, files=[("files", ("a.png", b"x", "image/png"))])
        assert handler.extract(request).text == "50%+off"

    def test_missing_content_type(self, handler: ShareTargetHandler) -> None:
        request = ResourceRequest(method="POST", url=f"{ORIGIN}/share", body=b"title=x")
        assert handler.extract(request) == SharedPayload()

    def test_unparseable_body(self, handler: ShareTargetHandler) -> None:
        request = ResourceRequest(
            method="POST",
            url=f"{ORIGIN}/share",
            headers={"content-type": "multipart/form-data"},
            body=b"garbage",
        )
        assert handler.extract(request) == SharedPayload()


# ------------------------------------------------------------------ #
# Handling
# ------------------------------------------------------------------ #


class TestHandle:
    async def test_stages_payload_and_redirects(
        self, handler: ShareTargetHandler, stores: CacheStoreManager
    ) -> None:
        response = await handler.handle(_share_request({"title": "Look", "text": "at this"}))

        assert response.status_code == 302
        assert response.headers["location"] == f"{ORIGIN}/create?shared=true"

        staged = await stores.match(ResourceRequest(url=f"{ORIGIN}/shared-data"), "dynamic")
        assert staged.json() == {"title": "Look", "text": "at this", "url": "", "files": 0}

    async def test_load_shared(self, handler: ShareTargetHandler) -> None:
        assert await handler.load_shared() is None
        await handler.handle(_share_request({"url": "https://example.org"}))
        assert await handler.load_shared() == SharedPayload(url="https://example.org")

    async def test_latest_share_wins(self, handler: ShareTargetHandler) -> None:
        await handler.handle(_share_request({"title": "first"}))
        await handler.handle(_share_request({"title": "second"}))
        assert (await handler.load_shared(ORIGIN)).title == "second"
