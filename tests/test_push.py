"""Tests for cachelane.push -- payload rendering and click routing."""

from __future__ import annotations

import json

import pytest

from cachelane.clients import InMemoryClientRegistry, WindowClient
from cachelane.models import PushConfig
from cachelane.push import InMemoryNotificationCenter, PushNotificationAgent

ORIGIN = "https://app.example.com"


@pytest.fixture
def center() -> InMemoryNotificationCenter:
    return InMemoryNotificationCenter()


@pytest.fixture
def windows() -> InMemoryClientRegistry:
    return InMemoryClientRegistry()


@pytest.fixture
def agent(center, windows) -> PushNotificationAgent:
    return PushNotificationAgent(center, windows, PushConfig(), ORIGIN)


# ------------------------------------------------------------------ #
# Rendering
# ------------------------------------------------------------------ #


class TestRender:
    async def test_scenario_c_empty_payload(self, agent: PushNotificationAgent, center) -> None:
        """An empty object renders with the generic title and body."""
        notification = await agent.handle_push("{}")
        assert notification.title == "Notification"
        assert notification.options.body == "You have a new notification"
        assert center.notifications == [notification]

    async def test_absent_payload(self, agent: PushNotificationAgent) -> None:
        notification = await agent.handle_push(None)
        assert notification.title == "Notification"

    @pytest.mark.parametrize("payload", [b"not json", "[1, 2]", b"\xff\xfe", "null"])
    async def test_unparseable_payload_uses_fallback(self, agent: PushNotificationAgent, payload) -> None:
        notification = await agent.handle_push(payload)
        assert notification.title == "New notification"
        assert notification.options.body == "You have a new update"

    async def test_full_payload(self, agent: PushNotificationAgent) -> None:
        payload = {
            "title": "Order shipped",
            "body": "Your order is on its way",
            "image": "/img/box.png",
            "data": {"url": "/orders/7"},
            "actions": [{"action": "track", "title": "Track"}],
            "tag": "orders",
            "urgent": True,
        }
        notification = await agent.handle_push(json.dumps(payload).encode())
        options = notification.options
        assert notification.title == "Order shipped"
        assert options.body == "Your order is on its way"
        assert options.image == "/img/box.png"
        assert options.data == {"url": "/orders/7"}
        assert [a.action for a in options.actions] == ["track"]
        assert options.tag == "orders"
        assert options.require_interaction is True
        assert options.icon == "/icons/icon-192x192.png"
        assert options.badge == "/icons/icon-72x72.png"
        assert options.timestamp > 0

    async def test_defaults(self, agent: PushNotificationAgent) -> None:
        notification = await agent.handle_push({"title": "Hi"})
        options = notification.options
        assert options.tag == "general"
        assert options.require_interaction is False
        assert [a.action for a in options.actions] == ["view", "dismiss"]

    async def test_malformed_actions_fall_back_to_defaults(self, agent: PushNotificationAgent) -> None:
        notification = await agent.handle_push({"title": "Hi", "actions": [{"nope": 1}]})
        assert [a.action for a in notification.options.actions] == ["view", "dismiss"]

    async def test_wrongly_typed_fields_never_block_display(self, agent: PushNotificationAgent) -> None:
        notification = await agent.handle_push({"title": 42, "body": ["x"], "data": "oops"})
        assert notification.title == "New notification"


# ------------------------------------------------------------------ #
# Clicks
# ------------------------------------------------------------------ #


class TestClick:
    async def test_dismiss_only_closes(self, agent: PushNotificationAgent, windows) -> None:
        notification = await agent.handle_push({"data": {"url": "/orders/7"}})
        assert await agent.handle_click(notification, "dismiss") is None
        assert notification.closed is True
        assert windows.windows == []

    async def test_focuses_existing_window(self, agent: PushNotificationAgent, windows) -> None:
        other = WindowClient(url=f"{ORIGIN}/", focused=True)
        target = WindowClient(url=f"{ORIGIN}/orders/7")
        windows.windows.extend([other, target])

        notification = await agent.handle_push({"data": {"url": "/orders/7"}})
        client = await agent.handle_click(notification, "view")

        assert client is target
        assert target.focused is True
        assert other.focused is False
        assert len(windows.windows) == 2

    async def test_opens_new_window(self, agent: PushNotificationAgent, windows) -> None:
        windows.windows.append(WindowClient(url=f"{ORIGIN}/"))
        notification = await agent.handle_push({"data": {"url": "/orders/7"}})
        client = await agent.handle_click(notification)
        assert client.url == f"{ORIGIN}/orders/7"
        assert len(windows.windows) == 2

    async def test_default_target_is_root(self, agent: PushNotificationAgent, windows) -> None:
        root = WindowClient(url=f"{ORIGIN}/")
        windows.windows.append(root)
        notification = await agent.handle_push({})
        assert await agent.handle_click(notification) is root
        assert notification.closed is True

    @pytest.mark.parametrize("url", [5, None, ["/x"], {"path": "/x"}])
    async def test_non_string_url_targets_root(self, agent: PushNotificationAgent, windows, url) -> None:
        notification = await agent.handle_push(json.dumps({"title": "t", "data": {"url": url}}).encode())
        client = await agent.handle_click(notification, "view")
        assert client.url == f"{ORIGIN}/"
