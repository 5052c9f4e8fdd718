"""Push notification rendering and click routing.

:class:`PushNotificationAgent` turns an inbound push payload into a
:class:`~cachelane.models.PushDescriptor` and hands it to a
:class:`NotificationPresenter`.  Payloads are JSON or absent; a payload
that cannot be parsed is replaced with a generic title/body rather than
failing, so a notification is always shown.

On a click, the ``dismiss`` action just closes the notification.  Anything
else resolves ``data["url"]`` (default ``/``) against the origin, focuses a
window already showing that URL, or opens a new one.
"""

from __future__ import annotations

import itertools
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from cachelane.clients import ClientRegistry, WindowClient
from cachelane.models import NotificationAction, PushConfig, PushDescriptor

logger = logging.getLogger(__name__)

_ids = itertools.count(1)


@dataclass
class Notification:
    """A notification that has been shown to the user."""

    title: str
    options: PushDescriptor
    id: int = 0
    closed: bool = False

    def __post_init__(self) -> None:
        if not self.id:
            self.id = next(_ids)

    @property
    def data(self) -> dict[str, Any]:
        return self.options.data

    def close(self) -> None:
        self.closed = True


class NotificationPresenter(ABC):
    """Host-side notification display."""

    @abstractmethod
    async def show(self, title: str, options: PushDescriptor) -> Notification:
        """Display a notification and return it."""
        ...


class InMemoryNotificationCenter(NotificationPresenter):
    """Presenter that records notifications instead of displaying them."""

    def __init__(self) -> None:
        self.notifications: list[Notification] = []

    async def show(self, title: str, options: PushDescriptor) -> Notification:
        notification = Notification(title=title, options=options)
        self.notifications.append(notification)
        return notification

    def get(self, notification_id: int) -> Optional[Notification]:
        for notification in self.notifications:
            if notification.id == notification_id:
                return notification
        return None


class PushNotificationAgent:
    """Renders push payloads and routes notification clicks to windows.

    Args:
        presenter: Where notifications are shown.
        clients: Window registry used on click.
        config: Default and fallback texts, icons, and actions.
        origin: Origin that relative target URLs resolve against.
    """

    def __init__(
        self,
        presenter: NotificationPresenter,
        clients: ClientRegistry,
        config: PushConfig,
        origin: str,
    ) -> None:
        self._presenter = presenter
        self._clients = clients
        self._config = config
        self._origin = httpx.URL(origin)

    def parse_payload(self, payload: bytes | str | dict | None) -> dict[str, Any]:
        """Decode an inbound payload, substituting the fallback on failure."""
        if payload is None:
            return {}
        if isinstance(payload, dict):
            return payload
        try:
            data = json.loads(payload)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            logger.warning("Failed to parse push data: %s", exc)
            data = None
        if not isinstance(data, dict):
            return {"title": self._config.fallback_title, "body": self._config.fallback_body}
        return data

    def build(self, data: dict[str, Any]) -> tuple[str, PushDescriptor]:
        """Map payload fields to a title and :class:`PushDescriptor`."""
        cfg = self._config
        descriptor = PushDescriptor(
            body=data.get("body") or cfg.default_body,
            icon=cfg.icon,
            badge=cfg.badge,
            image=data.get("image"),
            data=data.get("data") or {},
            actions=self._actions(data.get("actions")),
            tag=data.get("tag") or cfg.default_tag,
            require_interaction=bool(data.get("urgent", False)),
        )
        return str(data.get("title") or cfg.default_title), descriptor

    def _actions(self, raw: Any) -> list[NotificationAction]:
        if not raw:
            return list(self._config.default_actions)
        try:
            return [NotificationAction.model_validate(item) for item in raw]
        except (ValidationError, TypeError) as exc:
            logger.warning("Ignoring malformed notification actions: %s", exc)
            return list(self._config.default_actions)

    async def handle_push(self, payload: bytes | str | dict | None) -> Notification:
        """Render *payload* as a notification."""
        logger.info("Push notification received")
        try:
            title, descriptor = self.build(self.parse_payload(payload))
        except ValidationError as exc:
            logger.warning("Malformed push payload: %s", exc)
            title, descriptor = self.build(
                {"title": self._config.fallback_title, "body": self._config.fallback_body}
            )
        return await self._presenter.show(title, descriptor)

    async def handle_click(self, notification: Notification, action: str = "") -> Optional[WindowClient]:
        """Close *notification* and bring its target URL into view.

        Returns:
            The focused or newly opened window, or ``None`` for ``dismiss``.
        """
        logger.info("Notification clicked: %s", action or "<body>")
        notification.close()
        if action == "dismiss":
            return None

        url = notification.data.get("url")
        if not isinstance(url, str) or not url:
            url = "/"
        target = str(self._origin.join(url))
        for client in await self._clients.match_all(include_uncontrolled=True):
            if client.url == target:
                return await self._clients.focus(client)
        return await self._clients.open_window(target)
