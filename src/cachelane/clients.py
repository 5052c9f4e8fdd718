"""Application windows the worker can see, focus, open, and take control of.

:class:`ClientRegistry` is the host boundary used by activation (claiming
open windows) and by notification clicks (focusing or opening a window).
:class:`InMemoryClientRegistry` is a complete implementation suitable for
embedding hosts that track their own windows and for tests.
"""

from __future__ import annotations

import itertools
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

_ids = itertools.count(1)


@dataclass
class WindowClient:
    """An open application window.

    Attributes:
        url: Absolute URL the window is showing.
        id: Registry-assigned identifier.
        focused: Whether the window currently has focus.
        controlled: Whether this worker generation governs the window.
    """

    url: str
    id: int = 0
    focused: bool = False
    controlled: bool = False

    def __post_init__(self) -> None:
        if not self.id:
            self.id = next(_ids)


class ClientRegistry(ABC):
    """Host-side access to application windows."""

    @abstractmethod
    async def match_all(self, include_uncontrolled: bool = True) -> list[WindowClient]:
        """Return open windows, optionally only those this worker controls."""
        ...

    @abstractmethod
    async def focus(self, client: WindowClient) -> WindowClient:
        """Bring *client* to the foreground."""
        ...

    @abstractmethod
    async def open_window(self, url: str) -> Optional[WindowClient]:
        """Open a new window at *url*; ``None`` if the host cannot."""
        ...

    @abstractmethod
    async def claim(self) -> int:
        """Take control of every open window; returns how many were claimed."""
        ...


class InMemoryClientRegistry(ClientRegistry):
    """Window registry held entirely in memory."""

    def __init__(self, windows: Optional[list[WindowClient]] = None) -> None:
        self.windows: list[WindowClient] = list(windows or [])

    async def match_all(self, include_uncontrolled: bool = True) -> list[WindowClient]:
        if include_uncontrolled:
            return list(self.windows)
        return [w for w in self.windows if w.controlled]

    async def focus(self, client: WindowClient) -> WindowClient:
        for window in self.windows:
            window.focused = window is client
        return client

    async def open_window(self, url: str) -> Optional[WindowClient]:
        window = WindowClient(url=url, controlled=True)
        self.windows.append(window)
        return await self.focus(window)

    async def claim(self) -> int:
        claimed = 0
        for window in self.windows:
            if not window.controlled:
                window.controlled = True
                claimed += 1
        return claimed
