"""
User interface seam.

Rendering the interface is outside the launcher's concern. The launcher only
calls ``show`` once the stack is ready and then waits on ``wait_closed``;
closing the interface is the explicit quit trigger.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional, Protocol

from .host_bridge import HostInfo

logger = logging.getLogger(__name__)


class UserInterface(Protocol):
    def show(self, host_info: HostInfo) -> None: ...

    async def wait_closed(self) -> None: ...

    def close(self) -> None: ...


class ConsoleInterface:
    """Headless interface: logs readiness and stays open until closed."""

    def __init__(self) -> None:
        self._closed: Optional[asyncio.Event] = None
        self.host_info: Optional[HostInfo] = None

    def _event(self) -> asyncio.Event:
        if self._closed is None:
            self._closed = asyncio.Event()
        return self._closed

    def show(self, host_info: HostInfo) -> None:
        self.host_info = host_info
        versions = ", ".join(f"{name} {version}" for name, version in host_info.versions.items())
        logger.info("Services ready on %s (%s); press Ctrl+C to quit", host_info.platform, versions)
        self._event()

    async def wait_closed(self) -> None:
        await self._event().wait()

    def close(self) -> None:
        self._event().set()


__all__ = ["ConsoleInterface", "UserInterface"]
