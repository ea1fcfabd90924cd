"""In-memory transport for offline runs and tests."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Optional

from crawldash.errors import ChannelClosed
from crawldash.network.transport.base import NORMAL_CLOSURE, BaseTransport

LOGGER = logging.getLogger(__name__)


class DummyTransport(BaseTransport):
    """Loopback transport: records sent frames and yields frames fed with :meth:`feed`."""

    def __init__(self, url: str = "memory://") -> None:
        self.url = url
        self.sent: list[dict[str, Any]] = []
        self.closed_with: Optional[tuple[int, str]] = None
        self._inbox: asyncio.Queue[Any] = asyncio.Queue()

    async def connect(self) -> None:
        LOGGER.debug("Dummy transport connect()")

    async def send(self, message: dict[str, Any]) -> None:
        if self.closed_with is not None:
            raise ChannelClosed(*self.closed_with)
        LOGGER.debug("Dummy transport send(): %s", message)
        self.sent.append(message)

    async def receive(self) -> str | bytes:
        item = await self._inbox.get()
        if isinstance(item, ChannelClosed):
            raise item
        return item

    async def close(self, code: int = NORMAL_CLOSURE, reason: str = "") -> None:
        LOGGER.debug("Dummy transport close(%s)", code)
        if self.closed_with is None:
            self.closed_with = (code, reason)

    def feed(self, message: dict[str, Any] | str | bytes) -> None:
        """Queue an inbound frame; dicts are JSON-encoded."""

        self._inbox.put_nowait(json.dumps(message) if isinstance(message, dict) else message)

    def drop(self, code: int, reason: str = "") -> None:
        """Simulate the peer closing the connection."""

        self._inbox.put_nowait(ChannelClosed(code, reason))
