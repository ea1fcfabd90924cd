"""WebSocket transport implementation."""

from __future__ import annotations

import json
import logging
from typing import Any, Optional
from urllib.parse import urlsplit

import websockets
from websockets.exceptions import ConnectionClosed

from crawldash.errors import ChannelClosed
from crawldash.network.transport.base import ABNORMAL_CLOSURE, NORMAL_CLOSURE, BaseTransport

LOGGER = logging.getLogger(__name__)


def _redacted(url: str) -> str:
    parts = urlsplit(url)
    return f"{parts.scheme}://{parts.netloc}{parts.path}"


class WebSocketTransport(BaseTransport):
    """WebSocket-based push channel transport.

    Liveness is left to the protocol: the client pings every ``ping_interval``
    seconds and the library closes the connection when no pong arrives within
    ``ping_timeout``, which surfaces from :meth:`receive` as an abnormal close.
    """

    def __init__(
        self,
        url: str,
        *,
        ping_interval: Optional[float] = 20.0,
        ping_timeout: Optional[float] = 20.0,
    ) -> None:
        self._url = url
        self.ping_interval = ping_interval
        self.ping_timeout = ping_timeout
        self._ws: Optional[Any] = None

    async def connect(self) -> None:
        LOGGER.info("Connecting to push channel at %s", _redacted(self._url))
        self._ws = await websockets.connect(
            self._url,
            ping_interval=self.ping_interval,
            ping_timeout=self.ping_timeout,
        )

    async def send(self, message: dict[str, Any]) -> None:
        if not self._ws:
            raise RuntimeError("WebSocket transport not connected")
        payload = json.dumps(message)
        LOGGER.debug("WebSocket send: %s", payload)
        try:
            await self._ws.send(payload)
        except ConnectionClosed as exc:
            raise self._closed(exc) from exc

    async def receive(self) -> str | bytes:
        if not self._ws:
            raise RuntimeError("WebSocket transport not connected")
        try:
            raw = await self._ws.recv()
        except ConnectionClosed as exc:
            raise self._closed(exc) from exc
        LOGGER.debug("WebSocket receive: %s", raw)
        return raw

    async def close(self, code: int = NORMAL_CLOSURE, reason: str = "") -> None:
        if self._ws:
            LOGGER.info("Closing WebSocket transport (%s)", code)
            ws, self._ws = self._ws, None
            await ws.close(code=code, reason=reason)

    @staticmethod
    def _closed(exc: ConnectionClosed) -> ChannelClosed:
        frame = exc.rcvd
        if frame is None:
            return ChannelClosed(ABNORMAL_CLOSURE, "connection lost")
        return ChannelClosed(frame.code, frame.reason)
