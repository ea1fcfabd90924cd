"""Transport abstractions for the push channel."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

NORMAL_CLOSURE = 1000
ABNORMAL_CLOSURE = 1006


class BaseTransport(ABC):
    """Abstract WebSocket-like transport bound to one channel URL.

    ``receive`` returns the raw frame; it raises
    :class:`~crawldash.errors.ChannelClosed` once the peer closes.
    """

    @abstractmethod
    async def connect(self) -> None:
        ...

    @abstractmethod
    async def send(self, message: dict[str, Any]) -> None:
        ...

    @abstractmethod
    async def receive(self) -> str | bytes:
        ...

    @abstractmethod
    async def close(self, code: int = NORMAL_CLOSURE, reason: str = "") -> None:
        ...
