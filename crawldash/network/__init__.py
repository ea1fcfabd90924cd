"""Push channel stack (transport + connection manager)."""

from crawldash.models.connection import ConnectionState, ConnectionStatus
from crawldash.network.connection import ConnectionManager, HeartbeatTimeout, build_channel_url
from crawldash.network.transport.base import NORMAL_CLOSURE, BaseTransport
from crawldash.network.transport.dummy import DummyTransport
from crawldash.network.transport.websocket import WebSocketTransport

__all__ = [
    "ConnectionManager",
    "ConnectionState",
    "ConnectionStatus",
    "HeartbeatTimeout",
    "build_channel_url",
    "NORMAL_CLOSURE",
    "BaseTransport",
    "DummyTransport",
    "WebSocketTransport",
]
