"""Connection state tracking for the push channel."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Optional


class ConnectionStatus(enum.Enum):
    """Channel state machine."""

    DISCONNECTED = "Disconnected"
    CONNECTING = "Connecting"
    CONNECTED = "Connected"
    RECONNECTING = "Reconnecting"
    FAILED = "Failed"


_ALLOWED = {
    ConnectionStatus.DISCONNECTED: {ConnectionStatus.CONNECTING},
    ConnectionStatus.CONNECTING: {
        ConnectionStatus.CONNECTED,
        ConnectionStatus.RECONNECTING,
        ConnectionStatus.FAILED,
        ConnectionStatus.DISCONNECTED,
    },
    ConnectionStatus.CONNECTED: {
        ConnectionStatus.RECONNECTING,
        ConnectionStatus.DISCONNECTED,
    },
    ConnectionStatus.RECONNECTING: {
        ConnectionStatus.CONNECTING,
        ConnectionStatus.FAILED,
        ConnectionStatus.DISCONNECTED,
    },
    ConnectionStatus.FAILED: {ConnectionStatus.CONNECTING, ConnectionStatus.DISCONNECTED},
}


@dataclass
class ConnectionState:
    """Mutable channel state owned by the connection manager."""

    status: ConnectionStatus = ConnectionStatus.DISCONNECTED
    attempt_count: int = 0
    last_connected_at: Optional[datetime] = None
    last_error: Optional[str] = None
    last_transition_at: datetime = field(default_factory=lambda: datetime.now(tz=timezone.utc))

    def transition(self, next_status: ConnectionStatus) -> None:
        """Move the channel into a new state, validating allowed transitions."""

        if next_status not in _ALLOWED.get(self.status, set()):
            raise ValueError(f"Invalid transition {self.status.value} → {next_status.value}")
        self.status = next_status
        self.last_transition_at = datetime.now(tz=timezone.utc)

    def snapshot(self) -> ConnectionState:
        return replace(self)

    @property
    def is_connected(self) -> bool:
        return self.status is ConnectionStatus.CONNECTED
