"""Event kinds published on the bus, each with a fixed payload shape."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Type

from crawldash.models.credential import Credential, Identity
from crawldash.models.messages import InboundMessage
from crawldash.models.connection import ConnectionState


@dataclass(frozen=True)
class Event:
    """Base class for everything published on the :class:`EventBus`."""


# Session lifecycle


@dataclass(frozen=True)
class SessionStarted(Event):
    identity: Optional[Identity] = None


@dataclass(frozen=True)
class SessionEnded(Event):
    reason: str = "logout"
    error: Optional[str] = None


@dataclass(frozen=True)
class CredentialRenewed(Event):
    credential: Credential


# Channel lifecycle


@dataclass(frozen=True)
class ConnectionStateChanged(Event):
    state: ConnectionState


@dataclass(frozen=True)
class ChannelConnected(Event):
    state: ConnectionState


@dataclass(frozen=True)
class ChannelDisconnected(Event):
    code: Optional[int] = None
    reason: str = ""


@dataclass(frozen=True)
class ChannelOffline(Event):
    """Reconnect ceiling reached; only an explicit reconnect or new session retries."""

    attempts: int
    error: Optional[str] = None


@dataclass(frozen=True)
class ChannelError(Event):
    """Non-fatal channel problem; the connection state is unaffected."""

    kind: str
    detail: str


# Inbound messages


@dataclass(frozen=True)
class MessageReceived(Event):
    message: InboundMessage


@dataclass(frozen=True)
class TaskEvent(Event):
    message: InboundMessage

    @property
    def task_id(self) -> Optional[int]:
        return self.message.correlation_id

    @property
    def data(self) -> Dict[str, Any]:
        return self.message.payload or {}


@dataclass(frozen=True)
class CrawlProgress(TaskEvent):
    pass


@dataclass(frozen=True)
class CrawlStarted(TaskEvent):
    pass


@dataclass(frozen=True)
class CrawlCompleted(TaskEvent):
    pass


@dataclass(frozen=True)
class CrawlFailed(TaskEvent):
    @property
    def error(self) -> Optional[str]:
        return self.data.get("error")


@dataclass(frozen=True)
class CrawlStopped(TaskEvent):
    pass


@dataclass(frozen=True)
class ProgressUpdate(TaskEvent):
    pass


@dataclass(frozen=True)
class ResultsUpdate(TaskEvent):
    pass


@dataclass(frozen=True)
class HeartbeatEcho(TaskEvent):
    pass


@dataclass(frozen=True)
class ServerError(TaskEvent):
    @property
    def code(self) -> Optional[str]:
        return self.data.get("code")


KIND_EVENTS: Dict[str, Type[TaskEvent]] = {
    "crawl_progress": CrawlProgress,
    "crawl_started": CrawlStarted,
    "crawl_completed": CrawlCompleted,
    "crawl_failed": CrawlFailed,
    "crawl_stopped": CrawlStopped,
    "progress_update": ProgressUpdate,
    "results_update": ResultsUpdate,
    "heartbeat": HeartbeatEcho,
    "error": ServerError,
}
