"""Typed event bus and the event kinds it carries."""

from .bus import EventBus
from .types import (
    KIND_EVENTS,
    ChannelConnected,
    ChannelDisconnected,
    ChannelError,
    ChannelOffline,
    ConnectionStateChanged,
    CrawlCompleted,
    CrawlFailed,
    CrawlProgress,
    CrawlStarted,
    CrawlStopped,
    CredentialRenewed,
    Event,
    HeartbeatEcho,
    MessageReceived,
    ProgressUpdate,
    ResultsUpdate,
    ServerError,
    SessionEnded,
    SessionStarted,
    TaskEvent,
)

__all__ = [
    "EventBus",
    "Event",
    "KIND_EVENTS",
    "SessionStarted",
    "SessionEnded",
    "CredentialRenewed",
    "ConnectionStateChanged",
    "ChannelConnected",
    "ChannelDisconnected",
    "ChannelOffline",
    "ChannelError",
    "MessageReceived",
    "TaskEvent",
    "CrawlProgress",
    "CrawlStarted",
    "CrawlCompleted",
    "CrawlFailed",
    "CrawlStopped",
    "ProgressUpdate",
    "ResultsUpdate",
    "HeartbeatEcho",
    "ServerError",
]
