from .connection import ConnectionState, ConnectionStatus
from .credential import Credential, Identity, TokenResponse, decode_expiry
from .crawl import BulkActionRequest, StartCrawlRequest, TasksQuery
from .messages import (
    ALL_TASKS_TOPIC,
    InboundMessage,
    build_envelope,
    build_heartbeat,
    build_subscription,
    parse_inbound,
    task_topic,
)

__all__ = [
    "ConnectionState",
    "ConnectionStatus",
    "Credential",
    "Identity",
    "TokenResponse",
    "decode_expiry",
    "BulkActionRequest",
    "StartCrawlRequest",
    "TasksQuery",
    "ALL_TASKS_TOPIC",
    "InboundMessage",
    "build_envelope",
    "build_heartbeat",
    "build_subscription",
    "parse_inbound",
    "task_topic",
]
