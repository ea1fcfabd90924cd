"""Push channel envelope models, topic names and control frame builders."""

from __future__ import annotations

import json
import time
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from crawldash.errors import MessageParseError

ALL_TASKS_TOPIC = "crawl_tasks:all"
TASK_TOPIC_PREFIX = "crawl_task:"

SUBSCRIBE = "subscribe"
UNSUBSCRIBE = "unsubscribe"
HEARTBEAT = "heartbeat"


def task_topic(task_id: int) -> str:
    """Topic carrying updates for a single crawl task."""

    return f"{TASK_TOPIC_PREFIX}{int(task_id)}"


class InboundMessage(BaseModel):
    """Parsed ``{type, data?, task_id?}`` envelope received on the channel."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    kind: str = Field(alias="type", min_length=1)
    payload: Optional[Dict[str, Any]] = Field(default=None, alias="data")
    correlation_id: Optional[int] = Field(default=None, alias="task_id")
    timestamp: Optional[float] = None

    @property
    def is_broadcast(self) -> bool:
        return self.correlation_id is None


def parse_inbound(raw: Union[str, bytes, Dict[str, Any]]) -> InboundMessage:
    """Decode a raw channel frame into an :class:`InboundMessage`."""

    if isinstance(raw, bytes):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise MessageParseError(f"Frame is not UTF-8: {exc}") from exc
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise MessageParseError(f"Frame is not JSON: {exc.msg}") from exc
    if not isinstance(raw, dict):
        raise MessageParseError("Frame must be a JSON object")
    try:
        return InboundMessage.model_validate(raw)
    except ValidationError as exc:
        raise MessageParseError(f"Invalid envelope: {exc.errors()[0]['msg']}") from exc


def build_envelope(
    message_type: str,
    data: Optional[Dict[str, Any]] = None,
    *,
    task_id: Optional[int] = None,
) -> Dict[str, Any]:
    """Construct an outbound envelope dict ready for the transport."""

    envelope: Dict[str, Any] = {"type": message_type}
    if data is not None:
        envelope["data"] = data
    if task_id is not None:
        envelope["task_id"] = task_id
    return envelope


def build_subscription(topic: str, *, subscribe: bool = True) -> Dict[str, Any]:
    return build_envelope(SUBSCRIBE if subscribe else UNSUBSCRIBE, {"subscription": topic})


def build_heartbeat() -> Dict[str, Any]:
    return build_envelope(HEARTBEAT, {"timestamp": int(time.time() * 1000)})
