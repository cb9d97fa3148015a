"""Message envelopes exchanged over the activity websocket."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Optional

from pydantic import BaseModel

CLIENT_MESSAGE_TYPES = frozenset(
    {
        "participant:join",
        "participant:submit",
        "participant:update",
        "participant:activity1:submit",
        "participant:activity2:submit",
        "presenter:state",
        "presenter:grouping",
        "presenter:activity1:start",
        "presenter:activity1:end",
        "presenter:activity2:grouping",
        "presenter:activity2:start",
        "presenter:activity2:end",
    }
)


@dataclass(frozen=True)
class ClientMessage:
    type: str
    payload: Any = None


def parse_message(raw: str | bytes) -> Optional[ClientMessage]:
    """Decode a client frame, returning ``None`` for anything unusable."""
    try:
        data = json.loads(raw)
    except (TypeError, ValueError):
        return None
    if not isinstance(data, dict):
        return None
    message_type = data.get("type")
    if not isinstance(message_type, str) or message_type not in CLIENT_MESSAGE_TYPES:
        return None
    return ClientMessage(type=message_type, payload=data.get("payload"))


def server_message(message_type: str, payload: Any = None) -> dict:
    message: dict[str, Any] = {"type": message_type}
    if payload is not None:
        message["payload"] = to_wire(payload)
    return message


def to_wire(value: Any) -> Any:
    """Dump pydantic models (including nested ones) with their camelCase aliases."""
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True)
    if isinstance(value, dict):
        return {key: to_wire(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_wire(item) for item in value]
    return value
