"""WebSocket message envelope models."""
from __future__ import annotations

from typing import Any

from pydantic import BaseModel


class WsInbound(BaseModel):
    """Client → Server."""

    type: str  # message.send | mark_read | typing.start | typing.stop | subscribe | unsubscribe | ping
    data: dict[str, Any] = {}


class WsOutbound(BaseModel):
    """Server → Client."""

    type: str  # chat.message_created | chat.messages_read | chat.typing | message.ack | error | pong
    data: dict[str, Any] = {}


def error_frame(code: str, **extra: Any) -> str:
    return WsOutbound(type="error", data={"code": code, **extra}).model_dump_json()
