"""In-process WebSocket connection manager."""
from __future__ import annotations

import logging
from typing import Any
from uuid import UUID

from fastapi import WebSocket

from match_chat.infrastructure.ws.protocol import WsOutbound

logger = logging.getLogger(__name__)


def _principal_key(user_id: int) -> str:
    return f"user:{user_id}"


class ConnectionManager:
    """Tracks WebSocket connections per principal and conversation subscriptions.

    Only participants are ever subscribed to a conversation; the router checks
    access before calling ``subscribe``.
    """

    def __init__(self) -> None:
        self._connections: dict[str, set[WebSocket]] = {}
        self._subscriptions: dict[UUID, set[str]] = {}

    async def connect(self, ws: WebSocket, principal_key: str) -> None:
        await ws.accept()
        self._connections.setdefault(principal_key, set()).add(ws)
        logger.debug("WS connected: %s (total=%d)", principal_key, len(self._connections))

    def disconnect(self, ws: WebSocket, principal_key: str) -> None:
        conns = self._connections.get(principal_key)
        if conns:
            conns.discard(ws)
            if not conns:
                del self._connections[principal_key]
        if principal_key not in self._connections:
            for conversation_id in list(self._subscriptions):
                self.unsubscribe(principal_key, conversation_id)
        logger.debug("WS disconnected: %s", principal_key)

    def subscribe(self, principal_key: str, conversation_id: UUID) -> None:
        self._subscriptions.setdefault(conversation_id, set()).add(principal_key)

    def unsubscribe(self, principal_key: str, conversation_id: UUID) -> None:
        subs = self._subscriptions.get(conversation_id)
        if subs:
            subs.discard(principal_key)
            if not subs:
                del self._subscriptions[conversation_id]

    def subscribers(self, conversation_id: UUID) -> set[str]:
        return set(self._subscriptions.get(conversation_id, set()))

    async def broadcast_to_conversation(
        self,
        conversation_id: UUID,
        event_type: str,
        data: dict[str, Any],
        *,
        exclude_user: int | None = None,
    ) -> None:
        """Send a WS message to all principals subscribed to a conversation."""
        skip = _principal_key(exclude_user) if exclude_user is not None else None
        raw = WsOutbound(type=event_type, data=data).model_dump_json()
        for pkey in self.subscribers(conversation_id):
            if pkey != skip:
                await self._send_raw(pkey, raw)

    async def send_to_user(
        self,
        user_id: int,
        event_type: str,
        data: dict[str, Any],
    ) -> None:
        raw = WsOutbound(type=event_type, data=data).model_dump_json()
        await self._send_raw(_principal_key(user_id), raw)

    async def _send_raw(self, principal_key: str, raw: str) -> None:
        dead: list[WebSocket] = []
        for ws in list(self._connections.get(principal_key, set())):
            try:
                await ws.send_text(raw)
            except Exception:
                dead.append(ws)
        for ws in dead:
            self.disconnect(ws, principal_key)
