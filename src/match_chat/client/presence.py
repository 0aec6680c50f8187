"""Ephemeral typing indicators over Redis Pub/Sub."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable
from uuid import UUID

import redis.asyncio as aioredis

from match_chat.application.ports.bus import EventPublisher
from match_chat.config import settings
from match_chat.domain.events.typing_changed import TypingChanged
from match_chat.infrastructure.bus.redis_pubsub import (
    RedisPubSubPublisher,
    RedisPubSubSubscriber,
)

logger = logging.getLogger(__name__)

OnTypingChanged = Callable[[UUID, set[int]], None]


class TypingChannel:
    """Tracks who is typing in each watched conversation.

    Every remote user has an expiry timer that a renewed signal reschedules;
    a missing stop signal therefore clears itself after ``expiry`` seconds.
    """

    def __init__(
        self,
        user_id: int,
        redis: aioredis.Redis | None = None,
        *,
        publisher: EventPublisher | None = None,
        expiry: float | None = None,
        on_change: OnTypingChanged | None = None,
    ) -> None:
        if publisher is None:
            if redis is None:
                raise ValueError("TypingChannel needs a redis client or a publisher")
            publisher = RedisPubSubPublisher(redis)
        self._user_id = user_id
        self._redis = redis
        self._publisher = publisher
        self._expiry = settings.TYPING_EXPIRY_SECONDS if expiry is None else expiry
        self._on_change = on_change
        self._typing: dict[UUID, dict[int, asyncio.TimerHandle]] = {}
        self._subscribers: dict[UUID, RedisPubSubSubscriber] = {}

    def typing_users(self, conversation_id: UUID) -> set[int]:
        return set(self._typing.get(conversation_id, {}))

    async def start_typing(self, conversation_id: UUID) -> None:
        await self._send(conversation_id, True)

    async def stop_typing(self, conversation_id: UUID) -> None:
        await self._send(conversation_id, False)

    async def _send(self, conversation_id: UUID, typing: bool) -> None:
        event = TypingChanged(
            conversation_id=conversation_id,
            user_id=self._user_id,
            typing=typing,
            expires_in=self._expiry,
        )
        await self._publisher.publish(
            settings.typing_channel(conversation_id), event.to_payload(),
        )

    async def watch(self, conversation_id: UUID) -> None:
        if conversation_id in self._subscribers or self._redis is None:
            return
        subscriber = RedisPubSubSubscriber(
            self._redis,
            [settings.typing_channel(conversation_id)],
            self.handle_event,
            name=f"typing-{conversation_id}",
        )
        self._subscribers[conversation_id] = subscriber
        await subscriber.start()

    async def unwatch(self, conversation_id: UUID) -> None:
        subscriber = self._subscribers.pop(conversation_id, None)
        if subscriber is not None:
            await subscriber.stop()
        for handle in self._typing.pop(conversation_id, {}).values():
            handle.cancel()

    async def handle_event(self, event_type: str, data: dict[str, Any]) -> None:
        if event_type != TypingChanged.event_type:
            return
        try:
            conversation_id = UUID(str(data["conversation_id"]))
            user_id = int(data["user_id"])
            expires_in = float(data.get("expires_in") or self._expiry)
        except (KeyError, TypeError, ValueError):
            logger.debug("Dropping malformed typing event %r", data)
            return
        if user_id == self._user_id:
            return
        # The sender never extends an indicator past our own expiry window.
        if not 0 < expires_in <= self._expiry:
            expires_in = self._expiry
        if data.get("typing"):
            self._mark_typing(conversation_id, user_id, expires_in)
        else:
            self.clear_user(conversation_id, user_id)

    def _mark_typing(self, conversation_id: UUID, user_id: int, expires_in: float) -> None:
        users = self._typing.setdefault(conversation_id, {})
        is_new = user_id not in users
        if not is_new:
            users[user_id].cancel()
        loop = asyncio.get_running_loop()
        users[user_id] = loop.call_later(expires_in, self.clear_user, conversation_id, user_id)
        if is_new:
            self._notify(conversation_id)

    def clear_user(self, conversation_id: UUID, user_id: int) -> None:
        users = self._typing.get(conversation_id)
        if not users or user_id not in users:
            return
        users.pop(user_id).cancel()
        if not users:
            del self._typing[conversation_id]
        self._notify(conversation_id)

    def _notify(self, conversation_id: UUID) -> None:
        if self._on_change is not None:
            self._on_change(conversation_id, self.typing_users(conversation_id))

    async def close(self) -> None:
        for conversation_id in list(self._subscribers):
            await self.unwatch(conversation_id)
        for users in self._typing.values():
            for handle in users.values():
                handle.cancel()
        self._typing.clear()
