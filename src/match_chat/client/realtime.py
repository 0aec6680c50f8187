"""Per-user realtime bridge.

The outbox worker publishes every change event to ``chat.user.<id>`` for each
participant. A subscription collects the conversation ids it sees and,
after a quiet window, hands the whole batch to one refresh callback.
"""
from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable
from uuid import UUID

import redis.asyncio as aioredis

from match_chat.client.debounce import Debouncer
from match_chat.config import settings
from match_chat.infrastructure.bus.redis_pubsub import RedisPubSubSubscriber

logger = logging.getLogger(__name__)

OnConversationsChanged = Callable[[set[UUID]], Awaitable[None]]
OnRawEvent = Callable[[str, dict[str, Any]], Awaitable[None]]


class Subscription:
    def __init__(
        self,
        user_id: int,
        on_conversations_changed: OnConversationsChanged,
        *,
        on_event: OnRawEvent | None = None,
        debounce_seconds: float | None = None,
    ) -> None:
        self.user_id = user_id
        self._on_changed = on_conversations_changed
        self._on_event = on_event
        self._changed: set[UUID] = set()
        self._debouncer = Debouncer(
            settings.REALTIME_DEBOUNCE_SECONDS if debounce_seconds is None else debounce_seconds,
            self._flush,
        )
        self._subscriber: RedisPubSubSubscriber | None = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def refresh_pending(self) -> bool:
        return self._debouncer.pending

    def attach(self, subscriber: RedisPubSubSubscriber) -> None:
        self._subscriber = subscriber

    async def handle_event(self, event_type: str, data: dict[str, Any]) -> None:
        if self._closed:
            return
        raw_id = data.get("conversation_id")
        if raw_id:
            try:
                self._changed.add(UUID(str(raw_id)))
            except ValueError:
                logger.warning("Ignoring %s with bad conversation id %r", event_type, raw_id)
        if self._on_event is not None:
            await self._on_event(event_type, data)
        self._debouncer.trigger()

    async def _flush(self) -> None:
        changed, self._changed = self._changed, set()
        logger.debug("Refreshing %d conversation(s) for user %d", len(changed), self.user_id)
        await self._on_changed(changed)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._debouncer.close()
        if self._subscriber is not None:
            await self._subscriber.stop()
        self._changed.clear()


class RealtimeEventBridge:
    def __init__(
        self,
        redis: aioredis.Redis,
        *,
        debounce_seconds: float | None = None,
        reconnect_max: float | None = None,
    ) -> None:
        self._redis = redis
        self._debounce_seconds = debounce_seconds
        self._reconnect_max = (
            settings.REALTIME_RECONNECT_MAX_SECONDS if reconnect_max is None else reconnect_max
        )

    async def subscribe(
        self,
        user_id: int,
        on_conversations_changed: OnConversationsChanged,
        *,
        on_event: OnRawEvent | None = None,
    ) -> Subscription:
        subscription = Subscription(
            user_id,
            on_conversations_changed,
            on_event=on_event,
            debounce_seconds=self._debounce_seconds,
        )
        subscriber = RedisPubSubSubscriber(
            self._redis,
            [settings.user_channel(user_id)],
            subscription.handle_event,
            reconnect_max=self._reconnect_max,
            name=f"realtime-user-{user_id}",
        )
        subscription.attach(subscriber)
        await subscriber.start()
        return subscription
