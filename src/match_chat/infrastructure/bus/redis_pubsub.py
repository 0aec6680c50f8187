"""Redis Pub/Sub publisher and a resubscribing subscriber task."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Coroutine, Iterable

import redis.asyncio as aioredis

from match_chat.infrastructure.bus.serializer import deserialize_event, serialize_event

logger = logging.getLogger(__name__)


class RedisPubSubPublisher:
    """Implements application.ports.bus.EventPublisher."""

    def __init__(self, redis: aioredis.Redis) -> None:
        self._redis = redis

    async def publish(self, channel: str, payload: dict[str, Any]) -> None:
        raw = serialize_event(payload.get("event_type", "unknown"), payload)
        await self._redis.publish(channel, raw)

    async def publish_many(self, channels: Iterable[str], payload: dict[str, Any]) -> None:
        raw = serialize_event(payload.get("event_type", "unknown"), payload)
        async with self._redis.pipeline(transaction=False) as pipe:
            for channel in channels:
                pipe.publish(channel, raw)
            await pipe.execute()


OnEventCallback = Callable[[str, dict[str, Any]], Coroutine[Any, Any, None]]


class RedisPubSubSubscriber:
    """Background task that listens to Redis channels and dispatches events.

    A dropped connection is retried with exponential backoff; events published
    while disconnected are lost (Pub/Sub has no replay).
    """

    def __init__(
        self,
        redis: aioredis.Redis,
        channels: Iterable[str],
        callback: OnEventCallback,
        *,
        patterns: Iterable[str] = (),
        reconnect_base: float = 0.5,
        reconnect_max: float = 30.0,
        name: str = "redis-pubsub-subscriber",
    ) -> None:
        self._redis = redis
        self._channels = list(channels)
        self._patterns = list(patterns)
        self._callback = callback
        self._reconnect_base = reconnect_base
        self._reconnect_max = reconnect_max
        self._name = name
        self._task: asyncio.Task[None] | None = None
        self._subscribed = False
        self.reconnects = 0
        self.last_backoff = 0.0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        self._task = asyncio.create_task(self._run(), name=self._name)
        logger.info(
            "Redis Pub/Sub subscriber started on channels=%s patterns=%s",
            self._channels, self._patterns,
        )

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
            logger.info("Redis Pub/Sub subscriber stopped")

    async def _run(self) -> None:
        delay = self._reconnect_base
        while True:
            self._subscribed = False
            try:
                await self._listen()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.warning("Pub/Sub connection lost", exc_info=True)
            # Backoff only grows across attempts that never got subscribed.
            if self._subscribed:
                delay = self._reconnect_base
            self.reconnects += 1
            self.last_backoff = delay
            logger.info("Resubscribing in %.1fs", delay)
            await asyncio.sleep(delay)
            delay = min(delay * 2, self._reconnect_max)

    async def _listen(self) -> None:
        pubsub = self._redis.pubsub()
        try:
            if self._channels:
                await pubsub.subscribe(*self._channels)
            if self._patterns:
                await pubsub.psubscribe(*self._patterns)
            self._subscribed = True
            async for message in pubsub.listen():
                if message["type"] not in ("message", "pmessage"):
                    continue
                try:
                    event_type, data = deserialize_event(message["data"])
                    await self._callback(event_type, data)
                except Exception:
                    logger.exception("Error processing pubsub message")
        finally:
            await pubsub.aclose()
