"""Outbox worker: polls pending outbox records, publishes via Redis Pub/Sub.

Each event goes to the global fan-out channel (WebSocket nodes) and to the
per-user channel of every participant (client realtime bridges).
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone

import redis.asyncio as aioredis

from match_chat.application.repositories.outbox import OutboxRecord
from match_chat.application.uow import UnitOfWork
from match_chat.config import settings
from match_chat.infrastructure.bus.redis_pubsub import RedisPubSubPublisher
from match_chat.infrastructure.db.session import AsyncSessionLocal
from match_chat.infrastructure.db.uow import SqlAlchemyUoW

logger = logging.getLogger(__name__)

BASE_DELAY_SECONDS = 5
MAX_DELAY_SECONDS = 300


def _calc_backoff(attempts: int) -> datetime:
    delay = min(BASE_DELAY_SECONDS * (2 ** attempts), MAX_DELAY_SECONDS)
    return datetime.now(timezone.utc) + timedelta(seconds=delay)


def channels_for(record: OutboxRecord) -> list[str]:
    channels = [settings.REDIS_PUBSUB_CHANNEL]
    channels.extend(settings.user_channel(uid) for uid in record.participant_ids)
    return channels


async def run_outbox_worker() -> None:
    redis = aioredis.from_url(settings.REDIS_URL, decode_responses=True)
    publisher = RedisPubSubPublisher(redis)

    logger.info(
        "Outbox worker started (poll=%.1fs, batch=%d, max_attempts=%d)",
        settings.OUTBOX_POLL_INTERVAL,
        settings.OUTBOX_BATCH_SIZE,
        settings.OUTBOX_MAX_ATTEMPTS,
    )

    try:
        while True:
            try:
                async with AsyncSessionLocal() as session:
                    await process_batch(SqlAlchemyUoW(session), publisher)
            except Exception:
                logger.exception("Outbox worker loop error")
            await asyncio.sleep(settings.OUTBOX_POLL_INTERVAL)
    finally:
        await redis.aclose()


async def process_batch(uow: UnitOfWork, publisher: RedisPubSubPublisher) -> int:
    batch = await uow.outbox.fetch_pending(
        settings.OUTBOX_BATCH_SIZE, settings.OUTBOX_MAX_ATTEMPTS,
    )
    if not batch:
        return 0

    sent_ids: list[int] = []
    for record in batch:
        payload = {"event_type": record.event_type, **record.payload}
        try:
            await publisher.publish_many(channels_for(record), payload)
            sent_ids.append(record.id)
        except Exception as exc:
            logger.exception("Failed to publish outbox record %d", record.id)
            await uow.outbox.mark_failed(record.id, _calc_backoff(record.attempts), str(exc))

    await uow.outbox.mark_sent(sent_ids)
    await uow.commit()
    if sent_ids:
        logger.info("Published %d outbox records", len(sent_ids))
    return len(sent_ids)


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    asyncio.run(run_outbox_worker())


if __name__ == "__main__":
    main()
