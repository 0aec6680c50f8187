"""Consumer for billing events via Redis Streams.

The payment flow publishes completed purchases; this worker only turns them
into quota ledger rows. All grants are idempotent on their source reference,
so a redelivered entry is harmless.
"""
from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any

import redis.asyncio as aioredis

from match_chat.application.uow import UnitOfWork
from match_chat.config import settings
from match_chat.domain.value_objects.enums import CreditKind
from match_chat.infrastructure.bus.redis_streams import RedisStreamConsumer
from match_chat.infrastructure.db.session import AsyncSessionLocal
from match_chat.infrastructure.db.uow import SqlAlchemyUoW
from match_chat.services import quota_service

logger = logging.getLogger(__name__)

REFERRAL_CREDITS = 1
REFERRAL_EXPIRY_DAYS = 60


def _flag(value: Any) -> bool:
    return str(value).lower() in ("1", "true", "yes")


async def handle_event(event_type: str, fields: dict[str, Any], uow: UnitOfWork) -> None:
    """Dispatch a stream event to the appropriate handler."""
    if event_type == "user.registered":
        await _handle_user_registered(fields, uow)
    elif event_type == "credits.purchased":
        await _handle_credits_purchased(fields, uow)
    elif event_type == "subscription.activated":
        await _handle_subscription_activated(fields, uow)
    elif event_type == "referral.rewarded":
        await _handle_referral_rewarded(fields, uow)
    else:
        logger.debug("Ignoring unknown event: %s", event_type)


async def _handle_user_registered(fields: dict[str, Any], uow: UnitOfWork) -> None:
    user_id = int(fields["user_id"])
    expires_at = None
    if settings.FREE_START_CREDITS_DAYS:
        expires_at = datetime.now(timezone.utc) + timedelta(days=settings.FREE_START_CREDITS_DAYS)
    await quota_service.grant_start_credits(
        user_id,
        CreditKind.FREE_GRANT,
        settings.FREE_START_CREDITS,
        uow,
        expires_at=expires_at,
        source_ref=f"signup:{user_id}",
    )


async def _handle_credits_purchased(fields: dict[str, Any], uow: UnitOfWork) -> None:
    user_id = int(fields["user_id"])
    amount = int(fields["amount"])
    if amount <= 0:
        logger.warning("Purchase %s carries no credits, skipping", fields.get("purchase_id"))
        return
    duration = int(fields["duration_days"]) if fields.get("duration_days") else None
    await quota_service.grant_start_credits(
        user_id,
        CreditKind.PURCHASED_PACK,
        amount,
        uow,
        expires_at=quota_service.pack_expiry(datetime.now(timezone.utc), duration),
        source_ref=f"purchase:{fields['purchase_id']}",
    )


async def _handle_subscription_activated(fields: dict[str, Any], uow: UnitOfWork) -> None:
    """Unlimited conversation starts until period_end, plus the plan's message cap."""
    user_id = int(fields["user_id"])
    period_end = datetime.fromisoformat(fields["period_end"])
    await quota_service.grant_start_credits(
        user_id,
        CreditKind.MONTHLY_SUBSCRIPTION,
        0,
        uow,
        expires_at=period_end,
        source_ref=f"subscription:{fields['subscription_id']}",
    )
    await quota_service.set_message_plan(
        user_id,
        int(fields.get("message_cap") or 0),
        _flag(fields.get("unlimited_messages", "false")),
        uow,
    )
    logger.info("Subscription %s active for user %d", fields["subscription_id"], user_id)


async def _handle_referral_rewarded(fields: dict[str, Any], uow: UnitOfWork) -> None:
    referrer_id = int(fields["referrer_id"])
    referred_id = int(fields["referred_user_id"])
    if referrer_id == referred_id:
        logger.warning("Ignoring self-referral for user %d", referrer_id)
        return
    await quota_service.grant_start_credits(
        referrer_id,
        CreditKind.FREE_GRANT,
        REFERRAL_CREDITS,
        uow,
        expires_at=datetime.now(timezone.utc) + timedelta(days=REFERRAL_EXPIRY_DAYS),
        source_ref=f"referral:{referred_id}",
    )


async def _dispatch(event_type: str, fields: dict[str, Any]) -> None:
    async with AsyncSessionLocal() as session:
        async with SqlAlchemyUoW(session) as uow:
            await handle_event(event_type, fields, uow)


async def run_consumer() -> None:
    redis = aioredis.from_url(settings.REDIS_URL, decode_responses=True)
    consumer_name = f"consumer-{uuid.uuid4().hex[:8]}"

    consumer = RedisStreamConsumer(
        redis=redis,
        stream=settings.BILLING_EVENTS_STREAM,
        group=settings.BILLING_EVENTS_GROUP,
        consumer=consumer_name,
        callback=_dispatch,
    )
    await consumer.start()
    logger.info("Billing events consumer started (%s)", consumer_name)

    try:
        while True:
            await asyncio.sleep(3600)
    except asyncio.CancelledError:
        pass
    finally:
        await consumer.stop()
        await redis.aclose()


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    asyncio.run(run_consumer())


if __name__ == "__main__":
    main()
