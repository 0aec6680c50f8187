"""Quota ledger: conversation-start credits and the monthly message allowance."""
from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta

from match_chat.application.dto.quota import MessageAllowanceStatus, QuotaStatusDTO
from match_chat.application.exceptions import MonthlyCapExceededError
from match_chat.application.ports.clock import Clock, SystemClock
from match_chat.application.uow import UnitOfWork
from match_chat.config import settings
from match_chat.domain.entities.message_allowance import (
    MessageAllowance,
    current_period_start,
    next_period_start,
)
from match_chat.domain.entities.start_credit import StartCredit
from match_chat.domain.value_objects.enums import ConsumeResult, CreditKind

logger = logging.getLogger(__name__)

_system_clock = SystemClock()


async def available_start_credits(
    user_id: int,
    uow: UnitOfWork,
    clock: Clock = _system_clock,
) -> int:
    now = clock.now()
    entries = await uow.credits.list_active(user_id, now)
    return sum(
        e.available(now) for e in entries if e.kind != CreditKind.MONTHLY_SUBSCRIPTION
    )


async def has_unlimited_starts(
    user_id: int,
    uow: UnitOfWork,
    clock: Clock = _system_clock,
) -> bool:
    now = clock.now()
    entries = await uow.credits.list_active(user_id, now)
    return any(
        e.kind == CreditKind.MONTHLY_SUBSCRIPTION and not e.is_expired(now)
        for e in entries
    )


async def consume_start_credit(
    user_id: int,
    uow: UnitOfWork,
    clock: Clock = _system_clock,
) -> ConsumeResult:
    """Spend one start credit, oldest expiry first.

    Does not commit: the caller commits together with the conversation insert
    so a rolled-back creation also returns the credit.
    """
    if await has_unlimited_starts(user_id, uow, clock):
        return ConsumeResult.UNLIMITED

    entry = await uow.credits_w.try_consume(user_id, clock.now())
    if entry is None:
        logger.info("User %d has no start credits left", user_id)
        return ConsumeResult.DEPLETED

    logger.debug(
        "Consumed start credit from %s (%s), %d left in entry",
        entry.id, entry.kind, entry.remaining,
    )
    return ConsumeResult.CONSUMED


async def grant_start_credits(
    user_id: int,
    kind: CreditKind,
    amount: int,
    uow: UnitOfWork,
    *,
    expires_at: datetime | None = None,
    source_ref: str | None = None,
    clock: Clock = _system_clock,
) -> bool:
    """Add a ledger entry. Returns False when source_ref was already granted."""
    credit = StartCredit(
        id=uuid.uuid4(),
        user_id=user_id,
        kind=kind,
        total=amount,
        remaining=amount,
        expires_at=expires_at,
        created_at=clock.now(),
        source_ref=source_ref,
    )
    added = await uow.credits_w.add(credit)
    if added:
        await uow.commit()
        logger.info("Granted %d %s start credit(s) to user %d", amount, kind, user_id)
    else:
        logger.info("Grant %s for user %d already applied", source_ref, user_id)
    return added


def pack_expiry(now: datetime, duration_days: int | None = None) -> datetime:
    return now + timedelta(days=duration_days or settings.PACK_DEFAULT_DURATION_DAYS)


async def _load_allowance(
    user_id: int,
    uow: UnitOfWork,
    now: datetime,
) -> MessageAllowance:
    allowance = await uow.allowances.get(user_id)
    if allowance is None:
        allowance = MessageAllowance(
            user_id=user_id,
            cap=settings.FREE_MONTHLY_MESSAGE_CAP,
            used=0,
            is_unlimited=False,
            period_start=current_period_start(now),
            reset_at=next_period_start(now),
        )
        await uow.allowances_w.upsert(allowance)
        return allowance

    rolled = allowance.rolled_over(now)
    if rolled is not allowance:
        logger.debug("Message period rolled over for user %d", user_id)
        await uow.allowances_w.upsert(rolled)
    return rolled


async def available_message_allowance(
    user_id: int,
    uow: UnitOfWork,
    clock: Clock = _system_clock,
) -> MessageAllowanceStatus:
    allowance = await _load_allowance(user_id, uow, clock.now())
    return MessageAllowanceStatus(
        remaining=allowance.remaining,
        cap=allowance.cap,
        used=allowance.used,
        is_unlimited=allowance.is_unlimited,
        reset_at=allowance.reset_at,
    )


async def check_message_allowance(
    user_id: int,
    uow: UnitOfWork,
    clock: Clock = _system_clock,
) -> None:
    """Raise MonthlyCapExceededError if one more message would exceed the cap."""
    allowance = await _load_allowance(user_id, uow, clock.now())
    if allowance.would_exceed():
        raise MonthlyCapExceededError(
            f"Monthly message limit of {allowance.cap} reached"
        )


async def record_message_sent(
    user_id: int,
    uow: UnitOfWork,
    clock: Clock = _system_clock,
) -> bool:
    """Count one sent message. Returns False when the cap is already reached."""
    await _load_allowance(user_id, uow, clock.now())
    ok = await uow.allowances_w.try_increment(user_id)
    await uow.commit()
    if not ok:
        logger.warning("User %d sent a message past the monthly cap", user_id)
    return ok


async def set_message_plan(
    user_id: int,
    cap: int,
    is_unlimited: bool,
    uow: UnitOfWork,
    clock: Clock = _system_clock,
) -> MessageAllowance:
    """Apply a subscription's message plan, keeping this period's usage."""
    now = clock.now()
    current = await _load_allowance(user_id, uow, now)
    allowance = MessageAllowance(
        user_id=user_id,
        cap=cap,
        used=current.used,
        is_unlimited=is_unlimited,
        period_start=current.period_start,
        reset_at=current.reset_at,
    )
    await uow.allowances_w.upsert(allowance)
    await uow.commit()
    return allowance


async def quota_status(
    user_id: int,
    uow: UnitOfWork,
    clock: Clock = _system_clock,
) -> QuotaStatusDTO:
    return QuotaStatusDTO(
        start_credits=await available_start_credits(user_id, uow, clock),
        unlimited_starts=await has_unlimited_starts(user_id, uow, clock),
        messages=await available_message_allowance(user_id, uow, clock),
    )
