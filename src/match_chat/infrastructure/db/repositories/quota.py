from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import exists, or_, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from match_chat.domain.entities.message_allowance import MessageAllowance
from match_chat.domain.entities.start_credit import StartCredit
from match_chat.domain.value_objects.enums import CreditKind
from match_chat.infrastructure.db.mappers import quota as mapper
from match_chat.infrastructure.db.models.message_allowance import MessageAllowanceModel
from match_chat.infrastructure.db.models.start_credit import StartCreditModel

logger = logging.getLogger(__name__)

# A locked candidate can be emptied by a concurrent consumer between our
# subselect and update; retry against the next entry a bounded number of times.
_CONSUME_ATTEMPTS = 3


def _not_expired(now: datetime):
    return or_(StartCreditModel.expires_at.is_(None), StartCreditModel.expires_at > now)


def _consumable(user_id: int, now: datetime):
    return (
        StartCreditModel.user_id == user_id,
        StartCreditModel.kind != CreditKind.MONTHLY_SUBSCRIPTION.value,
        StartCreditModel.remaining > 0,
        _not_expired(now),
    )


class CreditLedgerReaderRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def list_active(self, user_id: int, now: datetime) -> list[StartCredit]:
        stmt = (
            select(StartCreditModel)
            .where(StartCreditModel.user_id == user_id, _not_expired(now))
            .order_by(
                StartCreditModel.expires_at.asc().nullslast(),
                StartCreditModel.created_at.asc(),
            )
        )
        result = await self._session.execute(stmt)
        return [mapper.credit_to_entity(m) for m in result.scalars().all()]


class CreditLedgerWriterRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(self, credit: StartCredit) -> bool:
        stmt = (
            pg_insert(StartCreditModel)
            .values(
                id=credit.id,
                user_id=credit.user_id,
                kind=credit.kind.value,
                total=credit.total,
                remaining=credit.remaining,
                expires_at=credit.expires_at,
                source_ref=credit.source_ref,
                created_at=credit.created_at,
            )
            .on_conflict_do_nothing(constraint="uq_start_credit_source")
            .returning(StartCreditModel.id)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none() is not None

    async def try_consume(self, user_id: int, now: datetime) -> StartCredit | None:
        """Decrement-if-positive on the entry closest to expiring.

        The candidate row is locked (FOR UPDATE) so concurrent consumers for
        the same user serialise; ``remaining > 0`` in the UPDATE guards
        against a row emptied while we waited.
        """
        for _ in range(_CONSUME_ATTEMPTS):
            candidate = (
                select(StartCreditModel.id)
                .where(*_consumable(user_id, now))
                .order_by(
                    StartCreditModel.expires_at.asc().nullslast(),
                    StartCreditModel.created_at.asc(),
                )
                .limit(1)
                .with_for_update()
                .scalar_subquery()
            )
            stmt = (
                update(StartCreditModel)
                .where(StartCreditModel.id == candidate, StartCreditModel.remaining > 0)
                .values(remaining=StartCreditModel.remaining - 1)
                .returning(StartCreditModel)
                .execution_options(synchronize_session=False)
            )
            result = await self._session.execute(stmt)
            row = result.scalar_one_or_none()
            if row is not None:
                return mapper.credit_to_entity(row)

            any_left = await self._session.scalar(
                select(exists().where(*_consumable(user_id, now)))
            )
            if not any_left:
                return None
            logger.debug("Start credit candidate for user %d taken concurrently, retrying", user_id)
        return None


class AllowanceReaderRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, user_id: int) -> MessageAllowance | None:
        model = await self._session.get(MessageAllowanceModel, user_id, populate_existing=True)
        return mapper.allowance_to_entity(model) if model else None


class AllowanceWriterRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def upsert(self, allowance: MessageAllowance) -> None:
        values = {
            "user_id": allowance.user_id,
            "cap": allowance.cap,
            "used": allowance.used,
            "is_unlimited": allowance.is_unlimited,
            "period_start": allowance.period_start,
            "reset_at": allowance.reset_at,
        }
        stmt = (
            pg_insert(MessageAllowanceModel)
            .values(**values)
            .on_conflict_do_update(
                index_elements=[MessageAllowanceModel.user_id],
                set_={k: v for k, v in values.items() if k != "user_id"},
            )
        )
        await self._session.execute(stmt)

    async def try_increment(self, user_id: int) -> bool:
        stmt = (
            update(MessageAllowanceModel)
            .where(
                MessageAllowanceModel.user_id == user_id,
                or_(
                    MessageAllowanceModel.is_unlimited.is_(True),
                    MessageAllowanceModel.used + 1 <= MessageAllowanceModel.cap,
                ),
            )
            .values(used=MessageAllowanceModel.used + 1)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1
