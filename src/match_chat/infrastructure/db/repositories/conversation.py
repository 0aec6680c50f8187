from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from match_chat.domain.entities.conversation import Conversation
from match_chat.infrastructure.db.mappers import conversation as mapper
from match_chat.infrastructure.db.models.conversation import ConversationModel
from match_chat.infrastructure.db.repositories._cursor import decode_cursor

_activity = func.coalesce(ConversationModel.last_message_at, ConversationModel.created_at)


class ConversationReaderRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_id(self, conversation_id: UUID) -> Conversation | None:
        result = await self._session.get(ConversationModel, conversation_id, populate_existing=True)
        return mapper.model_to_entity(result) if result else None

    async def get_between(self, user_a: int, user_b: int) -> Conversation | None:
        stmt = (
            select(ConversationModel)
            .where(
                or_(
                    and_(
                        ConversationModel.seeker_id == user_a,
                        ConversationModel.lister_id == user_b,
                    ),
                    and_(
                        ConversationModel.seeker_id == user_b,
                        ConversationModel.lister_id == user_a,
                    ),
                )
            )
            .limit(1)
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return mapper.model_to_entity(model) if model else None

    async def list_for_user(
        self,
        user_id: int,
        *,
        cursor: str | None = None,
        limit: int = 20,
    ) -> list[Conversation]:
        stmt = (
            select(ConversationModel)
            .where(
                or_(
                    ConversationModel.seeker_id == user_id,
                    ConversationModel.lister_id == user_id,
                )
            )
            .order_by(_activity.desc(), ConversationModel.id)
            .limit(limit)
        )
        if cursor:
            ts, cid = decode_cursor(cursor)
            stmt = stmt.where(
                (_activity < ts)
                | ((_activity == ts) & (ConversationModel.id > cid))
            )
        result = await self._session.execute(stmt)
        return [mapper.model_to_entity(m) for m in result.scalars().all()]


class ConversationWriterRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create_if_absent(self, conversation: Conversation) -> Conversation | None:
        """Insert relying on uq_conversation_pair. Returns None when the pair exists."""
        stmt = (
            pg_insert(ConversationModel)
            .values(**mapper.entity_to_values(conversation))
            .on_conflict_do_nothing(constraint="uq_conversation_pair")
            .returning(ConversationModel)
        )
        result = await self._session.execute(stmt)
        row = result.scalar_one_or_none()
        return mapper.model_to_entity(row) if row is not None else None

    async def set_status(self, conversation_id: UUID, status: str) -> None:
        stmt = (
            update(ConversationModel)
            .where(ConversationModel.id == conversation_id)
            .values(status=status)
        )
        await self._session.execute(stmt)

    async def touch_last_message_at(
        self,
        conversation_id: UUID,
        ts: datetime,
    ) -> None:
        stmt = (
            update(ConversationModel)
            .where(ConversationModel.id == conversation_id)
            .values(last_message_at=ts)
        )
        await self._session.execute(stmt)
