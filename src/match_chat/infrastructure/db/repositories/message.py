from __future__ import annotations

from uuid import UUID

from sqlalchemy import func, or_, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from match_chat.domain.entities.message import Message
from match_chat.infrastructure.db.mappers import message as mapper
from match_chat.infrastructure.db.models.conversation import ConversationModel
from match_chat.infrastructure.db.models.message import MessageModel
from match_chat.infrastructure.db.repositories._cursor import decode_cursor


def _unread_from_others(reader_id: int):
    return (
        MessageModel.sender_id != reader_id,
        MessageModel.is_read.is_(False),
    )


class MessageReaderRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def list_messages(
        self,
        conversation_id: UUID,
        *,
        cursor: str | None = None,
        limit: int = 50,
        newest_first: bool = False,
    ) -> list[Message]:
        if newest_first:
            order = (MessageModel.created_at.desc(), MessageModel.id.desc())
        else:
            order = (MessageModel.created_at.asc(), MessageModel.id.asc())
        stmt = (
            select(MessageModel)
            .where(MessageModel.conversation_id == conversation_id)
            .order_by(*order)
            .limit(limit)
        )
        if cursor:
            ts, mid = decode_cursor(cursor)
            if newest_first:
                stmt = stmt.where(
                    (MessageModel.created_at < ts)
                    | ((MessageModel.created_at == ts) & (MessageModel.id < mid))
                )
            else:
                stmt = stmt.where(
                    (MessageModel.created_at > ts)
                    | ((MessageModel.created_at == ts) & (MessageModel.id > mid))
                )
        result = await self._session.execute(stmt)
        return [mapper.model_to_entity(m) for m in result.scalars().all()]

    async def last_messages(self, conversation_ids: list[UUID]) -> dict[UUID, Message]:
        if not conversation_ids:
            return {}
        stmt = (
            select(MessageModel)
            .where(MessageModel.conversation_id.in_(conversation_ids))
            .order_by(
                MessageModel.conversation_id,
                MessageModel.created_at.desc(),
                MessageModel.id.desc(),
            )
            .distinct(MessageModel.conversation_id)
        )
        result = await self._session.execute(stmt)
        return {m.conversation_id: mapper.model_to_entity(m) for m in result.scalars().all()}

    async def count_unread(self, conversation_id: UUID, reader_id: int) -> int:
        stmt = select(func.count(MessageModel.id)).where(
            MessageModel.conversation_id == conversation_id,
            *_unread_from_others(reader_id),
        )
        result = await self._session.execute(stmt)
        return result.scalar_one()

    async def unread_counts(
        self,
        conversation_ids: list[UUID],
        reader_id: int,
    ) -> dict[UUID, int]:
        if not conversation_ids:
            return {}
        stmt = (
            select(MessageModel.conversation_id, func.count(MessageModel.id))
            .where(
                MessageModel.conversation_id.in_(conversation_ids),
                *_unread_from_others(reader_id),
            )
            .group_by(MessageModel.conversation_id)
        )
        result = await self._session.execute(stmt)
        return {cid: count for cid, count in result.all()}

    async def count_conversations_with_unread(self, reader_id: int) -> int:
        stmt = (
            select(func.count(func.distinct(MessageModel.conversation_id)))
            .join(ConversationModel, ConversationModel.id == MessageModel.conversation_id)
            .where(
                or_(
                    ConversationModel.seeker_id == reader_id,
                    ConversationModel.lister_id == reader_id,
                ),
                *_unread_from_others(reader_id),
            )
        )
        result = await self._session.execute(stmt)
        return result.scalar_one()


class MessageWriterRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create_if_not_exists(self, message: Message) -> tuple[Message, bool]:
        """Insert message idempotently. Returns (message, created_flag)."""
        stmt = (
            pg_insert(MessageModel)
            .values(**mapper.entity_to_values(message))
            .on_conflict_do_nothing(constraint="uq_message_idempotency")
            .returning(MessageModel)
        )
        result = await self._session.execute(stmt)
        row = result.scalar_one_or_none()

        if row is not None:
            return mapper.model_to_entity(row), True

        # Conflict: fetch the existing row
        existing = await self.get_by_client_msg_id(
            message.conversation_id,
            message.sender_id,
            message.client_msg_id,
        )
        assert existing is not None
        return existing, False

    async def get_by_client_msg_id(
        self,
        conversation_id: UUID,
        sender_id: int,
        client_msg_id: UUID,
    ) -> Message | None:
        stmt = select(MessageModel).where(
            MessageModel.conversation_id == conversation_id,
            MessageModel.sender_id == sender_id,
            MessageModel.client_msg_id == client_msg_id,
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return mapper.model_to_entity(model) if model else None

    async def mark_read(self, conversation_id: UUID, reader_id: int) -> int:
        stmt = (
            update(MessageModel)
            .where(
                MessageModel.conversation_id == conversation_id,
                *_unread_from_others(reader_id),
            )
            .values(is_read=True)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return result.rowcount or 0
