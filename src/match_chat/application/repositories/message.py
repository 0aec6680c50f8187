from __future__ import annotations

from typing import Protocol
from uuid import UUID

from match_chat.domain.entities.message import Message


class MessageReader(Protocol):
    async def list_messages(
        self,
        conversation_id: UUID,
        *,
        cursor: str | None = None,
        limit: int = 50,
        newest_first: bool = False,
    ) -> list[Message]:
        """Oldest first by default; ``newest_first`` pages backwards from the latest."""
        ...

    async def last_messages(
        self, conversation_ids: list[UUID]
    ) -> dict[UUID, Message]: ...

    async def count_unread(self, conversation_id: UUID, reader_id: int) -> int:
        """Messages in the conversation not sent by reader and not yet read."""
        ...

    async def unread_counts(
        self, conversation_ids: list[UUID], reader_id: int
    ) -> dict[UUID, int]: ...

    async def count_conversations_with_unread(self, reader_id: int) -> int: ...


class MessageWriter(Protocol):
    async def create_if_not_exists(self, message: Message) -> tuple[Message, bool]:
        """Insert message. Return (message, created). If conflict on client_msg_id → return existing."""
        ...

    async def get_by_client_msg_id(
        self,
        conversation_id: UUID,
        sender_id: int,
        client_msg_id: UUID,
    ) -> Message | None: ...

    async def mark_read(self, conversation_id: UUID, reader_id: int) -> int:
        """Batch-mark unread messages from the other party. Return rows updated."""
        ...
