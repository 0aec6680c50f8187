from __future__ import annotations

from datetime import datetime
from typing import Protocol
from uuid import UUID

from match_chat.domain.entities.conversation import Conversation


class ConversationReader(Protocol):
    async def get_by_id(self, conversation_id: UUID) -> Conversation | None: ...

    async def get_between(self, user_a: int, user_b: int) -> Conversation | None:
        """Find the conversation of an unordered participant pair, whatever the listing."""
        ...

    async def list_for_user(
        self, user_id: int, *, cursor: str | None = None, limit: int = 20
    ) -> list[Conversation]: ...


class ConversationWriter(Protocol):
    async def create_if_absent(self, conversation: Conversation) -> Conversation | None:
        """Insert conversation. Return None if the canonical pair already has one."""
        ...

    async def set_status(self, conversation_id: UUID, status: str) -> None: ...

    async def touch_last_message_at(
        self, conversation_id: UUID, ts: datetime
    ) -> None: ...
