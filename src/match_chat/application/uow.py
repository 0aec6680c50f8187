from __future__ import annotations

from typing import Protocol

from match_chat.application.repositories.conversation import (
    ConversationReader,
    ConversationWriter,
)
from match_chat.application.repositories.message import MessageReader, MessageWriter
from match_chat.application.repositories.outbox import OutboxWriter
from match_chat.application.repositories.profile import ProfileReader
from match_chat.application.repositories.quota import (
    AllowanceReader,
    AllowanceWriter,
    CreditLedgerReader,
    CreditLedgerWriter,
)


class UnitOfWork(Protocol):
    conversations: ConversationReader
    conversations_w: ConversationWriter
    messages: MessageReader
    messages_w: MessageWriter
    profiles: ProfileReader
    credits: CreditLedgerReader
    credits_w: CreditLedgerWriter
    allowances: AllowanceReader
    allowances_w: AllowanceWriter
    outbox: OutboxWriter

    async def commit(self) -> None: ...
    async def rollback(self) -> None: ...
    async def flush(self) -> None: ...
