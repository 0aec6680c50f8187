from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID


@dataclass(frozen=True, slots=True)
class Message:
    id: UUID
    conversation_id: UUID
    sender_id: int
    type: str
    body: str
    client_msg_id: UUID
    is_read: bool
    created_at: datetime
