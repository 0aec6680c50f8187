from __future__ import annotations

from dataclasses import dataclass
from typing import Any
from uuid import UUID


@dataclass(frozen=True, slots=True)
class MessagesRead:
    conversation_id: UUID
    reader_id: int
    count: int
    participant_ids: tuple[int, int]

    event_type = "chat.messages_read"

    def to_payload(self) -> dict[str, Any]:
        return {
            "conversation_id": str(self.conversation_id),
            "reader_id": self.reader_id,
            "count": self.count,
            "participant_ids": list(self.participant_ids),
        }
