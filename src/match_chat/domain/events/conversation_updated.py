from __future__ import annotations

from dataclasses import dataclass
from typing import Any
from uuid import UUID


@dataclass(frozen=True, slots=True)
class ConversationUpdated:
    conversation_id: UUID
    participant_ids: tuple[int, int]
    status: str | None = None
    action: str = ""  # "archived" | "reactivated"

    event_type = "chat.conversation_updated"

    def to_payload(self) -> dict[str, Any]:
        return {
            "conversation_id": str(self.conversation_id),
            "status": self.status,
            "action": self.action,
            "participant_ids": list(self.participant_ids),
        }
