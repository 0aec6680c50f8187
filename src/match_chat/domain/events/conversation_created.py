from __future__ import annotations

from dataclasses import dataclass
from typing import Any
from uuid import UUID


@dataclass(frozen=True, slots=True)
class ConversationCreated:
    conversation_id: UUID
    seeker_id: int
    lister_id: int
    listing_id: int | None
    created_by: int

    event_type = "chat.conversation_created"

    def to_payload(self) -> dict[str, Any]:
        return {
            "conversation_id": str(self.conversation_id),
            "seeker_id": self.seeker_id,
            "lister_id": self.lister_id,
            "listing_id": self.listing_id,
            "created_by": self.created_by,
            "participant_ids": [self.seeker_id, self.lister_id],
        }
