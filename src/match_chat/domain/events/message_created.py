from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from match_chat.domain.entities.message import Message


@dataclass(frozen=True, slots=True)
class MessageCreated:
    message: Message
    participant_ids: tuple[int, int]

    event_type = "chat.message_created"

    def to_payload(self) -> dict[str, Any]:
        msg = self.message
        return {
            "message_id": str(msg.id),
            "conversation_id": str(msg.conversation_id),
            "sender_id": msg.sender_id,
            "type": msg.type,
            "body": msg.body,
            "client_msg_id": str(msg.client_msg_id),
            "created_at": msg.created_at.isoformat(),
            "participant_ids": list(self.participant_ids),
        }
