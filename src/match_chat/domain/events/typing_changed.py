from __future__ import annotations

from dataclasses import dataclass
from typing import Any
from uuid import UUID


@dataclass(frozen=True, slots=True)
class TypingChanged:
    """Ephemeral presence signal; never stored in the outbox."""

    conversation_id: UUID
    user_id: int
    typing: bool
    expires_in: float

    event_type = "chat.typing"

    def to_payload(self) -> dict[str, Any]:
        return {
            "event_type": self.event_type,
            "conversation_id": str(self.conversation_id),
            "user_id": self.user_id,
            "typing": self.typing,
            "expires_in": self.expires_in,
        }
