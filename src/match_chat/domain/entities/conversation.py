from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID


@dataclass(frozen=True, slots=True)
class Conversation:
    id: UUID
    seeker_id: int
    lister_id: int
    listing_id: int | None
    status: str
    last_message_at: datetime | None
    created_at: datetime
    updated_at: datetime

    @property
    def participant_ids(self) -> tuple[int, int]:
        return self.seeker_id, self.lister_id

    def has_participant(self, user_id: int) -> bool:
        return user_id in (self.seeker_id, self.lister_id)

    def other_participant(self, user_id: int) -> int:
        return self.lister_id if user_id == self.seeker_id else self.seeker_id
