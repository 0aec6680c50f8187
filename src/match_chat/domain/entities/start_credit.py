from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from match_chat.domain.value_objects.enums import CreditKind


@dataclass(frozen=True, slots=True)
class StartCredit:
    """One ledger entry of conversation-start credits."""

    id: UUID
    user_id: int
    kind: CreditKind
    total: int
    remaining: int
    expires_at: datetime | None
    created_at: datetime
    source_ref: str | None = None

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at <= now

    def available(self, now: datetime) -> int:
        """Remaining credits, zero once the entry has expired."""
        if self.is_expired(now):
            return 0
        return self.remaining
