from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True, slots=True)
class MessageAllowanceStatus:
    remaining: int
    cap: int
    used: int
    is_unlimited: bool
    reset_at: datetime


@dataclass(frozen=True, slots=True)
class QuotaStatusDTO:
    start_credits: int
    unlimited_starts: bool
    messages: MessageAllowanceStatus

    @property
    def can_start_conversation(self) -> bool:
        return self.unlimited_starts or self.start_credits > 0

    @property
    def can_send_message(self) -> bool:
        return self.messages.is_unlimited or self.messages.remaining > 0
