from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timezone


def next_period_start(now: datetime) -> datetime:
    """First instant (UTC) of the calendar month after ``now``."""
    now = now.astimezone(timezone.utc)
    if now.month == 12:
        return datetime(now.year + 1, 1, 1, tzinfo=timezone.utc)
    return datetime(now.year, now.month + 1, 1, tzinfo=timezone.utc)


def current_period_start(now: datetime) -> datetime:
    now = now.astimezone(timezone.utc)
    return datetime(now.year, now.month, 1, tzinfo=timezone.utc)


@dataclass(frozen=True, slots=True)
class MessageAllowance:
    user_id: int
    cap: int
    used: int
    is_unlimited: bool
    period_start: datetime
    reset_at: datetime

    @property
    def remaining(self) -> int:
        return max(0, self.cap - self.used)

    def would_exceed(self) -> bool:
        return not self.is_unlimited and self.used + 1 > self.cap

    def rolled_over(self, now: datetime) -> MessageAllowance:
        """Return the allowance as it stands at ``now``, resetting a finished period."""
        if now < self.reset_at:
            return self
        return replace(
            self,
            used=0,
            period_start=current_period_start(now),
            reset_at=next_period_start(now),
        )
