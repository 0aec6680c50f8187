from __future__ import annotations

from datetime import datetime
from typing import Protocol

from match_chat.domain.entities.message_allowance import MessageAllowance
from match_chat.domain.entities.start_credit import StartCredit


class CreditLedgerReader(Protocol):
    async def list_active(self, user_id: int, now: datetime) -> list[StartCredit]:
        """Non-expired entries of the user, including fully spent ones."""
        ...


class CreditLedgerWriter(Protocol):
    async def add(self, credit: StartCredit) -> bool:
        """Insert entry. Return False if its source_ref was already granted."""
        ...

    async def try_consume(self, user_id: int, now: datetime) -> StartCredit | None:
        """Atomically decrement the finite entry closest to expiry.

        Returns the entry after decrement, or None when nothing is left.
        """
        ...


class AllowanceReader(Protocol):
    async def get(self, user_id: int) -> MessageAllowance | None: ...


class AllowanceWriter(Protocol):
    async def upsert(self, allowance: MessageAllowance) -> None: ...

    async def try_increment(self, user_id: int) -> bool:
        """Atomically add one sent message unless that would exceed the cap."""
        ...
