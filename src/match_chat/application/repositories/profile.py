from __future__ import annotations

from typing import Protocol

from match_chat.domain.entities.profile import Profile


class ProfileReader(Protocol):
    async def get(self, user_id: int) -> Profile | None: ...

    async def get_many(self, user_ids: list[int]) -> dict[int, Profile]: ...
