from __future__ import annotations

from dataclasses import dataclass

from match_chat.domain.value_objects.enums import UserRole


@dataclass(frozen=True, slots=True)
class Profile:
    user_id: int
    role: UserRole
    display_name: str
    avatar_url: str | None = None
