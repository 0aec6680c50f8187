from __future__ import annotations

from match_chat.domain.entities.profile import Profile
from match_chat.domain.value_objects.enums import UserRole
from match_chat.infrastructure.db.models.profile import ProfileModel


def model_to_entity(model: ProfileModel) -> Profile:
    return Profile(
        user_id=model.user_id,
        role=UserRole(model.role),
        display_name=model.display_name,
        avatar_url=model.avatar_url,
    )
