from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from match_chat.domain.entities.profile import Profile
from match_chat.infrastructure.db.mappers import profile as mapper
from match_chat.infrastructure.db.models.profile import ProfileModel


class ProfileReaderRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, user_id: int) -> Profile | None:
        model = await self._session.get(ProfileModel, user_id)
        return mapper.model_to_entity(model) if model else None

    async def get_many(self, user_ids: list[int]) -> dict[int, Profile]:
        if not user_ids:
            return {}
        stmt = select(ProfileModel).where(ProfileModel.user_id.in_(set(user_ids)))
        result = await self._session.execute(stmt)
        return {m.user_id: mapper.model_to_entity(m) for m in result.scalars().all()}
