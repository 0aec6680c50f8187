"""Seed development data: profiles, start credits and one conversation."""
from __future__ import annotations

import asyncio
import logging
import uuid

from match_chat.application.dto.principal import Principal
from match_chat.domain.value_objects.enums import CreditKind, UserRole
from match_chat.infrastructure.db.models.profile import ProfileModel
from match_chat.infrastructure.db.session import AsyncSessionLocal, create_schema
from match_chat.infrastructure.db.uow import SqlAlchemyUoW
from match_chat.services import conversation_service, message_service, quota_service

logger = logging.getLogger(__name__)

SEEKER_ID = 42
LISTER_ID = 7

_PROFILES = [
    (SEEKER_ID, UserRole.SEEKER, "Sam Seeker"),
    (LISTER_ID, UserRole.LISTER, "Lee Lister"),
    (8, UserRole.LISTER, "Quinn Owner"),
]


async def seed() -> None:
    await create_schema()

    async with AsyncSessionLocal() as session:
        for user_id, role, name in _PROFILES:
            await session.merge(ProfileModel(user_id=user_id, role=role.value, display_name=name))
        await session.commit()

        uow = SqlAlchemyUoW(session)
        await quota_service.grant_start_credits(
            SEEKER_ID, CreditKind.FREE_GRANT, 3, uow, source_ref=f"seed:{SEEKER_ID}",
        )

        seeker = Principal(user_id=SEEKER_ID)
        lister = Principal(user_id=LISTER_ID)
        result = await conversation_service.get_or_create_conversation(
            seeker, LISTER_ID, 1001, "Hi! Is the flat on Elm Street still available?", uow,
        )
        await message_service.send_message(
            result.conversation.id, lister, uuid.uuid4(), "Yes, viewings on Saturday.", uow,
        )
        logger.info(
            "Seeded conversation %s (created=%s)", result.conversation.id, result.created,
        )


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    asyncio.run(seed())


if __name__ == "__main__":
    main()
