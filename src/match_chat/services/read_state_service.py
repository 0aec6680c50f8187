from __future__ import annotations

import logging
import uuid

from match_chat.application.dto.principal import Principal
from match_chat.application.policies.permissions import assert_conversation_access
from match_chat.application.uow import UnitOfWork
from match_chat.domain.events.messages_read import MessagesRead

logger = logging.getLogger(__name__)


async def mark_read(
    conversation_id: uuid.UUID,
    principal: Principal,
    uow: UnitOfWork,
) -> int:
    """Mark every unread message from the other party as read.

    Returns the number of messages updated. When nothing is unread no write
    is issued, so repeated calls on an open conversation are no-ops.
    """
    conversation = await uow.conversations.get_by_id(conversation_id)
    conversation = assert_conversation_access(principal, conversation)

    if await uow.messages.count_unread(conversation_id, principal.user_id) == 0:
        return 0

    updated = await uow.messages_w.mark_read(conversation_id, principal.user_id)
    if updated:
        event = MessagesRead(
            conversation_id=conversation_id,
            reader_id=principal.user_id,
            count=updated,
            participant_ids=conversation.participant_ids,
        )
        await uow.outbox.add(event.event_type, event.to_payload())
    await uow.commit()
    logger.debug(
        "User %d read %d message(s) in %s", principal.user_id, updated, conversation_id,
    )
    return updated


async def unread_conversations_count(principal: Principal, uow: UnitOfWork) -> int:
    return await uow.messages.count_conversations_with_unread(principal.user_id)
