from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone

from match_chat.application.dto.principal import Principal
from match_chat.application.exceptions import ConflictError, ValidationError
from match_chat.application.policies.permissions import assert_conversation_access
from match_chat.application.uow import UnitOfWork
from match_chat.domain.entities.message import Message
from match_chat.domain.events.message_created import MessageCreated
from match_chat.domain.value_objects.enums import ConversationStatus, MessageType
from match_chat.services import quota_service

logger = logging.getLogger(__name__)

MAX_BODY_LENGTH = 4000


async def send_message(
    conversation_id: uuid.UUID,
    principal: Principal,
    client_msg_id: uuid.UUID,
    body: str,
    uow: UnitOfWork,
) -> tuple[Message, bool]:
    """Create a message idempotently.

    Returns (message, created). If a message with the same client_msg_id
    already exists the existing one is returned with created=False and no
    quota is charged. The monthly cap is checked before anything is written.
    """
    body = body.strip()
    if not body:
        raise ValidationError("Message body must not be empty")
    if len(body) > MAX_BODY_LENGTH:
        raise ValidationError(f"Message body exceeds {MAX_BODY_LENGTH} characters")

    conversation = await uow.conversations.get_by_id(conversation_id)
    conversation = assert_conversation_access(principal, conversation)
    if conversation.status == ConversationStatus.ARCHIVED:
        raise ConflictError("Conversation is archived")

    existing = await uow.messages_w.get_by_client_msg_id(
        conversation_id, principal.user_id, client_msg_id,
    )
    if existing is not None:
        return existing, False

    await quota_service.check_message_allowance(principal.user_id, uow)

    msg = Message(
        id=uuid.uuid4(),
        conversation_id=conversation_id,
        sender_id=principal.user_id,
        type=MessageType.TEXT,
        body=body,
        client_msg_id=client_msg_id,
        is_read=False,
        created_at=datetime.now(timezone.utc),
    )

    msg, created = await uow.messages_w.create_if_not_exists(msg)
    if not created:
        return msg, False

    await uow.conversations_w.touch_last_message_at(conversation_id, msg.created_at)
    event = MessageCreated(message=msg, participant_ids=conversation.participant_ids)
    await uow.outbox.add(event.event_type, event.to_payload())
    await uow.commit()

    # Delivery has priority over metering; a failed counter update is not rolled back.
    try:
        await quota_service.record_message_sent(principal.user_id, uow)
    except Exception:
        logger.exception(
            "Failed to meter message %s for user %d", msg.id, principal.user_id,
        )
        await uow.rollback()

    return msg, True


async def list_messages(
    conversation_id: uuid.UUID,
    principal: Principal,
    cursor: str | None,
    limit: int,
    uow: UnitOfWork,
    newest_first: bool = False,
) -> list[Message]:
    conversation = await uow.conversations.get_by_id(conversation_id)
    assert_conversation_access(principal, conversation)
    return await uow.messages.list_messages(
        conversation_id, cursor=cursor, limit=limit, newest_first=newest_first,
    )
