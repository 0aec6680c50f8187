from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone

from match_chat.application.dto.conversation import (
    ConversationSummaryDTO,
    LastMessagePreview,
    StartConversationResult,
)
from match_chat.application.dto.principal import Principal
from match_chat.application.exceptions import (
    AppError,
    NotFoundError,
    QuotaExceededError,
    ValidationError,
)
from match_chat.application.policies.permissions import assert_conversation_access
from match_chat.application.uow import UnitOfWork
from match_chat.domain.entities.conversation import Conversation
from match_chat.domain.entities.message import Message
from match_chat.domain.entities.profile import Profile
from match_chat.domain.events.conversation_created import ConversationCreated
from match_chat.domain.events.conversation_updated import ConversationUpdated
from match_chat.domain.value_objects.enums import (
    ConsumeResult,
    ConversationStatus,
    UserRole,
)
from match_chat.services import message_service, quota_service

logger = logging.getLogger(__name__)


def canonical_pair(a: Profile, b: Profile) -> tuple[int, int]:
    """Return (seeker_id, lister_id) for two profiles.

    Profiles sharing a role are ordered by user id so that both call orders
    map onto the same pair.
    """
    if a.role == UserRole.SEEKER and b.role == UserRole.LISTER:
        return a.user_id, b.user_id
    if a.role == UserRole.LISTER and b.role == UserRole.SEEKER:
        return b.user_id, a.user_id
    low, high = sorted((a.user_id, b.user_id))
    return low, high


async def get_or_create_conversation(
    principal: Principal,
    other_user_id: int,
    listing_id: int | None,
    opening_text: str | None,
    uow: UnitOfWork,
    *,
    opening_client_msg_id: uuid.UUID | None = None,
) -> StartConversationResult:
    """Return the single conversation between the caller and other_user_id.

    Creates it (spending one start credit) only when the pair has none yet.
    The listing only annotates a newly created conversation; an existing
    thread is reused whatever listing the request came from. A retried
    request carrying the same ``opening_client_msg_id`` posts the opening
    text once.
    """
    user_id = principal.user_id
    if other_user_id == user_id:
        raise ValidationError("Cannot start a conversation with yourself")

    conversation = await uow.conversations.get_between(user_id, other_user_id)
    created = False
    if conversation is None:
        conversation, created = await _create_conversation(
            user_id, other_user_id, listing_id, uow,
        )

    opening_message = None
    if opening_text:
        opening_message = await _send_opening_message(
            conversation, principal, opening_text, opening_client_msg_id or uuid.uuid4(), uow,
        )

    return StartConversationResult(
        conversation=conversation,
        created=created,
        opening_message=opening_message,
    )


async def _create_conversation(
    user_id: int,
    other_user_id: int,
    listing_id: int | None,
    uow: UnitOfWork,
) -> tuple[Conversation, bool]:
    profiles = await uow.profiles.get_many([user_id, other_user_id])
    for uid in (user_id, other_user_id):
        if uid not in profiles:
            raise NotFoundError(f"Profile {uid} not found")

    seeker_id, lister_id = canonical_pair(profiles[user_id], profiles[other_user_id])

    consumed = await quota_service.consume_start_credit(user_id, uow)
    if consumed == ConsumeResult.DEPLETED:
        await uow.rollback()
        raise QuotaExceededError("No conversation-start credits left")

    now = datetime.now(timezone.utc)
    conversation = Conversation(
        id=uuid.uuid4(),
        seeker_id=seeker_id,
        lister_id=lister_id,
        listing_id=listing_id,
        status=ConversationStatus.ACTIVE,
        last_message_at=None,
        created_at=now,
        updated_at=now,
    )
    inserted = await uow.conversations_w.create_if_absent(conversation)
    if inserted is None:
        # Lost a creation race for the same pair; undo the credit and use the winner.
        await uow.rollback()
        winner = await uow.conversations.get_between(user_id, other_user_id)
        if winner is None:
            raise AppError("Conversation insert conflicted but no row was found")
        logger.info(
            "Conversation for pair (%d, %d) created concurrently, reusing %s",
            seeker_id, lister_id, winner.id,
        )
        return winner, False

    event = ConversationCreated(
        conversation_id=inserted.id,
        seeker_id=seeker_id,
        lister_id=lister_id,
        listing_id=listing_id,
        created_by=user_id,
    )
    await uow.outbox.add(event.event_type, event.to_payload())
    await uow.commit()
    logger.info(
        "Created conversation %s between seeker %d and lister %d (%s)",
        inserted.id, seeker_id, lister_id, consumed,
    )
    return inserted, True


async def _send_opening_message(
    conversation: Conversation,
    principal: Principal,
    text: str,
    client_msg_id: uuid.UUID,
    uow: UnitOfWork,
) -> Message | None:
    try:
        msg, _created = await message_service.send_message(
            conversation.id, principal, client_msg_id, text, uow,
        )
    except AppError as exc:
        # The conversation stays valid with zero messages.
        await uow.rollback()
        logger.warning(
            "Opening message for conversation %s not sent: %s",
            conversation.id, exc.detail,
        )
        return None
    return msg


async def list_user_conversations(
    principal: Principal,
    cursor: str | None,
    limit: int,
    uow: UnitOfWork,
) -> list[ConversationSummaryDTO]:
    user_id = principal.user_id
    conversations = await uow.conversations.list_for_user(
        user_id, cursor=cursor, limit=limit,
    )
    if not conversations:
        return []

    ids = [c.id for c in conversations]
    profiles = await uow.profiles.get_many(
        [c.other_participant(user_id) for c in conversations]
    )
    last_messages = await uow.messages.last_messages(ids)
    unread = await uow.messages.unread_counts(ids, user_id)

    summaries = []
    for conv in conversations:
        last = last_messages.get(conv.id)
        summaries.append(
            ConversationSummaryDTO(
                conversation=conv,
                other_user=profiles.get(conv.other_participant(user_id)),
                last_message=(
                    LastMessagePreview(
                        body=last.body,
                        sender_id=last.sender_id,
                        created_at=last.created_at,
                    )
                    if last
                    else None
                ),
                unread_count=unread.get(conv.id, 0),
            )
        )
    return summaries


async def get_conversation(
    conversation_id: uuid.UUID,
    principal: Principal,
    uow: UnitOfWork,
) -> Conversation:
    conversation = await uow.conversations.get_by_id(conversation_id)
    return assert_conversation_access(principal, conversation)


async def set_conversation_status(
    conversation_id: uuid.UUID,
    status: ConversationStatus,
    principal: Principal,
    uow: UnitOfWork,
) -> Conversation:
    """Archive or reactivate a conversation. Conversations are never deleted."""
    conversation = await get_conversation(conversation_id, principal, uow)
    if conversation.status == status:
        return conversation

    await uow.conversations_w.set_status(conversation_id, status)
    event = ConversationUpdated(
        conversation_id=conversation_id,
        participant_ids=conversation.participant_ids,
        status=status,
        action="archived" if status == ConversationStatus.ARCHIVED else "reactivated",
    )
    await uow.outbox.add(event.event_type, event.to_payload())
    await uow.commit()

    updated = await uow.conversations.get_by_id(conversation_id)
    if updated is None:
        raise NotFoundError(f"Conversation {conversation_id} not found")
    return updated
