from __future__ import annotations

import uuid

import pytest

from match_chat.application.dto.principal import Principal
from match_chat.application.exceptions import (
    ForbiddenError,
    NotFoundError,
    QuotaExceededError,
    ValidationError,
)
from match_chat.domain.value_objects.enums import ConversationStatus, UserRole
from match_chat.services import conversation_service, quota_service
from tests.conftest import (
    LISTER_ID,
    SEEKER_ID,
    FakeUoW,
    make_allowance,
    make_conversation,
    make_credit,
    make_message,
    make_profile,
)


@pytest.mark.asyncio
async def test_first_contact_spends_credit_and_sends_opening_message(uow, seeker_principal):
    uow.add_credits(make_credit(SEEKER_ID, remaining=1))

    first = await conversation_service.get_or_create_conversation(
        seeker_principal, LISTER_ID, 7, "Hi", uow,
    )

    assert first.created is True
    assert first.conversation.listing_id == 7
    assert await quota_service.available_start_credits(SEEKER_ID, uow) == 0
    bodies = [m.body for m in await uow.messages.list_messages(first.conversation.id)]
    assert bodies == ["Hi"]
    assert first.opening_message is not None

    second = await conversation_service.get_or_create_conversation(
        seeker_principal, LISTER_ID, 9, None, uow,
    )

    assert second.created is False
    assert second.conversation.id == first.conversation.id
    assert await quota_service.available_start_credits(SEEKER_ID, uow) == 0
    assert len(uow.conversations._store) == 1


@pytest.mark.asyncio
async def test_no_credits_rejects_and_creates_nothing(uow):
    c, d = 100, 200
    uow.add_profiles(make_profile(c, UserRole.SEEKER), make_profile(d, UserRole.LISTER))

    with pytest.raises(QuotaExceededError):
        await conversation_service.get_or_create_conversation(
            Principal(user_id=c), d, 3, "hello", uow,
        )

    assert uow.conversations._store == {}
    assert uow.messages._messages == []
    assert uow.outbox._records == []


@pytest.mark.asyncio
async def test_either_side_resolves_same_conversation(uow, lister_principal):
    existing = uow.add_conversation(make_conversation())

    result = await conversation_service.get_or_create_conversation(
        lister_principal, SEEKER_ID, None, None, uow,
    )

    assert result.created is False
    assert result.conversation.id == existing.id


@pytest.mark.asyncio
async def test_lister_starting_keeps_role_order(uow, lister_principal):
    uow.add_credits(make_credit(LISTER_ID, remaining=1))

    result = await conversation_service.get_or_create_conversation(
        lister_principal, SEEKER_ID, None, None, uow,
    )

    assert result.conversation.seeker_id == SEEKER_ID
    assert result.conversation.lister_id == LISTER_ID


@pytest.mark.asyncio
async def test_lost_race_returns_winner_and_refunds_credit(uow, seeker_principal):
    uow.add_credits(make_credit(SEEKER_ID, remaining=1))
    winner = make_conversation()
    uow.conversations_w.race_winner = winner

    result = await conversation_service.get_or_create_conversation(
        seeker_principal, LISTER_ID, None, None, uow,
    )

    assert result.created is False
    assert result.conversation.id == winner.id
    assert await quota_service.available_start_credits(SEEKER_ID, uow) == 1
    assert uow.outbox._records == []


@pytest.mark.asyncio
async def test_creation_emits_outbox_event(uow, seeker_principal):
    uow.add_credits(make_credit(SEEKER_ID, remaining=1))

    result = await conversation_service.get_or_create_conversation(
        seeker_principal, LISTER_ID, None, None, uow,
    )

    assert uow.outbox._records == [
        {
            "event_type": "chat.conversation_created",
            "payload": {
                "conversation_id": str(result.conversation.id),
                "seeker_id": SEEKER_ID,
                "lister_id": LISTER_ID,
                "listing_id": None,
                "created_by": SEEKER_ID,
                "participant_ids": [SEEKER_ID, LISTER_ID],
            },
        }
    ]


@pytest.mark.asyncio
async def test_self_conversation_rejected(uow, seeker_principal):
    with pytest.raises(ValidationError):
        await conversation_service.get_or_create_conversation(
            seeker_principal, SEEKER_ID, None, None, uow,
        )


@pytest.mark.asyncio
async def test_unknown_profile_keeps_credit(uow, seeker_principal):
    uow.add_credits(make_credit(SEEKER_ID, remaining=1))

    with pytest.raises(NotFoundError):
        await conversation_service.get_or_create_conversation(
            seeker_principal, 999, None, None, uow,
        )

    assert await quota_service.available_start_credits(SEEKER_ID, uow) == 1


@pytest.mark.asyncio
async def test_failed_opening_message_keeps_conversation(uow, seeker_principal):
    uow.add_credits(make_credit(SEEKER_ID, remaining=1))
    uow.set_allowance(make_allowance(SEEKER_ID, cap=0))

    result = await conversation_service.get_or_create_conversation(
        seeker_principal, LISTER_ID, None, "Hi", uow,
    )

    assert result.created is True
    assert result.opening_message is None
    assert result.conversation.id in uow.conversations._store
    assert uow.messages._messages == []
    assert await quota_service.available_start_credits(SEEKER_ID, uow) == 0


def test_canonical_pair_same_role_orders_by_id():
    a = make_profile(9, UserRole.LISTER)
    b = make_profile(3, UserRole.LISTER)

    assert conversation_service.canonical_pair(a, b) == (3, 9)
    assert conversation_service.canonical_pair(b, a) == (3, 9)


@pytest.mark.asyncio
async def test_list_summaries_include_unread_and_other_user(uow, seeker_principal):
    conv = uow.add_conversation(make_conversation())
    uow.add_messages(
        make_message(conversation_id=conv.id, sender_id=SEEKER_ID, body="hi"),
        make_message(conversation_id=conv.id, sender_id=LISTER_ID, body="hello back"),
    )

    summaries = await conversation_service.list_user_conversations(
        seeker_principal, None, 20, uow,
    )

    assert len(summaries) == 1
    summary = summaries[0]
    assert summary.other_user.user_id == LISTER_ID
    assert summary.last_message.body == "hello back"
    assert summary.unread_count == 1


@pytest.mark.asyncio
async def test_archive_and_reactivate(uow, seeker_principal):
    conv = uow.add_conversation(make_conversation())

    archived = await conversation_service.set_conversation_status(
        conv.id, ConversationStatus.ARCHIVED, seeker_principal, uow,
    )
    assert archived.status == ConversationStatus.ARCHIVED
    assert uow.outbox._records[-1]["payload"]["action"] == "archived"

    active = await conversation_service.set_conversation_status(
        conv.id, ConversationStatus.ACTIVE, seeker_principal, uow,
    )
    assert active.status == ConversationStatus.ACTIVE
    assert len(uow.outbox._records) == 2


@pytest.mark.asyncio
async def test_get_conversation_forbidden_for_outsider():
    uow = FakeUoW()
    conv = uow.add_conversation(make_conversation())

    with pytest.raises(ForbiddenError):
        await conversation_service.get_conversation(conv.id, Principal(user_id=555), uow)


@pytest.mark.asyncio
async def test_retried_start_posts_opening_text_once(uow, seeker_principal):
    uow.add_credits(make_credit(SEEKER_ID, remaining=1))
    client_msg_id = uuid.uuid4()

    first = await conversation_service.get_or_create_conversation(
        seeker_principal, LISTER_ID, 7, "Hi", uow, opening_client_msg_id=client_msg_id,
    )
    retry = await conversation_service.get_or_create_conversation(
        seeker_principal, LISTER_ID, 7, "Hi", uow, opening_client_msg_id=client_msg_id,
    )

    assert retry.created is False
    assert retry.opening_message.id == first.opening_message.id
    bodies = [m.body for m in await uow.messages.list_messages(first.conversation.id)]
    assert bodies == ["Hi"]


@pytest.mark.asyncio
async def test_status_change_on_vanished_row_raises_not_found(uow, seeker_principal):
    conv = uow.add_conversation(make_conversation())
    original_get = uow.conversations.get_by_id
    calls = 0

    async def _get_then_vanish(conversation_id):
        nonlocal calls
        calls += 1
        return await original_get(conversation_id) if calls == 1 else None

    uow.conversations.get_by_id = _get_then_vanish

    with pytest.raises(NotFoundError):
        await conversation_service.set_conversation_status(
            conv.id, ConversationStatus.ARCHIVED, seeker_principal, uow,
        )
