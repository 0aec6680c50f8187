from __future__ import annotations

import asyncio
import uuid
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from match_chat.application.exceptions import MonthlyCapExceededError
from match_chat.client.cache import ConversationListCache, MessageListCache
from match_chat.client.exceptions import SendFailedError
from match_chat.client.models import ConfirmedMessage, PendingMessage, is_temp_id
from match_chat.client.pipeline import MessageSendPipeline
from tests.conftest import LISTER_ID, SEEKER_ID, FakeChatApi, make_message_response


@pytest.fixture
def conversation_id():
    return uuid.uuid4()


@pytest.fixture
def api():
    return FakeChatApi()


@pytest.fixture
def caches(conversation_id):
    messages = MessageListCache()
    earlier = make_message_response(conversation_id=conversation_id, sender_id=LISTER_ID, body="hey")
    messages.set(conversation_id, [ConfirmedMessage.from_response(earlier)])
    conversations = ConversationListCache()
    conversations.set([])
    return messages, conversations


@pytest.fixture
def pipeline(api, caches):
    messages, conversations = caches
    return MessageSendPipeline(SEEKER_ID, api, messages, conversations)


@pytest.mark.asyncio
async def test_pending_entry_visible_while_request_in_flight(api, caches, pipeline, conversation_id):
    messages, _ = caches
    seen: list = []
    api.before_reply = lambda _resp: seen.extend(messages.get(conversation_id))

    await pipeline.send_message(conversation_id, "Hi")

    assert len(seen) == 2
    assert isinstance(seen[-1], PendingMessage)
    assert is_temp_id(seen[-1].id)
    assert seen[-1].body == "Hi"


@pytest.mark.asyncio
async def test_success_substitutes_in_place(caches, pipeline, conversation_id):
    messages, conversations = caches

    confirmed = await pipeline.send_message(conversation_id, "Hi")

    items = messages.get(conversation_id)
    assert len(items) == 2
    assert items[-1] == confirmed
    assert isinstance(items[-1], ConfirmedMessage)
    assert not any(isinstance(m, PendingMessage) for m in items)
    assert conversations.is_stale


@pytest.mark.asyncio
async def test_realtime_copy_arriving_first_is_not_duplicated(api, caches, pipeline, conversation_id):
    messages, _ = caches
    api.before_reply = lambda resp: messages.confirm(ConfirmedMessage.from_response(resp))

    confirmed = await pipeline.send_message(conversation_id, "Hi")

    items = messages.get(conversation_id)
    assert [m.id for m in items].count(confirmed.id) == 1
    assert len(items) == 2
    assert not any(isinstance(m, PendingMessage) for m in items)


@pytest.mark.asyncio
async def test_failure_restores_previous_list(api, caches, pipeline, conversation_id):
    messages, conversations = caches
    before = [m.id for m in messages.get(conversation_id)]
    api.send_error = httpx.ConnectError("offline")

    with pytest.raises(SendFailedError) as excinfo:
        await pipeline.send_message(conversation_id, "Hi there")

    assert excinfo.value.text == "Hi there"
    assert [m.id for m in messages.get(conversation_id)] == before
    assert not conversations.is_stale


@pytest.mark.asyncio
async def test_cap_rejection_carries_code_and_text(api, caches, pipeline, conversation_id):
    messages, _ = caches
    api.send_error = MonthlyCapExceededError("Monthly message limit of 5 reached")

    with pytest.raises(SendFailedError) as excinfo:
        await pipeline.send_message(conversation_id, "sixth")

    assert excinfo.value.code == "monthly_cap_exceeded"
    assert excinfo.value.text == "sixth"
    assert isinstance(excinfo.value.__cause__, MonthlyCapExceededError)
    assert len(messages.get(conversation_id)) == 1


@pytest.mark.asyncio
async def test_blank_text_never_reaches_server(api, pipeline, conversation_id):
    with pytest.raises(SendFailedError):
        await pipeline.send_message(conversation_id, "   ")

    assert api.sent == []


@pytest.mark.asyncio
async def test_cancelled_send_leaves_no_pending_entry(api, caches, pipeline, conversation_id):
    messages, _ = caches
    before = [m.id for m in messages.get(conversation_id)]
    api.reply_gate = asyncio.Event()

    task = asyncio.create_task(pipeline.send_message(conversation_id, "hello"))
    while not api.sent:
        await asyncio.sleep(0)
    assert any(isinstance(m, PendingMessage) for m in messages.get(conversation_id))

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert [m.id for m in messages.get(conversation_id)] == before


@pytest.mark.asyncio
async def test_unexpected_error_propagates_without_residue(api, caches, pipeline, conversation_id):
    messages, _ = caches
    before = [m.id for m in messages.get(conversation_id)]
    api.send_error = RuntimeError("malformed reply")

    with pytest.raises(RuntimeError):
        await pipeline.send_message(conversation_id, "hello")

    assert [m.id for m in messages.get(conversation_id)] == before


def test_refetch_keeps_unconfirmed_pending_at_tail(conversation_id):
    cache = MessageListCache()
    pending = PendingMessage(
        temp_id="temp-1",
        conversation_id=conversation_id,
        sender_id=SEEKER_ID,
        body="typing fast",
        client_msg_id=uuid.uuid4(),
        created_at=make_message_response(conversation_id=conversation_id).created_at,
    )
    cache.append_pending(pending)
    server = [
        ConfirmedMessage.from_response(make_message_response(conversation_id=conversation_id, body="a")),
    ]

    cache.set(conversation_id, server)

    items = cache.get(conversation_id)
    assert [m.body for m in items] == ["a", "typing fast"]
    assert not cache.is_stale(conversation_id)


def test_refetch_merges_window_without_dropping_entries(conversation_id):
    cache = MessageListCache()
    start = datetime.now(timezone.utc)
    older, newer = (
        ConfirmedMessage.from_response(
            make_message_response(
                conversation_id=conversation_id, body=body, created_at=start + timedelta(seconds=i),
            )
        )
        for i, body in enumerate(("older", "newer"))
    )
    cache.set(conversation_id, [older, newer])

    cache.set(conversation_id, [newer.as_read()])

    items = cache.get(conversation_id)
    assert [m.id for m in items] == [older.id, newer.id]
    assert items[1].is_read is True
