from __future__ import annotations

import asyncio
import uuid

import pytest

from match_chat.client.presence import TypingChannel
from tests.conftest import LISTER_ID, SEEKER_ID, RecordingEventPublisher

EXPIRY = 0.1


def _signal(conversation_id, user_id: int, typing: bool = True, expires_in: float = EXPIRY) -> dict:
    return {
        "conversation_id": str(conversation_id),
        "user_id": user_id,
        "typing": typing,
        "expires_in": expires_in,
    }


@pytest.fixture
def publisher():
    return RecordingEventPublisher()


@pytest.fixture
def channel(publisher):
    return TypingChannel(SEEKER_ID, publisher=publisher, expiry=EXPIRY)


@pytest.mark.asyncio
async def test_start_typing_broadcasts_on_conversation_channel(channel, publisher):
    cid = uuid.uuid4()

    await channel.start_typing(cid)
    await channel.stop_typing(cid)

    [(channel_name, start), (_, stop)] = publisher.published
    assert channel_name == f"chat.typing.{cid}"
    assert start["user_id"] == SEEKER_ID
    assert start["typing"] is True
    assert stop["typing"] is False


@pytest.mark.asyncio
async def test_remote_typing_expires_without_stop(channel):
    cid = uuid.uuid4()

    await channel.handle_event("chat.typing", _signal(cid, LISTER_ID))
    assert channel.typing_users(cid) == {LISTER_ID}

    await asyncio.sleep(EXPIRY * 3)
    assert channel.typing_users(cid) == set()


@pytest.mark.asyncio
async def test_sender_cannot_extend_expiry_past_local_window(channel):
    cid = uuid.uuid4()

    await channel.handle_event("chat.typing", _signal(cid, LISTER_ID, expires_in=86400))
    await asyncio.sleep(EXPIRY * 3)

    assert channel.typing_users(cid) == set()


@pytest.mark.asyncio
async def test_non_numeric_expiry_is_dropped(channel):
    cid = uuid.uuid4()
    signal = {**_signal(cid, LISTER_ID), "expires_in": "forever"}

    await channel.handle_event("chat.typing", signal)

    assert channel.typing_users(cid) == set()


@pytest.mark.asyncio
async def test_renewed_signal_extends_expiry(channel):
    cid = uuid.uuid4()

    await channel.handle_event("chat.typing", _signal(cid, LISTER_ID))
    await asyncio.sleep(EXPIRY * 0.6)
    await channel.handle_event("chat.typing", _signal(cid, LISTER_ID))
    await asyncio.sleep(EXPIRY * 0.6)

    assert channel.typing_users(cid) == {LISTER_ID}


@pytest.mark.asyncio
async def test_stop_signal_clears_immediately(channel):
    cid = uuid.uuid4()

    await channel.handle_event("chat.typing", _signal(cid, LISTER_ID))
    await channel.handle_event("chat.typing", _signal(cid, LISTER_ID, typing=False))

    assert channel.typing_users(cid) == set()


@pytest.mark.asyncio
async def test_own_signal_ignored(channel):
    cid = uuid.uuid4()

    await channel.handle_event("chat.typing", _signal(cid, SEEKER_ID))

    assert channel.typing_users(cid) == set()


@pytest.mark.asyncio
async def test_listener_notified_on_change(publisher):
    changes: list[set[int]] = []
    channel = TypingChannel(
        SEEKER_ID, publisher=publisher, expiry=EXPIRY,
        on_change=lambda _cid, users: changes.append(users),
    )
    cid = uuid.uuid4()

    await channel.handle_event("chat.typing", _signal(cid, LISTER_ID))
    await channel.handle_event("chat.typing", _signal(cid, LISTER_ID))
    channel.clear_user(cid, LISTER_ID)

    assert changes == [{LISTER_ID}, set()]


@pytest.mark.asyncio
async def test_close_cancels_timers_and_new_channel_starts_empty(channel, publisher):
    cid = uuid.uuid4()
    await channel.handle_event("chat.typing", _signal(cid, LISTER_ID))

    await channel.close()

    assert channel.typing_users(cid) == set()
    fresh = TypingChannel(SEEKER_ID, publisher=publisher, expiry=EXPIRY)
    assert fresh.typing_users(cid) == set()


def test_requires_redis_or_publisher():
    with pytest.raises(ValueError):
        TypingChannel(SEEKER_ID)
