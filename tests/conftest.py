"""Shared test fixtures."""
from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import Any, Callable
from uuid import UUID

import pytest

from match_chat.api.v1.schemas.conversation import (
    ConversationSummaryResponse,
    StartConversationResponse,
)
from match_chat.api.v1.schemas.message import MessageResponse
from match_chat.application.dto.principal import Principal
from match_chat.application.repositories.outbox import OutboxRecord
from match_chat.domain.entities.conversation import Conversation
from match_chat.domain.entities.message import Message
from match_chat.domain.entities.message_allowance import (
    MessageAllowance,
    current_period_start,
    next_period_start,
)
from match_chat.domain.entities.profile import Profile
from match_chat.domain.entities.start_credit import StartCredit
from match_chat.domain.value_objects.enums import (
    ConversationStatus,
    CreditKind,
    MessageType,
    UserRole,
)

SEEKER_ID = 42
LISTER_ID = 7


@pytest.fixture
def seeker_principal() -> Principal:
    return Principal(user_id=SEEKER_ID, roles=[])


@pytest.fixture
def lister_principal() -> Principal:
    return Principal(user_id=LISTER_ID, roles=[])


def make_profile(user_id: int, role: str = UserRole.SEEKER) -> Profile:
    return Profile(user_id=user_id, role=UserRole(role), display_name=f"user-{user_id}")


def make_conversation(
    *,
    conversation_id: UUID | None = None,
    seeker_id: int = SEEKER_ID,
    lister_id: int = LISTER_ID,
    listing_id: int | None = None,
    status: str = ConversationStatus.ACTIVE,
) -> Conversation:
    now = datetime.now(timezone.utc)
    return Conversation(
        id=conversation_id or uuid.uuid4(),
        seeker_id=seeker_id,
        lister_id=lister_id,
        listing_id=listing_id,
        status=status,
        last_message_at=None,
        created_at=now,
        updated_at=now,
    )


def make_message(
    *,
    conversation_id: UUID | None = None,
    sender_id: int = SEEKER_ID,
    body: str = "hello",
    is_read: bool = False,
    created_at: datetime | None = None,
) -> Message:
    return Message(
        id=uuid.uuid4(),
        conversation_id=conversation_id or uuid.uuid4(),
        sender_id=sender_id,
        type=MessageType.TEXT,
        body=body,
        client_msg_id=uuid.uuid4(),
        is_read=is_read,
        created_at=created_at or datetime.now(timezone.utc),
    )


def make_credit(
    user_id: int = SEEKER_ID,
    *,
    kind: CreditKind = CreditKind.FREE_GRANT,
    remaining: int = 1,
    total: int | None = None,
    expires_at: datetime | None = None,
    source_ref: str | None = None,
) -> StartCredit:
    return StartCredit(
        id=uuid.uuid4(),
        user_id=user_id,
        kind=kind,
        total=remaining if total is None else total,
        remaining=remaining,
        expires_at=expires_at,
        created_at=datetime.now(timezone.utc),
        source_ref=source_ref,
    )


def make_allowance(
    user_id: int = SEEKER_ID,
    *,
    cap: int = 5,
    used: int = 0,
    is_unlimited: bool = False,
    now: datetime | None = None,
) -> MessageAllowance:
    now = now or datetime.now(timezone.utc)
    return MessageAllowance(
        user_id=user_id,
        cap=cap,
        used=used,
        is_unlimited=is_unlimited,
        period_start=current_period_start(now),
        reset_at=next_period_start(now),
    )


class FixedClock:
    def __init__(self, now: datetime) -> None:
        self._now = now

    def now(self) -> datetime:
        return self._now

    def advance(self, **kwargs: float) -> None:
        self._now += timedelta(**kwargs)


@dataclass
class Journal:
    """Undo log standing in for a database transaction."""

    _undo: list[Callable[[], None]] = field(default_factory=list)

    def record(self, undo: Callable[[], None]) -> None:
        self._undo.append(undo)

    def commit(self) -> None:
        self._undo.clear()

    def rollback(self) -> None:
        while self._undo:
            self._undo.pop()()


@dataclass
class FakeConversationReader:
    _store: dict[UUID, Conversation] = field(default_factory=dict)

    async def get_by_id(self, conversation_id: UUID) -> Conversation | None:
        return self._store.get(conversation_id)

    async def get_between(self, user_a: int, user_b: int) -> Conversation | None:
        for c in self._store.values():
            if {c.seeker_id, c.lister_id} == {user_a, user_b}:
                return c
        return None

    async def list_for_user(self, user_id: int, *, cursor: str | None = None, limit: int = 20) -> list[Conversation]:
        mine = [c for c in self._store.values() if c.has_participant(user_id)]
        mine.sort(key=lambda c: c.last_message_at or c.created_at, reverse=True)
        return mine[:limit]


@dataclass
class FakeConversationWriter:
    _reader: FakeConversationReader
    _journal: Journal
    # Set to simulate a concurrent insert of the same pair committed by another request.
    race_winner: Conversation | None = None

    async def create_if_absent(self, conversation: Conversation) -> Conversation | None:
        if self.race_winner is not None:
            self._reader._store[self.race_winner.id] = self.race_winner
            self.race_winner = None
            return None
        for c in self._reader._store.values():
            if (c.seeker_id, c.lister_id) == (conversation.seeker_id, conversation.lister_id):
                return None
        self._reader._store[conversation.id] = conversation
        self._journal.record(lambda: self._reader._store.pop(conversation.id, None))
        return conversation

    async def set_status(self, conversation_id: UUID, status: str) -> None:
        conv = self._reader._store[conversation_id]
        self._reader._store[conversation_id] = replace(conv, status=status)

    async def touch_last_message_at(self, conversation_id: UUID, ts: datetime) -> None:
        conv = self._reader._store[conversation_id]
        self._reader._store[conversation_id] = replace(conv, last_message_at=ts)


@dataclass
class FakeMessageReader:
    _messages: list[Message] = field(default_factory=list)

    async def list_messages(
        self,
        conversation_id: UUID,
        *,
        cursor: str | None = None,
        limit: int = 50,
        newest_first: bool = False,
    ) -> list[Message]:
        mine = [m for m in self._messages if m.conversation_id == conversation_id]
        if newest_first:
            mine.reverse()
        return mine[:limit]

    async def last_messages(self, conversation_ids: list[UUID]) -> dict[UUID, Message]:
        last: dict[UUID, Message] = {}
        for m in self._messages:
            if m.conversation_id in conversation_ids:
                last[m.conversation_id] = m
        return last

    def _unread(self, conversation_id: UUID, reader_id: int) -> list[Message]:
        return [
            m for m in self._messages
            if m.conversation_id == conversation_id and m.sender_id != reader_id and not m.is_read
        ]

    async def count_unread(self, conversation_id: UUID, reader_id: int) -> int:
        return len(self._unread(conversation_id, reader_id))

    async def unread_counts(self, conversation_ids: list[UUID], reader_id: int) -> dict[UUID, int]:
        counts = {cid: len(self._unread(cid, reader_id)) for cid in conversation_ids}
        return {cid: n for cid, n in counts.items() if n}

    async def count_conversations_with_unread(self, reader_id: int) -> int:
        return len({
            m.conversation_id for m in self._messages
            if m.sender_id != reader_id and not m.is_read
        })


@dataclass
class FakeMessageWriter:
    _reader: FakeMessageReader
    _journal: Journal
    mark_read_calls: int = 0

    async def create_if_not_exists(self, message: Message) -> tuple[Message, bool]:
        for m in self._reader._messages:
            if (
                m.conversation_id == message.conversation_id
                and m.sender_id == message.sender_id
                and m.client_msg_id == message.client_msg_id
            ):
                return m, False
        self._reader._messages.append(message)
        self._journal.record(lambda: self._reader._messages.remove(message))
        return message, True

    async def get_by_client_msg_id(self, conversation_id: UUID, sender_id: int, client_msg_id: UUID) -> Message | None:
        for m in self._reader._messages:
            if (
                m.conversation_id == conversation_id
                and m.sender_id == sender_id
                and m.client_msg_id == client_msg_id
            ):
                return m
        return None

    async def mark_read(self, conversation_id: UUID, reader_id: int) -> int:
        self.mark_read_calls += 1
        updated = 0
        for idx, m in enumerate(self._reader._messages):
            if m.conversation_id == conversation_id and m.sender_id != reader_id and not m.is_read:
                self._reader._messages[idx] = replace(m, is_read=True)
                updated += 1
        return updated


@dataclass
class FakeProfileReader:
    _profiles: dict[int, Profile] = field(default_factory=dict)

    async def get(self, user_id: int) -> Profile | None:
        return self._profiles.get(user_id)

    async def get_many(self, user_ids: list[int]) -> dict[int, Profile]:
        return {uid: self._profiles[uid] for uid in user_ids if uid in self._profiles}


@dataclass
class FakeCreditReader:
    _entries: list[StartCredit] = field(default_factory=list)
    # Stands in for the FOR UPDATE row lock held by concurrent consumers.
    _row_lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    async def list_active(self, user_id: int, now: datetime) -> list[StartCredit]:
        return [e for e in self._entries if e.user_id == user_id and not e.is_expired(now)]


@dataclass
class FakeCreditWriter:
    _reader: FakeCreditReader
    _journal: Journal

    async def add(self, credit: StartCredit) -> bool:
        if credit.source_ref is not None and any(
            e.user_id == credit.user_id and e.source_ref == credit.source_ref
            for e in self._reader._entries
        ):
            return False
        self._reader._entries.append(credit)
        self._journal.record(lambda: self._reader._entries.remove(credit))
        return True

    async def try_consume(self, user_id: int, now: datetime) -> StartCredit | None:
        async with self._reader._row_lock:
            return await self._consume_locked(user_id, now)

    async def _consume_locked(self, user_id: int, now: datetime) -> StartCredit | None:
        candidates = [
            (idx, e) for idx, e in enumerate(self._reader._entries)
            if e.user_id == user_id
            and e.kind != CreditKind.MONTHLY_SUBSCRIPTION
            and e.remaining > 0
            and not e.is_expired(now)
        ]
        if not candidates:
            return None
        await asyncio.sleep(0)
        far = datetime.max.replace(tzinfo=timezone.utc)
        idx, entry = min(candidates, key=lambda c: (c[1].expires_at or far, c[1].created_at))
        updated = replace(entry, remaining=entry.remaining - 1)
        self._reader._entries[idx] = updated

        def _undo() -> None:
            self._reader._entries[self._reader._entries.index(updated)] = entry

        self._journal.record(_undo)
        return updated


@dataclass
class FakeAllowanceReader:
    _store: dict[int, MessageAllowance] = field(default_factory=dict)

    async def get(self, user_id: int) -> MessageAllowance | None:
        return self._store.get(user_id)


@dataclass
class FakeAllowanceWriter:
    _reader: FakeAllowanceReader
    _journal: Journal
    fail_increment: bool = False

    async def upsert(self, allowance: MessageAllowance) -> None:
        previous = self._reader._store.get(allowance.user_id)
        self._reader._store[allowance.user_id] = allowance

        def _undo() -> None:
            if previous is None:
                self._reader._store.pop(allowance.user_id, None)
            else:
                self._reader._store[allowance.user_id] = previous

        self._journal.record(_undo)

    async def try_increment(self, user_id: int) -> bool:
        if self.fail_increment:
            raise RuntimeError("allowance store unavailable")
        current = self._reader._store[user_id]
        if not current.is_unlimited and current.used + 1 > current.cap:
            return False
        self._reader._store[user_id] = replace(current, used=current.used + 1)
        return True


@dataclass
class FakeOutboxWriter:
    _journal: Journal
    _records: list[dict[str, Any]] = field(default_factory=list)
    _pending: list[OutboxRecord] = field(default_factory=list)
    sent: list[int] = field(default_factory=list)
    failed: list[tuple[int, datetime, str]] = field(default_factory=list)

    async def add(self, event_type: str, payload: dict[str, Any]) -> None:
        record = {"event_type": event_type, "payload": payload}
        self._records.append(record)
        self._journal.record(lambda: self._records.remove(record))

    async def fetch_pending(self, batch_size: int, max_attempts: int) -> list[OutboxRecord]:
        return [r for r in self._pending if r.attempts < max_attempts][:batch_size]

    async def mark_sent(self, ids: list[int]) -> None:
        self.sent.extend(ids)

    async def mark_failed(self, record_id: int, next_retry_at: datetime, error: str) -> None:
        self.failed.append((record_id, next_retry_at, error))


@dataclass
class FakeUoW:
    """In-memory UoW for unit tests. Rollback undoes writes since the last commit."""
    journal: Journal = field(default_factory=Journal)
    conversations: FakeConversationReader = field(default_factory=FakeConversationReader)
    messages: FakeMessageReader = field(default_factory=FakeMessageReader)
    profiles: FakeProfileReader = field(default_factory=FakeProfileReader)
    credits: FakeCreditReader = field(default_factory=FakeCreditReader)
    allowances: FakeAllowanceReader = field(default_factory=FakeAllowanceReader)
    conversations_w: FakeConversationWriter | None = None
    messages_w: FakeMessageWriter | None = None
    credits_w: FakeCreditWriter | None = None
    allowances_w: FakeAllowanceWriter | None = None
    outbox: FakeOutboxWriter | None = None
    commits: int = 0
    rollbacks: int = 0

    def __post_init__(self) -> None:
        self.conversations_w = FakeConversationWriter(self.conversations, self.journal)
        self.messages_w = FakeMessageWriter(self.messages, self.journal)
        self.credits_w = FakeCreditWriter(self.credits, self.journal)
        self.allowances_w = FakeAllowanceWriter(self.allowances, self.journal)
        self.outbox = FakeOutboxWriter(self.journal)

    @property
    def _committed(self) -> bool:
        return self.commits > 0

    def add_profiles(self, *profiles: Profile) -> None:
        for p in profiles:
            self.profiles._profiles[p.user_id] = p

    def add_conversation(self, conversation: Conversation) -> Conversation:
        self.conversations._store[conversation.id] = conversation
        return conversation

    def add_messages(self, *messages: Message) -> None:
        self.messages._messages.extend(messages)

    def add_credits(self, *credits: StartCredit) -> None:
        self.credits._entries.extend(credits)

    def set_allowance(self, allowance: MessageAllowance) -> None:
        self.allowances._store[allowance.user_id] = allowance

    async def flush(self) -> None:
        pass

    async def commit(self) -> None:
        self.journal.commit()
        self.commits += 1

    async def rollback(self) -> None:
        self.journal.rollback()
        self.rollbacks += 1


@pytest.fixture
def uow() -> FakeUoW:
    u = FakeUoW()
    u.add_profiles(
        make_profile(SEEKER_ID, UserRole.SEEKER),
        make_profile(LISTER_ID, UserRole.LISTER),
    )
    return u


class FakeChatApi:
    """Stands in for ChatApiClient in client-side tests."""

    def __init__(self) -> None:
        self.sent: list[tuple[UUID, UUID, str]] = []
        self.send_error: Exception | None = None
        self.before_reply: Callable[[MessageResponse], None] | None = None
        self.reply_gate: asyncio.Event | None = None
        self.mark_read_calls: list[UUID] = []
        self.mark_read_result = 0
        self.conversations: list[ConversationSummaryResponse] = []
        self.pages: dict[UUID, list[MessageResponse]] = {}
        self.started: list[tuple[int, int | None]] = []
        self.start_result: StartConversationResponse | None = None
        self.closed = False

    async def send_message(self, conversation_id: UUID, client_msg_id: UUID, body: str) -> MessageResponse:
        self.sent.append((conversation_id, client_msg_id, body))
        if self.reply_gate is not None:
            await self.reply_gate.wait()
        if self.send_error is not None:
            raise self.send_error
        resp = make_message_response(
            conversation_id=conversation_id, client_msg_id=client_msg_id, body=body,
        )
        if self.before_reply is not None:
            self.before_reply(resp)
        self.pages.setdefault(conversation_id, []).append(resp)
        return resp

    async def mark_read(self, conversation_id: UUID) -> int:
        self.mark_read_calls.append(conversation_id)
        return self.mark_read_result

    async def list_conversations(self, cursor: str | None = None, limit: int = 20) -> list[ConversationSummaryResponse]:
        return list(self.conversations)

    async def list_messages(
        self,
        conversation_id: UUID,
        cursor: str | None = None,
        limit: int = 50,
        *,
        newest_first: bool = False,
    ) -> list[MessageResponse]:
        """Serves ``pages`` (stored oldest first) one window at a time, like the server."""
        stored = list(self.pages.get(conversation_id, []))
        if newest_first:
            stored.reverse()
        return stored[:limit]

    async def start_conversation(
        self, other_user_id: int, listing_id: int | None = None, opening_message: str | None = None,
    ) -> StartConversationResponse:
        self.started.append((other_user_id, listing_id))
        assert self.start_result is not None
        return self.start_result

    async def close(self) -> None:
        self.closed = True


def make_message_response(
    *,
    conversation_id: UUID,
    sender_id: int = SEEKER_ID,
    body: str = "hello",
    client_msg_id: UUID | None = None,
    is_read: bool = False,
    created_at: datetime | None = None,
) -> MessageResponse:
    return MessageResponse(
        id=uuid.uuid4(),
        conversation_id=conversation_id,
        sender_id=sender_id,
        type=MessageType.TEXT,
        body=body,
        client_msg_id=client_msg_id or uuid.uuid4(),
        is_read=is_read,
        created_at=created_at or datetime.now(timezone.utc),
    )


class RecordingEventPublisher:
    def __init__(self) -> None:
        self.published: list[tuple[str, dict[str, Any]]] = []

    async def publish(self, channel: str, payload: dict[str, Any]) -> None:
        self.published.append((channel, payload))
