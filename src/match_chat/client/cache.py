"""Client-side caches derived from the server store.

Both caches are disposable: the server is the source of truth and any entry
may be invalidated and refetched at any time. Pending messages are the only
state that exists nowhere else, so a refetch keeps them at the tail.
"""
from __future__ import annotations

import logging
from uuid import UUID

from match_chat.api.v1.schemas.conversation import ConversationSummaryResponse
from match_chat.client.models import ConfirmedMessage, LocalMessage, PendingMessage

logger = logging.getLogger(__name__)


class ConversationListCache:
    def __init__(self) -> None:
        self._items: list[ConversationSummaryResponse] = []
        self._stale = True

    @property
    def is_stale(self) -> bool:
        return self._stale

    def get(self) -> list[ConversationSummaryResponse]:
        return list(self._items)

    def find(self, conversation_id: UUID) -> ConversationSummaryResponse | None:
        return next((c for c in self._items if c.id == conversation_id), None)

    def set(self, items: list[ConversationSummaryResponse]) -> None:
        self._items = list(items)
        self._stale = False

    def invalidate(self) -> None:
        self._stale = True


class MessageListCache:
    """Ordered message lists per conversation, oldest first."""

    def __init__(self) -> None:
        self._lists: dict[UUID, list[LocalMessage]] = {}
        self._stale: set[UUID] = set()

    def loaded(self) -> set[UUID]:
        return set(self._lists)

    def get(self, conversation_id: UUID) -> list[LocalMessage]:
        return list(self._lists.get(conversation_id, []))

    def is_stale(self, conversation_id: UUID) -> bool:
        return conversation_id in self._stale or conversation_id not in self._lists

    def invalidate(self, conversation_id: UUID) -> None:
        self._stale.add(conversation_id)

    def drop(self, conversation_id: UUID) -> None:
        self._lists.pop(conversation_id, None)
        self._stale.discard(conversation_id)

    def set(self, conversation_id: UUID, confirmed: list[ConfirmedMessage]) -> None:
        """Merge a fresh server page into the list by message id.

        A page is only a window of the conversation, so confirmed entries it
        does not contain are kept. Fetched rows replace cached ones.
        """
        current = self._lists.get(conversation_id, [])
        by_id: dict[UUID, ConfirmedMessage] = {
            m.id: m for m in current if isinstance(m, ConfirmedMessage)
        }
        by_id.update((m.id, m) for m in confirmed)
        merged = sorted(by_id.values(), key=lambda m: (m.created_at, m.id))

        known = {m.client_msg_id for m in merged}
        pending = [
            m for m in current
            if isinstance(m, PendingMessage) and m.client_msg_id not in known
        ]
        self._lists[conversation_id] = [*merged, *pending]
        self._stale.discard(conversation_id)

    def append_pending(self, pending: PendingMessage) -> None:
        self._lists.setdefault(pending.conversation_id, []).append(pending)

    def remove_pending(self, pending: PendingMessage) -> bool:
        items = self._lists.get(pending.conversation_id, [])
        for idx, msg in enumerate(items):
            if isinstance(msg, PendingMessage) and msg.temp_id == pending.temp_id:
                del items[idx]
                return True
        return False

    def _find_pending(self, items: list[LocalMessage], confirmed: ConfirmedMessage) -> int | None:
        fallback = None
        for idx, msg in enumerate(items):
            if not isinstance(msg, PendingMessage):
                continue
            if msg.client_msg_id == confirmed.client_msg_id:
                return idx
            if fallback is None and msg.sender_id == confirmed.sender_id and msg.body == confirmed.body:
                fallback = idx
        return fallback

    def confirm(self, confirmed: ConfirmedMessage) -> None:
        """Swap the matching pending entry for ``confirmed`` at the same index.

        If ``confirmed`` is already in the list the pending entry is dropped
        instead; with no pending match the message is appended.
        """
        items = self._lists.setdefault(confirmed.conversation_id, [])
        idx = self._find_pending(items, confirmed)
        already = any(
            isinstance(m, ConfirmedMessage) and m.id == confirmed.id for m in items
        )
        if already:
            if idx is not None:
                del items[idx]
            return
        if idx is None:
            items.append(confirmed)
        else:
            items[idx] = confirmed

    def mark_read_local(self, conversation_id: UUID, reader_id: int) -> int:
        items = self._lists.get(conversation_id, [])
        changed = 0
        for idx, msg in enumerate(items):
            if isinstance(msg, ConfirmedMessage) and msg.sender_id != reader_id and not msg.is_read:
                items[idx] = msg.as_read()
                changed += 1
        return changed

    def unread_from_others(self, conversation_id: UUID, reader_id: int) -> list[ConfirmedMessage]:
        return [
            m for m in self._lists.get(conversation_id, [])
            if isinstance(m, ConfirmedMessage) and m.sender_id != reader_id and not m.is_read
        ]
