"""Keyset pagination cursors.

A cursor is the url-safe base64 of ``<iso-timestamp>|<uuid>`` naming the last
row of a page. Conversations page by activity (newest first), messages by
creation time (oldest first, or newest first when paging back
from the latest message); all break ties on id.
"""
from __future__ import annotations

import base64
from datetime import datetime
from typing import Sequence
from uuid import UUID

from match_chat.domain.entities.conversation import Conversation
from match_chat.domain.entities.message import Message


def encode_cursor(ts: datetime, uid: UUID) -> str:
    raw = f"{ts.isoformat()}|{uid}".encode()
    return base64.urlsafe_b64encode(raw).decode().rstrip("=")


def decode_cursor(cursor: str) -> tuple[datetime, UUID]:
    padded = cursor + "=" * (-len(cursor) % 4)
    ts_str, uid_str = base64.urlsafe_b64decode(padded.encode()).decode().split("|", 1)
    return datetime.fromisoformat(ts_str), UUID(uid_str)


def conversation_cursor(conversation: Conversation) -> str:
    return encode_cursor(conversation.last_message_at or conversation.created_at, conversation.id)


def message_cursor(message: Message) -> str:
    return encode_cursor(message.created_at, message.id)


def next_conversation_cursor(page: Sequence[Conversation], limit: int) -> str | None:
    """Cursor for the following page, or None when this page is the last."""
    if len(page) < limit or not page:
        return None
    return conversation_cursor(page[-1])


def next_message_cursor(page: Sequence[Message], limit: int) -> str | None:
    if len(page) < limit or not page:
        return None
    return message_cursor(page[-1])
