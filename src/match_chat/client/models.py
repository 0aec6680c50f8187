"""Local message representations held by the client caches.

A pending message exists only on this device and is identified by a
``temp-`` prefixed id. A confirmed message mirrors a stored server row.
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Union
from uuid import UUID

from match_chat.api.v1.schemas.message import MessageResponse
from match_chat.domain.value_objects.ids import TEMP_ID_PREFIX


def new_temp_id() -> str:
    return f"{TEMP_ID_PREFIX}{uuid.uuid4()}"


def is_temp_id(message_id: object) -> bool:
    return isinstance(message_id, str) and message_id.startswith(TEMP_ID_PREFIX)


@dataclass(frozen=True, slots=True)
class PendingMessage:
    temp_id: str
    conversation_id: UUID
    sender_id: int
    body: str
    client_msg_id: UUID
    created_at: datetime

    @property
    def id(self) -> str:
        return self.temp_id


@dataclass(frozen=True, slots=True)
class ConfirmedMessage:
    id: UUID
    conversation_id: UUID
    sender_id: int
    body: str
    client_msg_id: UUID
    created_at: datetime
    is_read: bool = False

    @classmethod
    def from_response(cls, resp: MessageResponse) -> ConfirmedMessage:
        return cls(
            id=resp.id,
            conversation_id=resp.conversation_id,
            sender_id=resp.sender_id,
            body=resp.body,
            client_msg_id=resp.client_msg_id,
            created_at=resp.created_at,
            is_read=resp.is_read,
        )

    def as_read(self) -> ConfirmedMessage:
        return replace(self, is_read=True)


LocalMessage = Union[PendingMessage, ConfirmedMessage]
