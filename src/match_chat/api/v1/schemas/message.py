from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from match_chat.domain.value_objects.enums import MessageType


class SendMessageRequest(BaseModel):
    client_msg_id: UUID
    type: MessageType = MessageType.TEXT
    body: str = Field(min_length=1, max_length=4000)


class MessageResponse(BaseModel):
    id: UUID
    conversation_id: UUID
    sender_id: int
    type: str
    body: str
    client_msg_id: UUID
    is_read: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class MarkReadResponse(BaseModel):
    updated: int


class UnreadCountResponse(BaseModel):
    conversations_with_unread: int
