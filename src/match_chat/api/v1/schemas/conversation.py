from __future__ import annotations

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, Field

from match_chat.api.v1.schemas.message import MessageResponse
from match_chat.application.dto.conversation import (
    ConversationSummaryDTO,
    StartConversationResult,
)


class StartConversationRequest(BaseModel):
    other_user_id: int
    listing_id: int | None = None
    opening_message: str | None = Field(default=None, max_length=4000)
    client_msg_id: UUID | None = None


class ConversationResponse(BaseModel):
    id: UUID
    seeker_id: int
    lister_id: int
    listing_id: int | None
    status: str
    last_message_at: datetime | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class StartConversationResponse(BaseModel):
    conversation: ConversationResponse
    created: bool
    opening_message: MessageResponse | None = None

    @classmethod
    def from_result(cls, result: StartConversationResult) -> StartConversationResponse:
        return cls(
            conversation=ConversationResponse.model_validate(result.conversation, from_attributes=True),
            created=result.created,
            opening_message=(
                MessageResponse.model_validate(result.opening_message, from_attributes=True)
                if result.opening_message
                else None
            ),
        )


class ParticipantResponse(BaseModel):
    user_id: int
    role: str
    display_name: str
    avatar_url: str | None = None

    model_config = {"from_attributes": True}


class LastMessageResponse(BaseModel):
    body: str
    sender_id: int
    created_at: datetime

    model_config = {"from_attributes": True}


class ConversationSummaryResponse(ConversationResponse):
    other_user: ParticipantResponse | None = None
    last_message: LastMessageResponse | None = None
    unread_count: int = 0

    @classmethod
    def from_dto(cls, dto: ConversationSummaryDTO) -> ConversationSummaryResponse:
        conv = ConversationResponse.model_validate(dto.conversation, from_attributes=True)
        return cls(
            **conv.model_dump(),
            other_user=(
                ParticipantResponse.model_validate(dto.other_user, from_attributes=True)
                if dto.other_user
                else None
            ),
            last_message=(
                LastMessageResponse.model_validate(dto.last_message, from_attributes=True)
                if dto.last_message
                else None
            ),
            unread_count=dto.unread_count,
        )


class PatchConversationRequest(BaseModel):
    status: Literal["active", "archived"]
