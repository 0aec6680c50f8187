from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel

from match_chat.application.dto.quota import QuotaStatusDTO


class MessageAllowanceResponse(BaseModel):
    remaining: int
    cap: int
    used: int
    is_unlimited: bool
    reset_at: datetime

    model_config = {"from_attributes": True}


class QuotaStatusResponse(BaseModel):
    start_credits: int
    unlimited_starts: bool
    can_start_conversation: bool
    can_send_message: bool
    messages: MessageAllowanceResponse

    @classmethod
    def from_dto(cls, dto: QuotaStatusDTO) -> QuotaStatusResponse:
        return cls(
            start_credits=dto.start_credits,
            unlimited_starts=dto.unlimited_starts,
            can_start_conversation=dto.can_start_conversation,
            can_send_message=dto.can_send_message,
            messages=MessageAllowanceResponse.model_validate(dto.messages, from_attributes=True),
        )
