from __future__ import annotations

from typing import Literal
from uuid import UUID

from fastapi import APIRouter, Query, Response

from match_chat.api.deps import NEXT_CURSOR_HEADER, CurrentPrincipal, UoWDep
from match_chat.api.v1.schemas.message import (
    MarkReadResponse,
    MessageResponse,
    SendMessageRequest,
    UnreadCountResponse,
)
from match_chat.infrastructure.db.repositories._cursor import next_message_cursor
from match_chat.services import message_service, read_state_service

router = APIRouter(prefix="/api/v1/chat", tags=["messages"])


@router.get("/conversations/{conversation_id}/messages", response_model=list[MessageResponse])
async def list_messages(
    conversation_id: UUID,
    principal: CurrentPrincipal,
    uow: UoWDep,
    response: Response,
    cursor: str | None = Query(None),
    limit: int = Query(50, ge=1, le=200),
    order: Literal["asc", "desc"] = Query("asc"),
) -> list[MessageResponse]:
    messages = await message_service.list_messages(
        conversation_id, principal, cursor, limit, uow, newest_first=order == "desc",
    )
    next_cursor = next_message_cursor(messages, limit)
    if next_cursor:
        response.headers[NEXT_CURSOR_HEADER] = next_cursor
    return [MessageResponse.model_validate(m, from_attributes=True) for m in messages]


@router.post(
    "/conversations/{conversation_id}/messages",
    response_model=MessageResponse,
    status_code=201,
)
async def send_message(
    conversation_id: UUID,
    body: SendMessageRequest,
    principal: CurrentPrincipal,
    uow: UoWDep,
) -> MessageResponse:
    msg, _created = await message_service.send_message(
        conversation_id,
        principal,
        body.client_msg_id,
        body.body,
        uow,
    )
    return MessageResponse.model_validate(msg, from_attributes=True)


@router.post("/conversations/{conversation_id}/read", response_model=MarkReadResponse)
async def mark_read(
    conversation_id: UUID,
    principal: CurrentPrincipal,
    uow: UoWDep,
) -> MarkReadResponse:
    updated = await read_state_service.mark_read(conversation_id, principal, uow)
    return MarkReadResponse(updated=updated)


@router.get("/unread-count", response_model=UnreadCountResponse)
async def unread_count(
    principal: CurrentPrincipal,
    uow: UoWDep,
) -> UnreadCountResponse:
    count = await read_state_service.unread_conversations_count(principal, uow)
    return UnreadCountResponse(conversations_with_unread=count)
