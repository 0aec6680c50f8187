from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Query, Response, status

from match_chat.api.deps import NEXT_CURSOR_HEADER, CurrentPrincipal, UoWDep
from match_chat.api.v1.schemas.conversation import (
    ConversationResponse,
    ConversationSummaryResponse,
    PatchConversationRequest,
    StartConversationRequest,
    StartConversationResponse,
)
from match_chat.domain.value_objects.enums import ConversationStatus
from match_chat.infrastructure.db.repositories._cursor import next_conversation_cursor
from match_chat.services import conversation_service

router = APIRouter(prefix="/api/v1/chat/conversations", tags=["conversations"])


@router.post("", response_model=StartConversationResponse)
async def start_conversation(
    body: StartConversationRequest,
    principal: CurrentPrincipal,
    uow: UoWDep,
    response: Response,
) -> StartConversationResponse:
    result = await conversation_service.get_or_create_conversation(
        principal,
        body.other_user_id,
        body.listing_id,
        body.opening_message,
        uow,
        opening_client_msg_id=body.client_msg_id,
    )
    response.status_code = status.HTTP_201_CREATED if result.created else status.HTTP_200_OK
    return StartConversationResponse.from_result(result)


@router.get("", response_model=list[ConversationSummaryResponse])
async def list_conversations(
    principal: CurrentPrincipal,
    uow: UoWDep,
    response: Response,
    cursor: str | None = Query(None),
    limit: int = Query(20, ge=1, le=100),
) -> list[ConversationSummaryResponse]:
    summaries = await conversation_service.list_user_conversations(
        principal, cursor, limit, uow,
    )
    next_cursor = next_conversation_cursor([s.conversation for s in summaries], limit)
    if next_cursor:
        response.headers[NEXT_CURSOR_HEADER] = next_cursor
    return [ConversationSummaryResponse.from_dto(s) for s in summaries]


@router.get("/{conversation_id}", response_model=ConversationResponse)
async def get_conversation(
    conversation_id: UUID,
    principal: CurrentPrincipal,
    uow: UoWDep,
) -> ConversationResponse:
    conv = await conversation_service.get_conversation(conversation_id, principal, uow)
    return ConversationResponse.model_validate(conv, from_attributes=True)


@router.patch("/{conversation_id}", response_model=ConversationResponse)
async def patch_conversation(
    conversation_id: UUID,
    body: PatchConversationRequest,
    principal: CurrentPrincipal,
    uow: UoWDep,
) -> ConversationResponse:
    conv = await conversation_service.set_conversation_status(
        conversation_id, ConversationStatus(body.status), principal, uow,
    )
    return ConversationResponse.model_validate(conv, from_attributes=True)
