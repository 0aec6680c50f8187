from __future__ import annotations

from fastapi import APIRouter

from match_chat.api.deps import CurrentPrincipal, UoWDep
from match_chat.api.v1.schemas.quota import QuotaStatusResponse
from match_chat.services import quota_service

router = APIRouter(prefix="/api/v1/chat/quota", tags=["quota"])


@router.get("", response_model=QuotaStatusResponse)
async def get_quota(
    principal: CurrentPrincipal,
    uow: UoWDep,
) -> QuotaStatusResponse:
    dto = await quota_service.quota_status(principal.user_id, uow)
    return QuotaStatusResponse.from_dto(dto)
