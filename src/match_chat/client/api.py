"""Async HTTP client for the chat API."""
from __future__ import annotations

import logging
from typing import Any
from uuid import UUID

import httpx

from match_chat.api.v1.schemas.conversation import (
    ConversationSummaryResponse,
    StartConversationResponse,
)
from match_chat.api.v1.schemas.message import MessageResponse
from match_chat.api.v1.schemas.quota import QuotaStatusResponse
from match_chat.application.exceptions import (
    AdmissionError,
    AppError,
    ConflictError,
    ForbiddenError,
    MonthlyCapExceededError,
    NotFoundError,
    QuotaExceededError,
    ValidationError,
)
from match_chat.client.exceptions import ChatClientError
from match_chat.config import settings

logger = logging.getLogger(__name__)

_STATUS_ERRORS: dict[int, type[AppError]] = {
    403: ForbiddenError,
    404: NotFoundError,
    409: ConflictError,
    422: ValidationError,
}

_ADMISSION_ERRORS: dict[str, type[AdmissionError]] = {
    QuotaExceededError.code: QuotaExceededError,
    MonthlyCapExceededError.code: MonthlyCapExceededError,
}


def _detail(response: httpx.Response) -> tuple[Any, str | None]:
    try:
        body = response.json()
    except ValueError:
        return response.text, None
    if not isinstance(body, dict):
        return body, None
    return body.get("detail", ""), body.get("code")


def raise_for_api_error(response: httpx.Response) -> None:
    """Translate an error response into the matching application error."""
    if response.is_success:
        return
    detail, code = _detail(response)
    if response.status_code == 402:
        raise _ADMISSION_ERRORS.get(code or "", AdmissionError)(str(detail))
    error_cls = _STATUS_ERRORS.get(response.status_code)
    if error_cls is not None:
        raise error_cls(str(detail))
    raise ChatClientError(detail, response.status_code)


class ChatApiClient:
    """Thin wrapper over ``/api/v1/chat`` returning parsed response schemas."""

    def __init__(
        self,
        token: str,
        *,
        base_url: str | None = None,
        http_client: httpx.AsyncClient | None = None,
        timeout: float | None = None,
    ) -> None:
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            base_url=base_url or settings.CHAT_API_URL,
            timeout=timeout or settings.CHAT_API_TIMEOUT,
        )
        self._headers = {"Authorization": f"Bearer {token}"}

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        response = await self._client.request(
            method, f"/api/v1/chat{path}", headers=self._headers, **kwargs,
        )
        raise_for_api_error(response)
        return response.json()

    async def start_conversation(
        self,
        other_user_id: int,
        listing_id: int | None = None,
        opening_message: str | None = None,
        client_msg_id: UUID | None = None,
    ) -> StartConversationResponse:
        data = await self._request(
            "POST",
            "/conversations",
            json={
                "other_user_id": other_user_id,
                "listing_id": listing_id,
                "opening_message": opening_message,
                "client_msg_id": str(client_msg_id) if client_msg_id else None,
            },
        )
        return StartConversationResponse.model_validate(data)

    async def list_conversations(
        self, cursor: str | None = None, limit: int = 20,
    ) -> list[ConversationSummaryResponse]:
        params: dict[str, Any] = {"limit": limit}
        if cursor:
            params["cursor"] = cursor
        data = await self._request("GET", "/conversations", params=params)
        return [ConversationSummaryResponse.model_validate(item) for item in data]

    async def list_messages(
        self,
        conversation_id: UUID,
        cursor: str | None = None,
        limit: int = 50,
        *,
        newest_first: bool = False,
    ) -> list[MessageResponse]:
        params: dict[str, Any] = {"limit": limit, "order": "desc" if newest_first else "asc"}
        if cursor:
            params["cursor"] = cursor
        data = await self._request(
            "GET", f"/conversations/{conversation_id}/messages", params=params,
        )
        return [MessageResponse.model_validate(item) for item in data]

    async def send_message(
        self, conversation_id: UUID, client_msg_id: UUID, body: str,
    ) -> MessageResponse:
        data = await self._request(
            "POST",
            f"/conversations/{conversation_id}/messages",
            json={"client_msg_id": str(client_msg_id), "body": body},
        )
        return MessageResponse.model_validate(data)

    async def mark_read(self, conversation_id: UUID) -> int:
        data = await self._request("POST", f"/conversations/{conversation_id}/read")
        return int(data["updated"])

    async def set_status(self, conversation_id: UUID, status: str) -> None:
        await self._request(
            "PATCH", f"/conversations/{conversation_id}", json={"status": status},
        )

    async def quota(self) -> QuotaStatusResponse:
        return QuotaStatusResponse.model_validate(await self._request("GET", "/quota"))

    async def unread_count(self) -> int:
        data = await self._request("GET", "/unread-count")
        return int(data["conversations_with_unread"])

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
