from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from uuid import UUID

import httpx

from match_chat.application.exceptions import AdmissionError, AppError
from match_chat.client.api import ChatApiClient
from match_chat.client.cache import ConversationListCache, MessageListCache
from match_chat.client.exceptions import ChatClientError, SendFailedError
from match_chat.client.models import ConfirmedMessage, PendingMessage, new_temp_id

logger = logging.getLogger(__name__)


class MessageSendPipeline:
    """Optimistic send: show the message at once, reconcile with the server reply.

    A pending entry ends either confirmed at the same list position or
    removed. It never stays behind after a failed send.
    """

    def __init__(
        self,
        user_id: int,
        api: ChatApiClient,
        messages: MessageListCache,
        conversations: ConversationListCache,
    ) -> None:
        self._user_id = user_id
        self._api = api
        self._messages = messages
        self._conversations = conversations

    async def send_message(self, conversation_id: UUID, text: str) -> ConfirmedMessage:
        body = text.strip()
        if not body:
            raise SendFailedError(text, "Message body must not be empty")

        pending = PendingMessage(
            temp_id=new_temp_id(),
            conversation_id=conversation_id,
            sender_id=self._user_id,
            body=body,
            client_msg_id=uuid.uuid4(),
            created_at=datetime.now(timezone.utc),
        )
        self._messages.append_pending(pending)

        try:
            resp = await self._api.send_message(conversation_id, pending.client_msg_id, body)
            confirmed = ConfirmedMessage.from_response(resp)
        except AdmissionError as exc:
            self._messages.remove_pending(pending)
            raise SendFailedError(text, exc.detail, code=exc.code) from exc
        except (AppError, ChatClientError, httpx.HTTPError) as exc:
            self._messages.remove_pending(pending)
            logger.warning("Send to %s failed: %s", conversation_id, exc)
            raise SendFailedError(text, str(exc)) from exc
        except BaseException:
            # Cancelled or unexpected reply: the entry must not outlive the send.
            self._messages.remove_pending(pending)
            raise

        self._messages.confirm(confirmed)
        self._conversations.invalidate()
        return confirmed
