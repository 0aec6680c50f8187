from __future__ import annotations

import logging
from uuid import UUID

from match_chat.client.api import ChatApiClient
from match_chat.client.cache import ConversationListCache, MessageListCache

logger = logging.getLogger(__name__)


class ReadReceiptMarker:
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

    async def mark_read(self, conversation_id: UUID, is_actively_viewed: bool) -> int:
        """Acknowledge the other party's messages while the thread is on screen.

        No request is made unless the local cache holds unread confirmed
        messages from the other participant, or a fresh conversation summary
        reports some the cache has not loaded.
        """
        if not is_actively_viewed:
            return 0
        if not (
            self._messages.unread_from_others(conversation_id, self._user_id)
            or self._server_unread(conversation_id)
        ):
            return 0

        updated = await self._api.mark_read(conversation_id)
        self._messages.mark_read_local(conversation_id, self._user_id)
        self._conversations.invalidate()
        logger.debug("Marked %d message(s) read in %s", updated, conversation_id)
        return updated

    def _server_unread(self, conversation_id: UUID) -> int:
        # A stale summary may predate our own mark_read.
        if self._conversations.is_stale:
            return 0
        summary = self._conversations.find(conversation_id)
        return summary.unread_count if summary is not None else 0
