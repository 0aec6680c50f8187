"""Per-user chat session a UI embeds.

Wires the caches, the optimistic send pipeline, the realtime bridge, the
typing channel and the read-receipt marker around one API client.
"""
from __future__ import annotations

import logging
from typing import Any
from uuid import UUID

import redis.asyncio as aioredis

from match_chat.api.v1.schemas.conversation import (
    ConversationSummaryResponse,
    StartConversationResponse,
)
from match_chat.client.api import ChatApiClient
from match_chat.client.cache import ConversationListCache, MessageListCache
from match_chat.client.models import ConfirmedMessage, LocalMessage
from match_chat.client.pipeline import MessageSendPipeline
from match_chat.client.presence import OnTypingChanged, TypingChannel
from match_chat.client.read_receipts import ReadReceiptMarker
from match_chat.client.realtime import RealtimeEventBridge, Subscription
from match_chat.domain.events.message_created import MessageCreated

logger = logging.getLogger(__name__)


class ChatSession:
    def __init__(
        self,
        user_id: int,
        api: ChatApiClient,
        *,
        bridge: RealtimeEventBridge | None = None,
        typing: TypingChannel | None = None,
        redis: aioredis.Redis | None = None,
        on_typing_changed: OnTypingChanged | None = None,
    ) -> None:
        self.user_id = user_id
        self.api = api
        self.conversations = ConversationListCache()
        self.messages = MessageListCache()
        self.pipeline = MessageSendPipeline(user_id, api, self.messages, self.conversations)
        self.read_receipts = ReadReceiptMarker(user_id, api, self.messages, self.conversations)
        self.typing = typing or TypingChannel(user_id, redis, on_change=on_typing_changed)
        self._bridge = bridge or (RealtimeEventBridge(redis) if redis is not None else None)
        self._subscription: Subscription | None = None
        self._active: UUID | None = None

    @property
    def active_conversation(self) -> UUID | None:
        return self._active

    async def connect(self) -> None:
        if self._bridge is None or self._subscription is not None:
            return
        self._subscription = await self._bridge.subscribe(
            self.user_id, self.on_conversations_changed, on_event=self.on_event,
        )

    async def refresh_conversations(self) -> list[ConversationSummaryResponse]:
        items = await self.api.list_conversations()
        self.conversations.set(items)
        return items

    async def load_messages(self, conversation_id: UUID) -> list[LocalMessage]:
        """Merge the latest window of the conversation into the cache."""
        page = await self.api.list_messages(conversation_id, newest_first=True)
        self.messages.set(
            conversation_id, [ConfirmedMessage.from_response(m) for m in reversed(page)],
        )
        return self.messages.get(conversation_id)

    async def open_conversation(self, conversation_id: UUID) -> list[LocalMessage]:
        if self._active is not None and self._active != conversation_id:
            await self.close_conversation()
        self._active = conversation_id
        messages = await self.load_messages(conversation_id)
        await self.typing.watch(conversation_id)
        await self.read_receipts.mark_read(conversation_id, is_actively_viewed=True)
        return messages

    async def close_conversation(self) -> None:
        if self._active is None:
            return
        await self.typing.unwatch(self._active)
        self._active = None

    async def start_conversation(
        self,
        other_user_id: int,
        listing_id: int | None = None,
        opening_message: str | None = None,
    ) -> StartConversationResponse:
        """Find or create the thread with ``other_user_id``.

        The opening text goes through the send pipeline so it shows up
        optimistically. If it fails, ``SendFailedError`` propagates but the
        conversation itself stands.
        """
        result = await self.api.start_conversation(other_user_id, listing_id)
        self.conversations.invalidate()
        if opening_message and opening_message.strip():
            await self.pipeline.send_message(result.conversation.id, opening_message)
        return result

    async def send_message(self, conversation_id: UUID, text: str) -> ConfirmedMessage:
        await self.typing.stop_typing(conversation_id)
        return await self.pipeline.send_message(conversation_id, text)

    async def set_archived(self, conversation_id: UUID, archived: bool) -> None:
        await self.api.set_status(conversation_id, "archived" if archived else "active")
        self.conversations.invalidate()

    async def on_event(self, event_type: str, data: dict[str, Any]) -> None:
        if event_type != MessageCreated.event_type:
            return
        try:
            conversation_id = UUID(str(data["conversation_id"]))
            sender_id = int(data["sender_id"])
        except (KeyError, TypeError, ValueError):
            return
        if sender_id != self.user_id:
            self.typing.clear_user(conversation_id, sender_id)

    async def on_conversations_changed(self, conversation_ids: set[UUID]) -> None:
        self.conversations.invalidate()
        loaded = self.messages.loaded()
        for conversation_id in conversation_ids & loaded:
            self.messages.invalidate(conversation_id)

        await self.refresh_conversations()
        for conversation_id in conversation_ids & loaded:
            await self.load_messages(conversation_id)
        if self._active is not None and self._active in conversation_ids:
            await self.read_receipts.mark_read(self._active, is_actively_viewed=True)

    async def close(self) -> None:
        if self._subscription is not None:
            await self._subscription.close()
            self._subscription = None
        await self.typing.close()
        await self.api.close()
