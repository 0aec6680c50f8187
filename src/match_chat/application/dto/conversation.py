from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from match_chat.domain.entities.conversation import Conversation
from match_chat.domain.entities.message import Message
from match_chat.domain.entities.profile import Profile


@dataclass(frozen=True, slots=True)
class LastMessagePreview:
    body: str
    sender_id: int
    created_at: datetime


@dataclass(frozen=True, slots=True)
class ConversationSummaryDTO:
    """Conversation row as shown in the conversation list."""

    conversation: Conversation
    other_user: Profile | None
    last_message: LastMessagePreview | None
    unread_count: int = 0


@dataclass(frozen=True, slots=True)
class StartConversationResult:
    conversation: Conversation
    created: bool
    opening_message: Message | None = None
