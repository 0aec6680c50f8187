from __future__ import annotations

from enum import StrEnum


class ConversationStatus(StrEnum):
    ACTIVE = "active"
    ARCHIVED = "archived"


class UserRole(StrEnum):
    SEEKER = "seeker"
    LISTER = "lister"


class MessageType(StrEnum):
    TEXT = "text"


class CreditKind(StrEnum):
    FREE_GRANT = "free_grant"
    PURCHASED_PACK = "purchased_pack"
    MONTHLY_SUBSCRIPTION = "monthly_subscription"


class ConsumeResult(StrEnum):
    CONSUMED = "consumed"
    UNLIMITED = "unlimited"
    DEPLETED = "depleted"
