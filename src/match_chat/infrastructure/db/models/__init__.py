"""Import all models so Alembic can discover them via Base.metadata."""
from match_chat.infrastructure.db.models.conversation import ConversationModel
from match_chat.infrastructure.db.models.message import MessageModel
from match_chat.infrastructure.db.models.message_allowance import MessageAllowanceModel
from match_chat.infrastructure.db.models.outbox import OutboxMessageModel
from match_chat.infrastructure.db.models.profile import ProfileModel
from match_chat.infrastructure.db.models.start_credit import StartCreditModel

__all__ = [
    "ConversationModel",
    "MessageAllowanceModel",
    "MessageModel",
    "OutboxMessageModel",
    "ProfileModel",
    "StartCreditModel",
]
