from __future__ import annotations

from match_chat.domain.entities.message_allowance import MessageAllowance
from match_chat.domain.entities.start_credit import StartCredit
from match_chat.domain.value_objects.enums import CreditKind
from match_chat.infrastructure.db.models.message_allowance import MessageAllowanceModel
from match_chat.infrastructure.db.models.start_credit import StartCreditModel


def credit_to_entity(model: StartCreditModel) -> StartCredit:
    return StartCredit(
        id=model.id,
        user_id=model.user_id,
        kind=CreditKind(model.kind),
        total=model.total,
        remaining=model.remaining,
        expires_at=model.expires_at,
        created_at=model.created_at,
        source_ref=model.source_ref,
    )


def allowance_to_entity(model: MessageAllowanceModel) -> MessageAllowance:
    return MessageAllowance(
        user_id=model.user_id,
        cap=model.cap,
        used=model.used,
        is_unlimited=model.is_unlimited,
        period_start=model.period_start,
        reset_at=model.reset_at,
    )
