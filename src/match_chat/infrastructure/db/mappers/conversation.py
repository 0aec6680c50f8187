from __future__ import annotations

from match_chat.domain.entities.conversation import Conversation
from match_chat.infrastructure.db.models.conversation import ConversationModel


def model_to_entity(model: ConversationModel) -> Conversation:
    return Conversation(
        id=model.id,
        seeker_id=model.seeker_id,
        lister_id=model.lister_id,
        listing_id=model.listing_id,
        status=model.status,
        last_message_at=model.last_message_at,
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


def entity_to_values(entity: Conversation) -> dict:
    return {
        "id": entity.id,
        "seeker_id": entity.seeker_id,
        "lister_id": entity.lister_id,
        "listing_id": entity.listing_id,
        "status": entity.status,
        "last_message_at": entity.last_message_at,
        "created_at": entity.created_at,
        "updated_at": entity.updated_at,
    }
