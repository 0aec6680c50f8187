from __future__ import annotations

from match_chat.domain.entities.message import Message
from match_chat.infrastructure.db.models.message import MessageModel


def model_to_entity(model: MessageModel) -> Message:
    return Message(
        id=model.id,
        conversation_id=model.conversation_id,
        sender_id=model.sender_id,
        type=model.type,
        body=model.body,
        client_msg_id=model.client_msg_id,
        is_read=model.is_read,
        created_at=model.created_at,
    )


def entity_to_values(entity: Message) -> dict:
    return {
        "id": entity.id,
        "conversation_id": entity.conversation_id,
        "sender_id": entity.sender_id,
        "type": entity.type,
        "body": entity.body,
        "client_msg_id": entity.client_msg_id,
        "is_read": entity.is_read,
        "created_at": entity.created_at,
    }
