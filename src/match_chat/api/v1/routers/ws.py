from __future__ import annotations

import asyncio
import logging
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect

from match_chat.api.deps import get_verifier
from match_chat.application.dto.principal import Principal
from match_chat.application.exceptions import AdmissionError, AppError
from match_chat.application.policies.permissions import assert_conversation_access
from match_chat.config import settings
from match_chat.domain.events.typing_changed import TypingChanged
from match_chat.infrastructure.bus.redis_pubsub import RedisPubSubPublisher
from match_chat.infrastructure.db.session import AsyncSessionLocal
from match_chat.infrastructure.db.uow import SqlAlchemyUoW
from match_chat.infrastructure.ws.manager import ConnectionManager
from match_chat.infrastructure.ws.protocol import WsInbound, WsOutbound, error_frame
from match_chat.services import message_service, read_state_service

logger = logging.getLogger(__name__)
router = APIRouter(tags=["websocket"])

manager = ConnectionManager()


def get_manager() -> ConnectionManager:
    return manager


async def _authenticate(token: str) -> Principal | None:
    try:
        verifier = get_verifier()
        return await verifier.verify(token)
    except Exception:
        logger.debug("WS auth failed", exc_info=True)
        return None


@router.websocket("/ws/chat")
async def ws_chat(
    websocket: WebSocket,
    token: str = Query(...),
) -> None:
    principal = await _authenticate(token)
    if principal is None:
        await websocket.close(code=4001, reason="Authentication failed")
        return

    pkey = principal.principal_key
    await manager.connect(websocket, pkey)

    heartbeat_task = asyncio.create_task(
        _heartbeat(websocket), name=f"ws-heartbeat-{pkey}",
    )
    try:
        await _read_loop(websocket, principal)
    except WebSocketDisconnect:
        pass
    except Exception:
        logger.exception("WS error for %s", pkey)
    finally:
        heartbeat_task.cancel()
        manager.disconnect(websocket, pkey)


async def _heartbeat(ws: WebSocket) -> None:
    interval = settings.WS_HEARTBEAT_SECONDS
    try:
        while True:
            await asyncio.sleep(interval)
            await ws.send_text(WsOutbound(type="pong", data={}).model_dump_json())
    except asyncio.CancelledError:
        pass
    except Exception:
        pass


def _conversation_id(data: dict[str, Any]) -> UUID | None:
    try:
        return UUID(str(data["conversation_id"]))
    except (KeyError, ValueError):
        return None


async def _read_loop(ws: WebSocket, principal: Principal) -> None:
    while True:
        raw = await ws.receive_text()
        try:
            msg = WsInbound.model_validate_json(raw)
        except Exception:
            await ws.send_text(error_frame("invalid_payload"))
            continue

        if msg.type == "ping":
            await ws.send_text(WsOutbound(type="pong", data={}).model_dump_json())
            continue

        conversation_id = _conversation_id(msg.data)
        if conversation_id is None:
            await ws.send_text(error_frame("invalid_data", detail="conversation_id required"))
            continue

        if msg.type == "subscribe":
            await _handle_subscribe(ws, principal, conversation_id)
        elif msg.type == "unsubscribe":
            manager.unsubscribe(principal.principal_key, conversation_id)
        elif msg.type == "message.send":
            await _handle_send(ws, principal, conversation_id, msg.data)
        elif msg.type == "mark_read":
            await _handle_mark_read(ws, principal, conversation_id)
        elif msg.type in ("typing.start", "typing.stop"):
            await _handle_typing(ws, principal, conversation_id, msg.type == "typing.start")
        else:
            await ws.send_text(error_frame("unknown_type", type=msg.type))


async def _check_access(principal: Principal, conversation_id: UUID) -> None:
    async with AsyncSessionLocal() as session:
        uow = SqlAlchemyUoW(session)
        conversation = await uow.conversations.get_by_id(conversation_id)
        assert_conversation_access(principal, conversation)


async def _handle_subscribe(ws: WebSocket, principal: Principal, conversation_id: UUID) -> None:
    try:
        await _check_access(principal, conversation_id)
    except AppError as exc:
        await ws.send_text(error_frame("forbidden", detail=exc.detail))
        return
    manager.subscribe(principal.principal_key, conversation_id)


async def _handle_send(
    ws: WebSocket,
    principal: Principal,
    conversation_id: UUID,
    data: dict[str, Any],
) -> None:
    try:
        client_msg_id = UUID(str(data["client_msg_id"]))
        body = str(data["body"])
    except (KeyError, ValueError) as exc:
        await ws.send_text(error_frame("invalid_data", detail=str(exc)))
        return

    async with AsyncSessionLocal() as session:
        async with SqlAlchemyUoW(session) as uow:
            try:
                msg, _created = await message_service.send_message(
                    conversation_id, principal, client_msg_id, body, uow,
                )
            except AdmissionError as exc:
                await ws.send_text(error_frame(exc.code, detail=exc.detail))
                return
            except AppError as exc:
                await ws.send_text(error_frame("send_failed", detail=exc.detail))
                return

    # Other participants receive the message through the outbox fan-out.
    ack = {
        "client_msg_id": str(msg.client_msg_id),
        "message_id": str(msg.id),
        "conversation_id": str(msg.conversation_id),
        "created_at": msg.created_at.isoformat(),
    }
    await ws.send_text(WsOutbound(type="message.ack", data=ack).model_dump_json())


async def _handle_mark_read(ws: WebSocket, principal: Principal, conversation_id: UUID) -> None:
    async with AsyncSessionLocal() as session:
        async with SqlAlchemyUoW(session) as uow:
            try:
                await read_state_service.mark_read(conversation_id, principal, uow)
            except AppError as exc:
                await ws.send_text(error_frame("mark_read_failed", detail=exc.detail))


async def _handle_typing(
    ws: WebSocket,
    principal: Principal,
    conversation_id: UUID,
    is_typing: bool,
) -> None:
    if principal.principal_key not in manager.subscribers(conversation_id):
        await ws.send_text(error_frame("not_subscribed"))
        return
    event = TypingChanged(
        conversation_id=conversation_id,
        user_id=principal.user_id,
        typing=is_typing,
        expires_in=settings.TYPING_EXPIRY_SECONDS,
    )
    publisher = RedisPubSubPublisher(ws.app.state.redis)
    await publisher.publish(settings.typing_channel(conversation_id), event.to_payload())
