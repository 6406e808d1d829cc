from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError as PydanticValidationError

from chat_relay.api.deps import ManagerDep, RelayDep
from chat_relay.api.middleware.correlation_id import correlation_id_ctx
from chat_relay.api.v1.schemas.events import (
    DeleteMessageRequest,
    HistoryRequest,
    LoginRequest,
    MessageStatusRequest,
    SendMessageRequest,
    TypingRequest,
    UploadFileRequest,
    UsernameRequest,
)
from chat_relay.application.dto.payloads import message_payload
from chat_relay.application.exceptions import AppError, ConflictError
from chat_relay.config import settings
from chat_relay.domain.entities.message import Message
from chat_relay.infrastructure.ws.protocol import WsInbound, WsOutbound
from chat_relay.services.chat_relay import ChatRelay

logger = logging.getLogger(__name__)
router = APIRouter(tags=["websocket"])

Handler = Callable[[ChatRelay, str, dict[str, Any]], Awaitable[dict[str, Any]]]


@router.websocket("/ws")
async def ws_chat(websocket: WebSocket, relay: RelayDep, manager: ManagerDep) -> None:
    session_id = await manager.connect(websocket)
    correlation_id_ctx.set(session_id)
    reason = "client disconnected"
    try:
        await relay.connect(session_id)
        read_task = asyncio.create_task(
            _read_loop(websocket, relay, session_id), name=f"ws-read-{session_id}",
        )
        liveness_task = asyncio.create_task(
            relay.registry.watch_liveness(
                session_id,
                interval=settings.HEARTBEAT_INTERVAL_SECONDS,
                max_missed=settings.HEARTBEAT_MAX_MISSED,
            ),
            name=f"ws-liveness-{session_id}",
        )
        closed_task = asyncio.create_task(
            manager.wait_closed(session_id), name=f"ws-closed-{session_id}",
        )
        tasks = {read_task, liveness_task, closed_task}
        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

        if liveness_task in done:
            reason = "heartbeat timeout"
        elif closed_task in done:
            reason = "closed by server"
        elif not read_task.cancelled():
            exc = read_task.exception()
            if exc is not None and not isinstance(exc, WebSocketDisconnect):
                logger.error("WS error for %s", session_id, exc_info=exc)
    finally:
        manager.disconnect(session_id)
        try:
            # Shielded so presence cleanup completes if the connection task is cancelled.
            await asyncio.shield(relay.disconnect(session_id, reason))
        except Exception:
            logger.exception("Disconnect handling failed for %s", session_id)


async def _read_loop(ws: WebSocket, relay: ChatRelay, session_id: str) -> None:
    while True:
        raw = await ws.receive_text()
        relay.acknowledge(session_id)
        try:
            msg = WsInbound.model_validate_json(raw)
        except PydanticValidationError:
            await ws.send_text(
                WsOutbound(type="error", data={"code": "invalid_payload"}).model_dump_json()
            )
            continue

        if msg.type == "ping":
            await ws.send_text(WsOutbound(type="pong", data={}).model_dump_json())
            continue
        if msg.type == "pong":
            continue

        handler = _HANDLERS.get(msg.type)
        if handler is None:
            await ws.send_text(
                WsOutbound(type="error", data={"code": "unknown_type", "type": msg.type}).model_dump_json()
            )
            continue

        # Shielded so a store write in flight outlives a session torn down mid-request.
        result = await asyncio.shield(_dispatch(handler, relay, session_id, msg.data))
        await ws.send_text(
            WsOutbound(type="ack", event=msg.type, data=result, ack_id=msg.ack_id).model_dump_json()
        )


async def _dispatch(
    handler: Handler, relay: ChatRelay, session_id: str, data: dict[str, Any]
) -> dict[str, Any]:
    """Run a handler and always produce an ack payload, success or failure."""
    try:
        return await handler(relay, session_id, data)
    except AppError as exc:
        return _failure(exc)
    except PydanticValidationError as exc:
        return {
            "success": False,
            "error": "Invalid payload",
            "code": "invalid_payload",
            "detail": [
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
                for err in exc.errors()
            ],
        }
    except Exception:
        logger.exception("Handler %s failed for session %s", handler.__name__, session_id)
        return {"success": False, "error": "Internal error", "code": "internal_error"}


def _failure(exc: AppError) -> dict[str, Any]:
    payload: dict[str, Any] = {"success": False, "error": exc.detail, "code": exc.code}
    if isinstance(exc, ConflictError):
        payload["canForce"] = getattr(exc, "can_force", False)
    return payload


def _sent(msg: Message) -> dict[str, Any]:
    return {
        "success": True,
        "id": msg.id,
        "timestamp": msg.timestamp.isoformat(),
        "status": msg.status.value,
    }


async def _login(relay: ChatRelay, session_id: str, data: dict[str, Any]) -> dict[str, Any]:
    req = LoginRequest.model_validate(data)
    username = await relay.login(session_id, req.username, force=req.force)
    return {"success": True, "username": username}


async def _validate_username(relay: ChatRelay, session_id: str, data: dict[str, Any]) -> dict[str, Any]:
    req = UsernameRequest.model_validate(data)
    check = await relay.check_username(req.username)
    return {
        "valid": check.valid,
        "exists": check.exists,
        "online": check.online,
        "canTakeOver": check.can_take_over,
    }


async def _load_history(relay: ChatRelay, session_id: str, data: dict[str, Any]) -> dict[str, Any]:
    req = HistoryRequest.model_validate(data)
    messages = await relay.pipeline.history(req.limit, req.skip)
    return {"success": True, "messages": [message_payload(m) for m in messages]}


async def _send_message(relay: ChatRelay, session_id: str, data: dict[str, Any]) -> dict[str, Any]:
    req = SendMessageRequest.model_validate(data)
    msg = await relay.pipeline.send(
        req.username,
        req.message,
        req.file.to_entity() if req.file else None,
        client_id=req.id,
        client_timestamp=req.timestamp,
    )
    return _sent(msg)


async def _upload_file(relay: ChatRelay, session_id: str, data: dict[str, Any]) -> dict[str, Any]:
    req = UploadFileRequest.model_validate(data)
    msg = await relay.pipeline.send(
        req.username,
        None,
        req.file.to_entity() if req.file else None,
        client_id=req.id,
        client_timestamp=req.timestamp,
    )
    return _sent(msg)


async def _typing(relay: ChatRelay, session_id: str, data: dict[str, Any]) -> dict[str, Any]:
    req = TypingRequest.model_validate(data)
    await relay.typing.start(relay.resolve_username(session_id, req.username))
    return {"success": True}


async def _stop_typing(relay: ChatRelay, session_id: str, data: dict[str, Any]) -> dict[str, Any]:
    req = TypingRequest.model_validate(data)
    await relay.typing.stop(relay.resolve_username(session_id, req.username))
    return {"success": True}


async def _message_status(relay: ChatRelay, session_id: str, data: dict[str, Any]) -> dict[str, Any]:
    req = MessageStatusRequest.model_validate(data)
    msg = await relay.pipeline.update_status(req.message_id, req.status)
    return {"success": True, "messageId": msg.id, "status": msg.status.value}


async def _delete_message(relay: ChatRelay, session_id: str, data: dict[str, Any]) -> dict[str, Any]:
    req = DeleteMessageRequest.model_validate(data)
    await relay.pipeline.delete(req.message_id)
    return {"success": True, "messageId": req.message_id}


_HANDLERS: dict[str, Handler] = {
    "login": _login,
    "validateUsername": _validate_username,
    "loadHistory": _load_history,
    "sendMessage": _send_message,
    "uploadFile": _upload_file,
    "typing": _typing,
    "stopTyping": _stop_typing,
    "messageStatus": _message_status,
    "deleteMessage": _delete_message,
}
