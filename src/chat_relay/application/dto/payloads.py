"""Wire payloads pushed to clients. Keys follow the client protocol (camelCase)."""
from __future__ import annotations

from typing import Any

from chat_relay.domain.entities.message import Message


def message_payload(msg: Message) -> dict[str, Any]:
    return {
        "id": msg.id,
        "username": msg.username,
        "message": msg.text,
        "file": (
            {
                "name": msg.file.name,
                "type": msg.file.media_type,
                "size": msg.file.size,
                "data": msg.file.data,
            }
            if msg.file
            else None
        ),
        "timestamp": msg.timestamp.isoformat(),
        "clientTimestamp": (
            msg.client_timestamp.isoformat() if msg.client_timestamp else None
        ),
        "status": msg.status.value,
    }


def status_payload(msg: Message) -> dict[str, Any]:
    return {"messageId": msg.id, "status": msg.status.value}


def typing_payload(usernames: list[str]) -> dict[str, Any]:
    return {"typingUsers": usernames}
