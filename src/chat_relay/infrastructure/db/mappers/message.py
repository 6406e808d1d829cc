from __future__ import annotations

from typing import Any

from chat_relay.domain.entities.message import FileAttachment, Message
from chat_relay.domain.value_objects.enums import MessageStatus
from chat_relay.infrastructure.db.models.message import MessageModel


def _file_to_json(file: FileAttachment | None) -> dict[str, Any] | None:
    if file is None:
        return None
    return {
        "name": file.name,
        "type": file.media_type,
        "size": file.size,
        "data": file.data,
    }


def _file_from_json(raw: dict[str, Any] | None) -> FileAttachment | None:
    if not raw:
        return None
    return FileAttachment(
        name=raw["name"],
        media_type=raw.get("type", "application/octet-stream"),
        size=int(raw["size"]),
        data=raw.get("data", ""),
    )


def model_to_entity(model: MessageModel) -> Message:
    return Message(
        id=model.id,
        username=model.username,
        text=model.message,
        file=_file_from_json(model.file),
        timestamp=model.timestamp,
        status=MessageStatus(model.status),
        client_timestamp=model.client_timestamp,
    )


def entity_to_values(entity: Message) -> dict[str, Any]:
    return {
        "id": entity.id,
        "username": entity.username,
        "message": entity.text,
        "file": _file_to_json(entity.file),
        "timestamp": entity.timestamp,
        "client_timestamp": entity.client_timestamp,
        "status": entity.status.value,
    }
