from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from chat_relay.domain.value_objects.enums import MessageStatus


@dataclass(frozen=True, slots=True)
class FileAttachment:
    """Opaque file blob attached to a message; ``data`` is never inspected."""

    name: str
    media_type: str
    size: int
    data: str


@dataclass(frozen=True, slots=True)
class Message:
    id: str
    username: str
    text: str | None
    file: FileAttachment | None
    timestamp: datetime
    status: MessageStatus = MessageStatus.SENDING
    client_timestamp: datetime | None = None
