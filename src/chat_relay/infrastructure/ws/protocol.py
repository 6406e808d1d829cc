"""WebSocket message envelope models."""
from __future__ import annotations

from typing import Any

from pydantic import BaseModel


class WsInbound(BaseModel):
    """Client → Server."""

    type: str  # login | sendMessage | typing | ... | ping | pong
    data: dict[str, Any] = {}
    ack_id: str | None = None


class WsOutbound(BaseModel):
    """Server → Client."""

    type: str  # ack | newMessage | presenceUpdate | forced-logout | ping | error
    data: dict[str, Any] = {}
    ack_id: str | None = None
    event: str | None = None  # request type an ack answers
