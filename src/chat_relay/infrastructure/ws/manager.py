"""In-process WebSocket connection manager."""
from __future__ import annotations

import asyncio
import logging
from typing import Any

from fastapi import WebSocket

from chat_relay.domain.value_objects.ids import new_session_id
from chat_relay.infrastructure.ws.protocol import WsOutbound

logger = logging.getLogger(__name__)

FORCED_CLOSE_CODE = 4000


class ConnectionManager:
    """Tracks WebSocket connections by session id.

    Implements both the Broadcaster and SessionTransport ports for local
    delivery. Sending to a session that is gone is silently ignored.
    """

    def __init__(self) -> None:
        self._connections: dict[str, WebSocket] = {}
        self._closed: dict[str, asyncio.Event] = {}

    async def connect(self, ws: WebSocket) -> str:
        await ws.accept()
        session_id = new_session_id()
        self._connections[session_id] = ws
        self._closed[session_id] = asyncio.Event()
        logger.debug("WS connected: %s (total=%d)", session_id, len(self._connections))
        return session_id

    def disconnect(self, session_id: str) -> None:
        self._connections.pop(session_id, None)
        closed = self._closed.pop(session_id, None)
        if closed is not None:
            closed.set()
        logger.debug("WS disconnected: %s", session_id)

    async def wait_closed(self, session_id: str) -> None:
        closed = self._closed.get(session_id)
        if closed is not None:
            await closed.wait()

    def __len__(self) -> int:
        return len(self._connections)

    async def send(self, session_id: str, event: str, data: dict[str, Any]) -> bool:
        ws = self._connections.get(session_id)
        if ws is None:
            return False
        raw = WsOutbound(type=event, data=data).model_dump_json()
        try:
            await ws.send_text(raw)
        except Exception:
            logger.debug("Dropping %s for gone session %s", event, session_id, exc_info=True)
            self.disconnect(session_id)
            return False
        return True

    async def broadcast(self, event: str, data: dict[str, Any]) -> None:
        """Send a WS message to every local connection."""
        raw = WsOutbound(type=event, data=data).model_dump_json()
        dead: list[str] = []
        for session_id, ws in list(self._connections.items()):
            try:
                await ws.send_text(raw)
            except Exception:
                dead.append(session_id)
        for session_id in dead:
            self.disconnect(session_id)

    async def close(self, session_id: str, *, reason: str = "") -> None:
        ws = self._connections.get(session_id)
        self.disconnect(session_id)
        if ws is None:
            return
        try:
            await ws.close(code=FORCED_CLOSE_CODE, reason=reason)
        except Exception:
            logger.debug("Close failed for session %s", session_id, exc_info=True)
