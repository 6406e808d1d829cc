from __future__ import annotations

from typing import Any, Protocol


class EventPublisher(Protocol):
    async def publish(self, channel: str, payload: dict[str, Any]) -> None: ...


class Broadcaster(Protocol):
    """Delivers an event to every connected session."""

    async def broadcast(self, event: str, data: dict[str, Any]) -> None: ...


class SessionTransport(Protocol):
    """Targets a single session. A session that is gone is a no-op, not an error."""

    async def send(self, session_id: str, event: str, data: dict[str, Any]) -> bool: ...

    async def close(self, session_id: str, *, reason: str = "") -> None: ...
