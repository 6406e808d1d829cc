from __future__ import annotations

from chat_relay.application.dto.payloads import typing_payload
from chat_relay.application.ports.bus import Broadcaster

TYPING_UPDATE_EVENT = "typingUpdate"


class TypingTracker:
    """Process-wide set of usernames currently composing a message."""

    def __init__(self, broadcaster: Broadcaster) -> None:
        self._broadcaster = broadcaster
        self._typing: dict[str, None] = {}

    def snapshot(self) -> list[str]:
        return list(self._typing)

    def __contains__(self, username: object) -> bool:
        return username in self._typing

    async def start(self, username: str) -> None:
        self._typing[username] = None
        await self._publish()

    async def stop(self, username: str) -> None:
        self._typing.pop(username, None)
        await self._publish()

    async def discard(self, username: str) -> bool:
        if username not in self._typing:
            return False
        del self._typing[username]
        await self._publish()
        return True

    async def _publish(self) -> None:
        await self._broadcaster.broadcast(TYPING_UPDATE_EVENT, typing_payload(self.snapshot()))
