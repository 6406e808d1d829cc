from __future__ import annotations

from datetime import datetime
from typing import Protocol

from chat_relay.domain.entities.user import User


class UserReader(Protocol):
    async def get(self, username: str) -> User | None: ...

    async def list_stale_online(self, last_seen_before: datetime) -> list[User]: ...


class UserWriter(Protocol):
    async def upsert_online(
        self, username: str, session_id: str, now: datetime
    ) -> User: ...

    async def mark_offline(self, usernames: list[str], now: datetime) -> None: ...

    async def touch(self, usernames: list[str], now: datetime) -> None:
        """Refresh ``last_seen`` of the given users that are still online."""
        ...
