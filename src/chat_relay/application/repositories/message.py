from __future__ import annotations

from typing import Protocol

from chat_relay.domain.entities.message import Message
from chat_relay.domain.value_objects.enums import MessageStatus


class MessageReader(Protocol):
    async def get(self, message_id: str) -> Message | None: ...

    async def list_recent(self, *, limit: int, skip: int = 0) -> list[Message]:
        """Newest first."""
        ...


class MessageWriter(Protocol):
    async def insert_if_absent(self, message: Message) -> bool:
        """Insert message. Return False (and write nothing) if the id is taken."""
        ...

    async def update_status(
        self, message_id: str, status: MessageStatus
    ) -> Message | None: ...

    async def delete(self, message_id: str) -> bool: ...
