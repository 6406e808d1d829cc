from __future__ import annotations

from sqlalchemy import Select, delete, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from chat_relay.domain.entities.message import Message
from chat_relay.domain.value_objects.enums import MessageStatus
from chat_relay.infrastructure.db.mappers import message as mapper
from chat_relay.infrastructure.db.models.message import MessageModel


def recent_messages_stmt(limit: int, skip: int = 0) -> Select[tuple[MessageModel]]:
    """Newest first; equal timestamps fall back to insertion order."""
    return (
        select(MessageModel)
        .order_by(MessageModel.timestamp.desc(), MessageModel.seq.desc())
        .offset(skip)
        .limit(limit)
    )


class MessageReaderRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, message_id: str) -> Message | None:
        model = await self._session.get(MessageModel, message_id)
        return mapper.model_to_entity(model) if model else None

    async def list_recent(self, *, limit: int, skip: int = 0) -> list[Message]:
        result = await self._session.execute(recent_messages_stmt(limit, skip))
        return [mapper.model_to_entity(m) for m in result.scalars().all()]


class MessageWriterRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def insert_if_absent(self, message: Message) -> bool:
        """Insert message; False if a row with the same id already exists."""
        stmt = (
            pg_insert(MessageModel)
            .values(**mapper.entity_to_values(message))
            .on_conflict_do_nothing(index_elements=[MessageModel.id])
            .returning(MessageModel.id)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none() is not None

    async def update_status(
        self, message_id: str, status: MessageStatus
    ) -> Message | None:
        stmt = (
            update(MessageModel)
            .where(MessageModel.id == message_id)
            .values(status=status.value)
            .returning(MessageModel)
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return mapper.model_to_entity(model) if model else None

    async def delete(self, message_id: str) -> bool:
        stmt = (
            delete(MessageModel)
            .where(MessageModel.id == message_id)
            .returning(MessageModel.id)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none() is not None
