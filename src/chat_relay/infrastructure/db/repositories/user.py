from __future__ import annotations

from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from chat_relay.domain.entities.user import User
from chat_relay.infrastructure.db.mappers import user as mapper
from chat_relay.infrastructure.db.models.user import UserModel


class UserReaderRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, username: str) -> User | None:
        model = await self._session.get(UserModel, username)
        return mapper.model_to_entity(model) if model else None

    async def list_stale_online(self, last_seen_before: datetime) -> list[User]:
        stmt = (
            select(UserModel)
            .where(
                UserModel.online.is_(True),
                UserModel.last_seen < last_seen_before,
            )
            .order_by(UserModel.last_seen.asc())
        )
        result = await self._session.execute(stmt)
        return [mapper.model_to_entity(m) for m in result.scalars().all()]


class UserWriterRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def upsert_online(
        self, username: str, session_id: str, now: datetime
    ) -> User:
        stmt = (
            pg_insert(UserModel)
            .values(username=username, online=True, last_seen=now, session_id=session_id)
            .on_conflict_do_update(
                index_elements=[UserModel.username],
                set_={"online": True, "last_seen": now, "session_id": session_id},
            )
            .returning(UserModel)
        )
        result = await self._session.execute(stmt)
        return mapper.model_to_entity(result.scalar_one())

    async def mark_offline(self, usernames: list[str], now: datetime) -> None:
        if not usernames:
            return
        stmt = (
            update(UserModel)
            .where(UserModel.username.in_(usernames))
            .values(online=False, last_seen=now, session_id=None)
        )
        await self._session.execute(stmt)

    async def touch(self, usernames: list[str], now: datetime) -> None:
        if not usernames:
            return
        stmt = (
            update(UserModel)
            .where(UserModel.username.in_(usernames), UserModel.online.is_(True))
            .values(last_seen=now)
        )
        await self._session.execute(stmt)
