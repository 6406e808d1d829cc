"""Shared test fixtures."""
from __future__ import annotations

import asyncio
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import Any, AsyncIterator

import pytest

from chat_relay.application.uow import UoWFactory
from chat_relay.domain.entities.message import FileAttachment, Message
from chat_relay.domain.entities.user import User
from chat_relay.domain.value_objects.enums import MessageStatus
from chat_relay.services.chat_relay import ChatRelay
from chat_relay.services.message_service import MessagePipeline
from chat_relay.services.presence_service import PresenceTracker
from chat_relay.services.session_registry import SessionRegistry
from chat_relay.services.typing_service import TypingTracker

T0 = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def make_message(
    *,
    message_id: str | None = None,
    username: str = "alice",
    text: str | None = "hello",
    file: FileAttachment | None = None,
    timestamp: datetime | None = None,
    status: MessageStatus = MessageStatus.SENT,
) -> Message:
    return Message(
        id=message_id or uuid.uuid4().hex,
        username=username,
        text=text,
        file=file,
        timestamp=timestamp or T0,
        status=status,
    )


def make_file(size: int = 1024) -> FileAttachment:
    return FileAttachment(name="report.pdf", media_type="application/pdf", size=size, data="")


@dataclass
class ManualClock:
    current: datetime = T0

    def now(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)


@dataclass
class FakeMessageReader:
    _messages: list[Message] = field(default_factory=list)

    async def get(self, message_id: str) -> Message | None:
        return next((m for m in self._messages if m.id == message_id), None)

    async def list_recent(self, *, limit: int, skip: int = 0) -> list[Message]:
        newest_first = list(reversed(self._messages))
        return newest_first[skip : skip + limit]


@dataclass
class FakeMessageWriter:
    _reader: FakeMessageReader

    async def insert_if_absent(self, message: Message) -> bool:
        if await self._reader.get(message.id) is not None:
            return False
        self._reader._messages.append(message)
        return True

    async def update_status(self, message_id: str, status: MessageStatus) -> Message | None:
        for i, m in enumerate(self._reader._messages):
            if m.id == message_id:
                updated = replace(m, status=status)
                self._reader._messages[i] = updated
                return updated
        return None

    async def delete(self, message_id: str) -> bool:
        before = len(self._reader._messages)
        self._reader._messages = [m for m in self._reader._messages if m.id != message_id]
        return len(self._reader._messages) < before


@dataclass
class FakeUserReader:
    _users: dict[str, User] = field(default_factory=dict)

    async def get(self, username: str) -> User | None:
        return self._users.get(username)

    async def list_stale_online(self, last_seen_before: datetime) -> list[User]:
        return [u for u in self._users.values() if u.online and u.last_seen < last_seen_before]


@dataclass
class FakeUserWriter:
    _reader: FakeUserReader

    async def upsert_online(self, username: str, session_id: str, now: datetime) -> User:
        user = User(username=username, online=True, last_seen=now, session_id=session_id)
        self._reader._users[username] = user
        return user

    async def mark_offline(self, usernames: list[str], now: datetime) -> None:
        for username in usernames:
            if username in self._reader._users:
                self._reader._users[username] = User(
                    username=username, online=False, last_seen=now, session_id=None
                )

    async def touch(self, usernames: list[str], now: datetime) -> None:
        for username in usernames:
            user = self._reader._users.get(username)
            if user is not None and user.online:
                self._reader._users[username] = replace(user, last_seen=now)


@dataclass
class FakeUoW:
    """In-memory UoW for unit tests.

    ``fail_next`` is consumed one entry per opened scope: an exception entry
    is raised instead of yielding, ``None`` lets the scope through.
    ``delay`` stalls every scope before it yields.
    """

    messages: FakeMessageReader = field(default_factory=FakeMessageReader)
    messages_w: FakeMessageWriter | None = None
    users: FakeUserReader = field(default_factory=FakeUserReader)
    users_w: FakeUserWriter | None = None
    commits: int = 0
    fail_next: list[BaseException | None] = field(default_factory=list)
    delay: float = 0.0

    def __post_init__(self) -> None:
        if self.messages_w is None:
            self.messages_w = FakeMessageWriter(self.messages)
        if self.users_w is None:
            self.users_w = FakeUserWriter(self.users)

    async def flush(self) -> None:
        pass

    async def commit(self) -> None:
        self.commits += 1

    async def rollback(self) -> None:
        pass


def uow_factory_for(uow: FakeUoW) -> UoWFactory:
    @asynccontextmanager
    async def factory() -> AsyncIterator[FakeUoW]:
        if uow.fail_next:
            failure = uow.fail_next.pop(0)
            if failure is not None:
                raise failure
        if uow.delay:
            await asyncio.sleep(uow.delay)
        yield uow

    return factory


@dataclass
class FakeBroadcaster:
    events: list[tuple[str, dict[str, Any]]] = field(default_factory=list)

    async def broadcast(self, event: str, data: dict[str, Any]) -> None:
        self.events.append((event, data))

    def of(self, event: str) -> list[dict[str, Any]]:
        return [data for name, data in self.events if name == event]

    def names(self) -> list[str]:
        return [name for name, _ in self.events]


@dataclass
class FakeTransport:
    sent: list[tuple[str, str, dict[str, Any]]] = field(default_factory=list)
    closed: list[tuple[str, str]] = field(default_factory=list)
    # Chronological log of ("send", session, event) and ("close", session, reason).
    log: list[tuple[str, str, str]] = field(default_factory=list)

    async def send(self, session_id: str, event: str, data: dict[str, Any]) -> bool:
        if any(sid == session_id for sid, _ in self.closed):
            return False
        self.sent.append((session_id, event, data))
        self.log.append(("send", session_id, event))
        return True

    async def close(self, session_id: str, *, reason: str = "") -> None:
        self.closed.append((session_id, reason))
        self.log.append(("close", session_id, reason))

    def events_for(self, session_id: str) -> list[str]:
        return [event for sid, event, _ in self.sent if sid == session_id]


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def uow() -> FakeUoW:
    return FakeUoW()


@pytest.fixture
def broadcaster() -> FakeBroadcaster:
    return FakeBroadcaster()


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def registry(transport: FakeTransport, clock: ManualClock) -> SessionRegistry:
    return SessionRegistry(transport, clock=clock)


@pytest.fixture
def typing_tracker(broadcaster: FakeBroadcaster) -> TypingTracker:
    return TypingTracker(broadcaster)


@pytest.fixture
def presence(
    uow: FakeUoW,
    broadcaster: FakeBroadcaster,
    registry: SessionRegistry,
    clock: ManualClock,
) -> PresenceTracker:
    return PresenceTracker(
        uow_factory_for(uow), broadcaster, registry, clock=clock, store_timeout=1.0,
    )


@pytest.fixture
def pipeline(
    uow: FakeUoW,
    broadcaster: FakeBroadcaster,
    typing_tracker: TypingTracker,
    clock: ManualClock,
) -> MessagePipeline:
    return MessagePipeline(
        uow_factory_for(uow), broadcaster, typing_tracker, clock=clock, store_timeout=1.0,
    )


@pytest.fixture
def relay(
    registry: SessionRegistry,
    presence: PresenceTracker,
    typing_tracker: TypingTracker,
    pipeline: MessagePipeline,
    transport: FakeTransport,
) -> ChatRelay:
    return ChatRelay(registry, presence, typing_tracker, pipeline, transport)
