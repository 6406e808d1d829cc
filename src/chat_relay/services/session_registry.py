"""Live session bookkeeping: username binding, eviction and liveness probes."""
from __future__ import annotations

import asyncio
import logging
import weakref

from chat_relay.application.exceptions import (
    AlreadyBoundError,
    AlreadyOnlineError,
    NotFoundError,
)
from chat_relay.application.ports.bus import SessionTransport
from chat_relay.application.ports.clock import Clock, SystemClock
from chat_relay.domain.entities.session import Session

logger = logging.getLogger(__name__)

FORCED_LOGOUT_EVENT = "forced-logout"
PING_EVENT = "ping"


class SessionRegistry:
    """Maps session ids to sessions and usernames to their single bound session.

    All bookkeeping mutations are synchronous, so no other coroutine can
    observe a half-applied bind, unbind or eviction.
    """

    def __init__(self, transport: SessionTransport, *, clock: Clock | None = None) -> None:
        self._transport = transport
        self._clock = clock or SystemClock()
        self._sessions: dict[str, Session] = {}
        self._bound: dict[str, str] = {}
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def register(self, session_id: str) -> Session:
        session = Session(id=session_id, connected_at=self._clock.now())
        self._sessions[session_id] = session
        return session

    def get(self, session_id: str) -> Session | None:
        return self._sessions.get(session_id)

    def lookup(self, username: str) -> Session | None:
        session_id = self._bound.get(username)
        return self._sessions.get(session_id) if session_id else None

    def bound_usernames(self) -> set[str]:
        return set(self._bound)

    def __len__(self) -> int:
        return len(self._sessions)

    def login_lock(self, username: str) -> asyncio.Lock:
        """Per-username lock; dropped automatically once nobody holds it."""
        lock = self._locks.get(username)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[username] = lock
        return lock

    def bind(self, session_id: str, username: str) -> Session:
        session = self._sessions.get(session_id)
        if session is None:
            raise NotFoundError(f"Session {session_id} is not connected")
        if session.username is not None and session.username != username:
            raise AlreadyBoundError(
                f"Session is already logged in as {session.username}"
            )
        current = self._bound.get(username)
        if current is not None and current != session_id:
            raise AlreadyOnlineError(f"{username} is already online")
        session.username = username
        self._bound[username] = session_id
        return session

    def release(self, session_id: str) -> None:
        """Unbind a session's username but keep the session registered."""
        session = self._sessions.get(session_id)
        if session is None or session.username is None:
            return
        if self._bound.get(session.username) == session_id:
            del self._bound[session.username]
        session.username = None

    def unregister(self, session_id: str) -> Session | None:
        session = self._sessions.pop(session_id, None)
        if session is not None and session.username is not None:
            if self._bound.get(session.username) == session_id:
                del self._bound[session.username]
        return session

    async def evict(
        self, username: str, *, reason: str = "Logged in from another session"
    ) -> Session | None:
        session_id = self._bound.pop(username, None)
        if session_id is None:
            return None
        session = self._sessions.get(session_id)
        if session is not None:
            session.username = None
        logger.info("Evicting session %s bound to %s", session_id, username)
        await self._transport.send(session_id, FORCED_LOGOUT_EVENT, {"reason": reason})
        await self._transport.close(session_id, reason=reason)
        return session

    def acknowledge(self, session_id: str) -> None:
        session = self._sessions.get(session_id)
        if session is not None:
            session.missed_heartbeats = 0

    async def watch_liveness(
        self, session_id: str, *, interval: float, max_missed: int
    ) -> None:
        """Probe the session every ``interval`` seconds.

        Returns once the session is gone, or after closing it when
        ``max_missed`` consecutive probes went unanswered.
        """
        while True:
            await asyncio.sleep(interval)
            session = self._sessions.get(session_id)
            if session is None:
                return
            if session.missed_heartbeats >= max_missed:
                logger.info(
                    "Session %s missed %d heartbeats, disconnecting",
                    session_id,
                    session.missed_heartbeats,
                )
                await self._transport.close(session_id, reason="heartbeat timeout")
                return
            session.missed_heartbeats += 1
            await self._transport.send(session_id, PING_EVENT, {})
