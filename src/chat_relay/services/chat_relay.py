"""Per-session entry points: connect, login, disconnect and username checks."""
from __future__ import annotations

import logging
from dataclasses import dataclass

from chat_relay.application.dto.payloads import message_payload, typing_payload
from chat_relay.application.exceptions import (
    AlreadyBoundError,
    AlreadyOnlineError,
    AppError,
    MissingSenderError,
    NotFoundError,
)
from chat_relay.application.policies.validation import is_valid_username, normalize_username
from chat_relay.application.ports.bus import SessionTransport
from chat_relay.domain.entities.session import Session
from chat_relay.services.message_service import MessagePipeline
from chat_relay.services.presence_service import PresenceTracker
from chat_relay.services.session_registry import SessionRegistry
from chat_relay.services.typing_service import TYPING_UPDATE_EVENT, TypingTracker

logger = logging.getLogger(__name__)

MESSAGE_HISTORY_EVENT = "messageHistory"
ONLINE_USERS_EVENT = "onlineUsers"


@dataclass(frozen=True, slots=True)
class UsernameCheck:
    valid: bool
    exists: bool
    online: bool
    can_take_over: bool


class ChatRelay:
    def __init__(
        self,
        registry: SessionRegistry,
        presence: PresenceTracker,
        typing: TypingTracker,
        pipeline: MessagePipeline,
        transport: SessionTransport,
    ) -> None:
        self.registry = registry
        self.presence = presence
        self.typing = typing
        self.pipeline = pipeline
        self._transport = transport

    async def connect(self, session_id: str) -> Session:
        """Register the session and push the state a new client needs to render."""
        session = self.registry.register(session_id)
        try:
            history = await self.pipeline.history()
        except AppError:
            logger.warning("Could not load history for session %s", session_id, exc_info=True)
        else:
            await self._transport.send(
                session_id,
                MESSAGE_HISTORY_EVENT,
                {"messages": [message_payload(m) for m in history]},
            )
        await self._transport.send(
            session_id, ONLINE_USERS_EVENT, {"onlineUsers": self.presence.snapshot()}
        )
        await self._transport.send(
            session_id, TYPING_UPDATE_EVENT, typing_payload(self.typing.snapshot())
        )
        return session

    async def login(self, session_id: str, username: str | None, *, force: bool = False) -> str:
        """Bind ``username`` to the session, evicting an older session if forced.

        Check, eviction, bind and persistence run under the username's lock so
        two concurrent logins can never both end up bound.
        """
        username = normalize_username(username)
        async with self.registry.login_lock(username):
            session = self.registry.get(session_id)
            if session is None:
                raise NotFoundError(f"Session {session_id} is not connected")
            if session.username == username:
                return username
            if session.username is not None:
                raise AlreadyBoundError(f"Session is already logged in as {session.username}")

            existing = self.registry.lookup(username)
            if existing is not None:
                if not force:
                    raise AlreadyOnlineError(f"{username} is already online")
                await self.registry.evict(username)

            self.registry.bind(session_id, username)
            try:
                await self.presence.mark_online(username, session_id)
            except AppError:
                self.registry.release(session_id)
                raise
        logger.info("Session %s logged in as %s (force=%s)", session_id, username, force)
        return username

    async def check_username(self, username: str | None) -> UsernameCheck:
        if not is_valid_username(username):
            return UsernameCheck(valid=False, exists=False, online=False, can_take_over=False)
        username = normalize_username(username)
        user = await self.presence.get_user(username)
        online = self.registry.lookup(username) is not None
        return UsernameCheck(
            valid=True,
            exists=user is not None,
            online=online,
            can_take_over=online,
        )

    def resolve_username(self, session_id: str, username: str | None) -> str:
        """Use the payload's username, falling back to the one bound to the session."""
        if username and username.strip():
            return normalize_username(username)
        session = self.registry.get(session_id)
        if session is None or session.username is None:
            raise MissingSenderError("Username is required")
        return session.username

    def acknowledge(self, session_id: str) -> None:
        self.registry.acknowledge(session_id)

    async def disconnect(self, session_id: str, reason: str = "") -> None:
        session = self.registry.unregister(session_id)
        if session is None:
            return
        logger.info("Session %s disconnected (%s)", session_id, reason or "client")
        username = session.username
        if username is None:
            return
        async with self.registry.login_lock(username):
            await self.typing.discard(username)
            if self.registry.lookup(username) is not None:
                # Already re-bound by a newer login.
                return
            await self.presence.mark_offline(username)
