"""Online/offline state, last-seen persistence and stale-record reconciliation."""
from __future__ import annotations

import logging
from datetime import timedelta

from chat_relay.application.exceptions import StoreError
from chat_relay.application.ports.bus import Broadcaster
from chat_relay.application.ports.clock import Clock, SystemClock
from chat_relay.application.uow import UoWFactory
from chat_relay.domain.entities.user import User
from chat_relay.domain.events.presence_changed import PresenceChanged
from chat_relay.domain.value_objects.enums import PresenceEventType
from chat_relay.services._store import store_scope
from chat_relay.services.session_registry import SessionRegistry

logger = logging.getLogger(__name__)

PRESENCE_UPDATE_EVENT = "presenceUpdate"


class PresenceTracker:
    def __init__(
        self,
        uow_factory: UoWFactory,
        broadcaster: Broadcaster,
        registry: SessionRegistry,
        *,
        clock: Clock | None = None,
        store_timeout: float = 20.0,
        stale_after: float = 60.0,
    ) -> None:
        self._uow_factory = uow_factory
        self._broadcaster = broadcaster
        self._registry = registry
        self._clock = clock or SystemClock()
        self._store_timeout = store_timeout
        self._stale_after = timedelta(seconds=stale_after)
        self._online: dict[str, None] = {}

    def snapshot(self) -> list[str]:
        return list(self._online)

    def is_online(self, username: str) -> bool:
        return username in self._online

    async def get_user(self, username: str) -> User | None:
        async with store_scope(self._uow_factory, self._store_timeout) as uow:
            return await uow.users.get(username)

    async def mark_online(self, username: str, session_id: str) -> User:
        now = self._clock.now()
        async with store_scope(self._uow_factory, self._store_timeout) as uow:
            user = await uow.users_w.upsert_online(username, session_id, now)
            await uow.commit()
        self._online[username] = None
        logger.info("%s is online (session=%s)", username, session_id)
        await self._publish(PresenceEventType.LOGIN, [username])
        return user

    async def mark_offline(self, username: str) -> bool:
        """Return False when the username was not online, so no event is sent twice."""
        if username not in self._online:
            return False
        del self._online[username]
        now = self._clock.now()
        try:
            async with store_scope(self._uow_factory, self._store_timeout) as uow:
                await uow.users_w.mark_offline([username], now)
                await uow.commit()
        except StoreError:
            # The stale sweep reconciles the record later.
            logger.warning("Could not persist offline state for %s", username, exc_info=True)
        logger.info("%s is offline", username)
        await self._publish(PresenceEventType.LOGOUT, [username])
        return True

    async def refresh(self) -> list[str]:
        """Persist a last-seen heartbeat for every username bound in this process.

        Keeps live users fresh for the stale sweep of every process sharing the store.
        """
        usernames = sorted(self._registry.bound_usernames())
        if not usernames:
            return []
        async with store_scope(self._uow_factory, self._store_timeout) as uow:
            await uow.users_w.touch(usernames, self._clock.now())
            await uow.commit()
        logger.debug("Refreshed last seen for %d users", len(usernames))
        return usernames

    async def sweep(self) -> list[str]:
        """Force offline persisted users that claim to be online without a live session."""
        now = self._clock.now()
        cutoff = now - self._stale_after
        async with store_scope(self._uow_factory, self._store_timeout) as uow:
            stale = await uow.users.list_stale_online(cutoff)
            usernames = [
                u.username for u in stale if self._registry.lookup(u.username) is None
            ]
            if not usernames:
                return []
            await uow.users_w.mark_offline(usernames, now)
            await uow.commit()
        for username in usernames:
            self._online.pop(username, None)
        logger.info("Presence sweep cleaned up %d stale users: %s", len(usernames), usernames)
        await self._publish(PresenceEventType.CLEANUP, usernames)
        return usernames

    async def _publish(self, event_type: PresenceEventType, usernames: list[str]) -> None:
        event = PresenceChanged(
            type=event_type,
            usernames=tuple(usernames),
            online_users=tuple(self._online),
            timestamp=self._clock.now(),
        )
        await self._broadcaster.broadcast(PRESENCE_UPDATE_EVENT, event.to_payload())
