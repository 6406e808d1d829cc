"""Presence sweeper: periodically forces offline users whose process died without a disconnect."""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from chat_relay.services.presence_service import PresenceTracker

logger = logging.getLogger(__name__)


class PresenceSweeper:
    """Background tasks around ``PresenceTracker``.

    ``sweep`` runs once at start, then every ``interval``. ``refresh`` runs
    every ``refresh_interval`` so users bound here stay fresh for the sweep
    of other processes.
    """

    def __init__(
        self,
        presence: PresenceTracker,
        interval: float,
        *,
        refresh_interval: float | None = None,
    ) -> None:
        self._presence = presence
        self._interval = interval
        self._refresh_interval = refresh_interval
        self._tasks: list[asyncio.Task[None]] = []

    async def start(self) -> None:
        self._tasks.append(
            asyncio.create_task(
                self._loop(self._presence.sweep, self._interval, "sweep"),
                name="presence-sweeper",
            )
        )
        if self._refresh_interval:
            self._tasks.append(
                asyncio.create_task(
                    self._loop(self._presence.refresh, self._refresh_interval, "refresh"),
                    name="presence-refresher",
                )
            )
        logger.info(
            "Presence sweeper started (interval=%.0fs, refresh=%s)",
            self._interval,
            f"{self._refresh_interval:.0f}s" if self._refresh_interval else "off",
        )

    async def stop(self) -> None:
        if not self._tasks:
            return
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
        logger.info("Presence sweeper stopped")

    async def _loop(
        self, step: Callable[[], Awaitable[object]], interval: float, label: str
    ) -> None:
        while True:
            try:
                await step()
            except Exception:
                logger.exception("Presence %s failed", label)
            await asyncio.sleep(interval)
