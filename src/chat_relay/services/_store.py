from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator

from chat_relay.application.exceptions import StoreError
from chat_relay.application.uow import UnitOfWork, UoWFactory


@asynccontextmanager
async def store_scope(factory: UoWFactory, timeout: float) -> AsyncIterator[UnitOfWork]:
    """Open a unit of work whose whole body is bounded by ``timeout`` seconds."""
    try:
        async with asyncio.timeout(timeout):
            async with factory() as uow:
                yield uow
    except TimeoutError as exc:
        raise StoreError(f"Durable store did not respond within {timeout:g}s") from exc
