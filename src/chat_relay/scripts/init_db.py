"""One-time script: create the messages and users tables."""
from __future__ import annotations

import asyncio
import logging

from chat_relay.infrastructure.db.base import Base
from chat_relay.infrastructure.db.models import MessageModel, UserModel  # noqa: F401
from chat_relay.infrastructure.db.session import engine

logger = logging.getLogger(__name__)


async def create_tables() -> None:
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Created tables: %s", ", ".join(sorted(Base.metadata.tables)))
    finally:
        await engine.dispose()


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    asyncio.run(create_tables())


if __name__ == "__main__":
    main()
