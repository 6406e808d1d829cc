from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

import redis.asyncio as aioredis
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from chat_relay.api.middleware.correlation_id import CorrelationIdMiddleware
from chat_relay.api.middleware.metrics import RequestTimingMiddleware
from chat_relay.api.v1.routers import health, messages, presence, ws
from chat_relay.application.exceptions import (
    ConflictError,
    NotFoundError,
    StoreError,
    ValidationError,
)
from chat_relay.application.ports.bus import Broadcaster, SessionTransport
from chat_relay.application.uow import UoWFactory
from chat_relay.config import settings
from chat_relay.infrastructure.bus.redis_pubsub import (
    RedisFanoutBroadcaster,
    RedisPubSubPublisher,
    RedisPubSubSubscriber,
)
from chat_relay.infrastructure.db.uow import sqlalchemy_uow
from chat_relay.infrastructure.ws.manager import ConnectionManager
from chat_relay.services.chat_relay import ChatRelay
from chat_relay.services.message_service import MessagePipeline
from chat_relay.services.presence_service import PresenceTracker
from chat_relay.services.session_registry import SessionRegistry
from chat_relay.services.typing_service import TypingTracker
from chat_relay.workers.presence_sweeper import PresenceSweeper

logger = logging.getLogger(__name__)


def build_relay(
    uow_factory: UoWFactory,
    broadcaster: Broadcaster,
    transport: SessionTransport,
) -> ChatRelay:
    registry = SessionRegistry(transport)
    typing = TypingTracker(broadcaster)
    presence = PresenceTracker(
        uow_factory,
        broadcaster,
        registry,
        store_timeout=settings.STORE_TIMEOUT_SECONDS,
        stale_after=settings.PRESENCE_STALE_AFTER_SECONDS,
    )
    pipeline = MessagePipeline(
        uow_factory,
        broadcaster,
        typing,
        store_timeout=settings.STORE_TIMEOUT_SECONDS,
        max_text_length=settings.MAX_MESSAGE_LENGTH,
        max_file_bytes=settings.MAX_FILE_BYTES,
        history_default_limit=settings.HISTORY_DEFAULT_LIMIT,
        history_max_limit=settings.HISTORY_MAX_LIMIT,
        client_timestamp_max_age=settings.CLIENT_TIMESTAMP_MAX_AGE_SECONDS,
        client_timestamp_max_skew=settings.CLIENT_TIMESTAMP_MAX_SKEW_SECONDS,
    )
    return ChatRelay(registry, presence, typing, pipeline, transport)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Startup / shutdown lifecycle."""
    manager = ConnectionManager()
    app.state.manager = manager

    broadcaster: Broadcaster = manager
    subscriber: RedisPubSubSubscriber | None = None
    if settings.FANOUT_MODE == "redis":
        app.state.redis = aioredis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
        )
        logger.info("Redis connection pool created")
        broadcaster = RedisFanoutBroadcaster(
            RedisPubSubPublisher(app.state.redis),
            settings.REDIS_PUBSUB_CHANNEL,
        )
        subscriber = RedisPubSubSubscriber(
            app.state.redis,
            settings.REDIS_PUBSUB_CHANNEL,
            manager.broadcast,
        )
        await subscriber.start()

    relay = build_relay(app.state.uow_factory, broadcaster, manager)
    app.state.relay = relay

    sweeper = PresenceSweeper(
        relay.presence,
        settings.PRESENCE_SWEEP_INTERVAL_SECONDS,
        refresh_interval=settings.PRESENCE_REFRESH_INTERVAL_SECONDS,
    )
    await sweeper.start()

    yield

    await sweeper.stop()
    if subscriber is not None:
        await subscriber.stop()
        await app.state.redis.aclose()
        logger.info("Redis connection pool closed")


def create_app(uow_factory: UoWFactory | None = None) -> FastAPI:
    app = FastAPI(
        title="Chat Relay",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.uow_factory = uow_factory or sqlalchemy_uow

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestTimingMiddleware)
    app.add_middleware(CorrelationIdMiddleware)

    _register_exception_handlers(app)

    app.include_router(health.router)
    app.include_router(messages.router)
    app.include_router(presence.router)
    app.include_router(ws.router)

    return app


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(NotFoundError)
    async def _not_found(_req: Request, exc: NotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": exc.detail})

    @app.exception_handler(ConflictError)
    async def _conflict(_req: Request, exc: ConflictError) -> JSONResponse:
        return JSONResponse(status_code=409, content={"detail": exc.detail})

    @app.exception_handler(ValidationError)
    async def _validation(_req: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse(status_code=422, content={"detail": exc.detail})

    @app.exception_handler(StoreError)
    async def _store(_req: Request, exc: StoreError) -> JSONResponse:
        return JSONResponse(status_code=503, content={"detail": exc.detail})
