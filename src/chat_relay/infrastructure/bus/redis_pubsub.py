"""Redis Pub/Sub: publish side, fan-out broadcaster and subscriber background task."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Coroutine

import redis.asyncio as aioredis

from chat_relay.application.ports.bus import EventPublisher
from chat_relay.infrastructure.bus.serializer import decode_envelope, encode_envelope

logger = logging.getLogger(__name__)


class RedisPubSubPublisher:
    """Implements application.ports.bus.EventPublisher."""

    def __init__(self, redis: aioredis.Redis) -> None:
        self._redis = redis

    async def publish(self, channel: str, payload: dict[str, Any]) -> None:
        raw = encode_envelope(payload["event"], payload.get("data", {}))
        await self._redis.publish(channel, raw)


class RedisFanoutBroadcaster:
    """Broadcaster that reaches every process subscribed to the channel.

    Delivery is best effort: a publish failure is logged, never raised.
    """

    def __init__(self, publisher: EventPublisher, channel: str) -> None:
        self._publisher = publisher
        self._channel = channel

    async def broadcast(self, event: str, data: dict[str, Any]) -> None:
        try:
            await self._publisher.publish(self._channel, {"event": event, "data": data})
        except aioredis.RedisError:
            logger.exception("Failed to publish %s to %s", event, self._channel)


OnEventCallback = Callable[[str, dict[str, Any]], Coroutine[Any, Any, None]]


class RedisPubSubSubscriber:
    """Background task that listens to a Redis channel and dispatches events."""

    def __init__(
        self,
        redis: aioredis.Redis,
        channel: str,
        callback: OnEventCallback,
    ) -> None:
        self._redis = redis
        self._channel = channel
        self._callback = callback
        self._task: asyncio.Task[None] | None = None

    async def start(self) -> None:
        self._task = asyncio.create_task(self._listen(), name="redis-pubsub-subscriber")
        logger.info("Redis Pub/Sub subscriber started on channel=%s", self._channel)

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            logger.info("Redis Pub/Sub subscriber stopped")

    async def _listen(self) -> None:
        pubsub = self._redis.pubsub()
        await pubsub.subscribe(self._channel)
        try:
            async for message in pubsub.listen():
                if message["type"] != "message":
                    continue
                try:
                    event_type, data = decode_envelope(message["data"])
                    await self._callback(event_type, data)
                except Exception:
                    logger.exception("Error processing pubsub message")
        finally:
            await pubsub.unsubscribe(self._channel)
            await pubsub.aclose()
