from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timedelta, timezone

from chat_relay.application.dto.payloads import message_payload, status_payload
from chat_relay.application.exceptions import NotFoundError, StoreError, ValidationError
from chat_relay.application.policies.validation import (
    MAX_FILE_BYTES,
    MAX_MESSAGE_LENGTH,
    assert_sendable,
)
from chat_relay.application.ports.bus import Broadcaster
from chat_relay.application.ports.clock import Clock, SystemClock
from chat_relay.application.uow import UnitOfWork, UoWFactory
from chat_relay.domain.entities.message import FileAttachment, Message
from chat_relay.domain.value_objects.enums import MessageStatus
from chat_relay.domain.value_objects.ids import new_message_id
from chat_relay.services._store import store_scope
from chat_relay.services.typing_service import TypingTracker

logger = logging.getLogger(__name__)

NEW_MESSAGE_EVENT = "newMessage"
STATUS_UPDATE_EVENT = "statusUpdate"
MESSAGE_DELETED_EVENT = "messageDeleted"


class MessagePipeline:
    """Validate, persist, then broadcast chat messages.

    Persistence always precedes broadcast: a message that failed to persist
    is never visible to other sessions.
    """

    def __init__(
        self,
        uow_factory: UoWFactory,
        broadcaster: Broadcaster,
        typing: TypingTracker,
        *,
        clock: Clock | None = None,
        store_timeout: float = 20.0,
        max_text_length: int = MAX_MESSAGE_LENGTH,
        max_file_bytes: int = MAX_FILE_BYTES,
        history_default_limit: int = 50,
        history_max_limit: int = 100,
        client_timestamp_max_age: float = 300.0,
        client_timestamp_max_skew: float = 5.0,
    ) -> None:
        self._uow_factory = uow_factory
        self._broadcaster = broadcaster
        self._typing = typing
        self._clock = clock or SystemClock()
        self._store_timeout = store_timeout
        self._max_text_length = max_text_length
        self._max_file_bytes = max_file_bytes
        self._history_default_limit = history_default_limit
        self._history_max_limit = history_max_limit
        self._client_ts_max_age = timedelta(seconds=client_timestamp_max_age)
        self._client_ts_max_skew = timedelta(seconds=client_timestamp_max_skew)

    async def send(
        self,
        sender: str | None,
        text: str | None = None,
        file: FileAttachment | None = None,
        *,
        client_id: str | None = None,
        client_timestamp: datetime | None = None,
    ) -> Message:
        if text is not None and not text.strip():
            text = None
        username = assert_sendable(
            sender,
            text,
            file,
            max_text_length=self._max_text_length,
            max_file_bytes=self._max_file_bytes,
        )

        now = self._clock.now()
        msg = Message(
            id=client_id or new_message_id(),
            username=username,
            text=text,
            file=file,
            timestamp=now,
            status=MessageStatus.SENDING,
            client_timestamp=self._accept_client_timestamp(client_timestamp, now),
        )

        async with store_scope(self._uow_factory, self._store_timeout) as uow:
            msg = await self._insert(uow, msg)
            await uow.commit()

        await self._broadcaster.broadcast(NEW_MESSAGE_EVENT, message_payload(msg))

        try:
            async with store_scope(self._uow_factory, self._store_timeout) as uow:
                sent = await uow.messages_w.update_status(msg.id, MessageStatus.SENT)
                await uow.commit()
        except StoreError:
            logger.warning("Message %s persisted but status stuck at sending", msg.id, exc_info=True)
        else:
            if sent is not None:
                msg = sent
                await self._broadcaster.broadcast(STATUS_UPDATE_EVENT, status_payload(msg))

        await self._typing.stop(msg.username)
        return msg

    async def _insert(self, uow: UnitOfWork, msg: Message) -> Message:
        """Keep a client-supplied id unless a persisted message already owns it."""
        if await uow.messages.get(msg.id) is not None:
            logger.debug("Client id %s already used, assigning a fresh id", msg.id)
            msg = replace(msg, id=new_message_id())
        while not await uow.messages_w.insert_if_absent(msg):
            msg = replace(msg, id=new_message_id())
        return msg

    def _accept_client_timestamp(
        self, client_timestamp: datetime | None, now: datetime
    ) -> datetime | None:
        """Client clocks are a display hint only; drop future or old values."""
        if client_timestamp is None:
            return None
        if client_timestamp.tzinfo is None:
            client_timestamp = client_timestamp.replace(tzinfo=timezone.utc)
        if client_timestamp > now + self._client_ts_max_skew:
            return None
        if client_timestamp < now - self._client_ts_max_age:
            return None
        return client_timestamp

    async def history(self, limit: int | None = None, skip: int = 0) -> list[Message]:
        """Return a window of messages ordered oldest to newest."""
        if limit is None:
            limit = self._history_default_limit
        limit = max(0, min(limit, self._history_max_limit))
        skip = max(0, skip)
        if limit == 0:
            return []
        async with store_scope(self._uow_factory, self._store_timeout) as uow:
            newest_first = await uow.messages.list_recent(limit=limit, skip=skip)
        return list(reversed(newest_first))

    async def update_status(self, message_id: str, status: str) -> Message:
        try:
            new_status = MessageStatus(status)
        except ValueError as exc:
            raise ValidationError(f"Unknown message status: {status!r}") from exc

        async with store_scope(self._uow_factory, self._store_timeout) as uow:
            msg = await uow.messages_w.update_status(message_id, new_status)
            if msg is None:
                raise NotFoundError(f"Message {message_id} not found")
            await uow.commit()

        await self._broadcaster.broadcast(STATUS_UPDATE_EVENT, status_payload(msg))
        return msg

    async def delete(self, message_id: str) -> None:
        async with store_scope(self._uow_factory, self._store_timeout) as uow:
            deleted = await uow.messages_w.delete(message_id)
            if not deleted:
                raise NotFoundError(f"Message {message_id} not found")
            await uow.commit()

        await self._broadcaster.broadcast(MESSAGE_DELETED_EVENT, {"messageId": message_id})
