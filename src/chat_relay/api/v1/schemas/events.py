"""Payloads of client → server WebSocket events."""
from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from chat_relay.api.v1.schemas.message import FileAttachmentSchema


class LoginRequest(BaseModel):
    username: str | None = None
    force: bool = False


class UsernameRequest(BaseModel):
    username: str | None = None


class HistoryRequest(BaseModel):
    limit: int | None = None
    skip: int = 0


class UploadFileRequest(BaseModel):
    username: str | None = None
    file: FileAttachmentSchema | None = None
    id: str | None = Field(None, min_length=1, max_length=64)
    timestamp: datetime | None = None


class SendMessageRequest(UploadFileRequest):
    message: str | None = None


class TypingRequest(BaseModel):
    username: str | None = None


class MessageStatusRequest(BaseModel):
    message_id: str = Field(alias="messageId")
    status: str

    model_config = ConfigDict(populate_by_name=True)


class DeleteMessageRequest(BaseModel):
    message_id: str = Field(alias="messageId")

    model_config = ConfigDict(populate_by_name=True)
