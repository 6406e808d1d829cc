from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from chat_relay.domain.entities.message import FileAttachment


class FileAttachmentSchema(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    type: str = "application/octet-stream"
    size: int = Field(ge=0)
    data: str = ""

    def to_entity(self) -> FileAttachment:
        return FileAttachment(
            name=self.name,
            media_type=self.type,
            size=self.size,
            data=self.data,
        )


class MessageResponse(BaseModel):
    id: str
    username: str
    message: str | None
    file: FileAttachmentSchema | None
    timestamp: datetime
    client_timestamp: datetime | None = Field(None, alias="clientTimestamp")
    status: str

    model_config = ConfigDict(populate_by_name=True)
