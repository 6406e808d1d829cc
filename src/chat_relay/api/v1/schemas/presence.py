from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class PresenceResponse(BaseModel):
    online_users: list[str] = Field(alias="onlineUsers")
    typing_users: list[str] = Field(alias="typingUsers")

    model_config = ConfigDict(populate_by_name=True)
