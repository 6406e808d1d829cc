from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from chat_relay.domain.value_objects.enums import PresenceEventType


@dataclass(frozen=True, slots=True)
class PresenceChanged:
    type: PresenceEventType
    usernames: tuple[str, ...]
    online_users: tuple[str, ...]
    timestamp: datetime

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "type": self.type.value,
            "usernames": list(self.usernames),
            "onlineUsers": list(self.online_users),
            "timestamp": self.timestamp.isoformat(),
        }
        if self.type != PresenceEventType.CLEANUP and len(self.usernames) == 1:
            payload["username"] = self.usernames[0]
        return payload
