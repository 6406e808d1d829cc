from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True, slots=True)
class User:
    username: str
    online: bool
    last_seen: datetime
    session_id: str | None = None
