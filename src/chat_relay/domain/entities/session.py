from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(slots=True)
class Session:
    """One live client connection. Owned and mutated only by the registry."""

    id: str
    connected_at: datetime
    username: str | None = None
    missed_heartbeats: int = 0
