"""JSON codec for the fan-out envelope ``{"event": ..., "data": {...}}``."""
from __future__ import annotations

import json
from datetime import datetime
from enum import Enum
from typing import Any


class _Encoder(json.JSONEncoder):
    def default(self, o: object) -> Any:
        if isinstance(o, datetime):
            return o.isoformat()
        if isinstance(o, Enum):
            return o.value
        return super().default(o)


def encode_envelope(event: str, data: dict[str, Any]) -> str:
    return json.dumps({"event": event, "data": data}, cls=_Encoder)


def decode_envelope(raw: str | bytes) -> tuple[str, dict[str, Any]]:
    envelope = json.loads(raw)
    if not isinstance(envelope, dict) or not isinstance(envelope.get("event"), str):
        raise ValueError("Malformed fan-out envelope")
    return envelope["event"], envelope.get("data") or {}
