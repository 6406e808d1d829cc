from __future__ import annotations

import uuid
from typing import NewType

MessageId = NewType("MessageId", str)
SessionId = NewType("SessionId", str)


def new_message_id() -> MessageId:
    return MessageId(uuid.uuid4().hex)


def new_session_id() -> SessionId:
    return SessionId(uuid.uuid4().hex)
