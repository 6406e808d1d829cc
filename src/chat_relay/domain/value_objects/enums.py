from __future__ import annotations

from enum import StrEnum


class MessageStatus(StrEnum):
    SENDING = "sending"
    SENT = "sent"
    DELIVERED = "delivered"
    READ = "read"
    FAILED = "failed"


class PresenceEventType(StrEnum):
    LOGIN = "login"
    LOGOUT = "logout"
    CLEANUP = "cleanup"
