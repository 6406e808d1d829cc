from __future__ import annotations

from chat_relay.application.exceptions import (
    EmptyMessageError,
    FileTooLargeError,
    InvalidUsernameError,
    MessageTooLongError,
    MissingSenderError,
)
from chat_relay.domain.entities.message import FileAttachment

USERNAME_MIN_LENGTH = 3
USERNAME_MAX_LENGTH = 20
MAX_MESSAGE_LENGTH = 2000
MAX_FILE_BYTES = 5 * 1024 * 1024


def normalize_username(raw: str | None) -> str:
    """Trim and length-check a username; raise InvalidUsernameError otherwise."""
    username = (raw or "").strip()
    if not USERNAME_MIN_LENGTH <= len(username) <= USERNAME_MAX_LENGTH:
        raise InvalidUsernameError(
            f"Username must be {USERNAME_MIN_LENGTH}-{USERNAME_MAX_LENGTH} characters"
        )
    return username


def is_valid_username(raw: str | None) -> bool:
    try:
        normalize_username(raw)
    except InvalidUsernameError:
        return False
    return True


def assert_sendable(
    sender: str | None,
    text: str | None,
    file: FileAttachment | None,
    *,
    max_text_length: int = MAX_MESSAGE_LENGTH,
    max_file_bytes: int = MAX_FILE_BYTES,
) -> str:
    """Checks run in a fixed order; the first failure wins.

    Returns the normalized sender username.
    """
    if not sender or not sender.strip():
        raise MissingSenderError("Sender username is required")
    sender = normalize_username(sender)
    if not text and file is None:
        raise EmptyMessageError("Message must have text or a file")
    if text and len(text) > max_text_length:
        raise MessageTooLongError(
            f"Message exceeds {max_text_length} characters"
        )
    if file is not None and file.size > max_file_bytes:
        raise FileTooLargeError(f"File exceeds {max_file_bytes} bytes")
    return sender
