from __future__ import annotations


class AppError(Exception):
    """Base application error."""

    code = "error"

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        super().__init__(detail)


class NotFoundError(AppError):
    code = "not_found"


class ConflictError(AppError):
    code = "conflict"


class ValidationError(AppError):
    code = "validation_error"


class StoreError(AppError):
    """Durable store failed or timed out. Never retried automatically."""

    code = "store_unavailable"


class MissingSenderError(ValidationError):
    code = "missing_sender"


class EmptyMessageError(ValidationError):
    code = "empty_message"


class MessageTooLongError(ValidationError):
    code = "message_too_long"


class FileTooLargeError(ValidationError):
    code = "file_too_large"


class InvalidUsernameError(ValidationError):
    code = "invalid_username"


class AlreadyOnlineError(ConflictError):
    code = "already_online"
    can_force = True


class AlreadyBoundError(ConflictError):
    code = "already_bound"
