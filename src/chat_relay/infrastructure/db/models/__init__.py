"""Import all models so metadata.create_all can discover them via Base.metadata."""
from chat_relay.infrastructure.db.models.message import MessageModel
from chat_relay.infrastructure.db.models.user import UserModel

__all__ = [
    "MessageModel",
    "UserModel",
]
