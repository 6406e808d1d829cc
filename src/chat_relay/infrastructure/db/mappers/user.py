from __future__ import annotations

from chat_relay.domain.entities.user import User
from chat_relay.infrastructure.db.models.user import UserModel


def model_to_entity(model: UserModel) -> User:
    return User(
        username=model.username,
        online=model.online,
        last_seen=model.last_seen,
        session_id=model.session_id,
    )
