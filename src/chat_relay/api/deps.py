"""FastAPI dependency injection helpers."""
from __future__ import annotations

from typing import Annotated

from fastapi import Depends
from fastapi.requests import HTTPConnection

from chat_relay.infrastructure.ws.manager import ConnectionManager
from chat_relay.services.chat_relay import ChatRelay


def get_relay(conn: HTTPConnection) -> ChatRelay:
    return conn.app.state.relay


RelayDep = Annotated[ChatRelay, Depends(get_relay)]


def get_manager(conn: HTTPConnection) -> ConnectionManager:
    return conn.app.state.manager


ManagerDep = Annotated[ConnectionManager, Depends(get_manager)]
