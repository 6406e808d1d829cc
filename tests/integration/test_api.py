"""Integration smoke tests for the HTTP surface (in-memory UoW via the app factory)."""
from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from chat_relay.app import create_app
from chat_relay.application.exceptions import StoreError
from tests.conftest import FakeUoW, make_file, make_message, uow_factory_for


@pytest.fixture
def uow() -> FakeUoW:
    return FakeUoW()


@pytest.fixture
def client(uow):
    app = create_app(uow_factory=uow_factory_for(uow))
    with TestClient(app, raise_server_exceptions=False) as client:
        yield client


def test_healthz(client):
    resp = client.get("/healthz")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"
    assert resp.headers["X-Request-ID"]


def test_correlation_id_is_echoed(client):
    resp = client.get("/healthz", headers={"X-Request-ID": "req-42"})
    assert resp.headers["X-Request-ID"] == "req-42"


def test_list_messages_oldest_first(client, uow):
    uow.messages._messages.extend(
        [
            make_message(message_id="m1", text="first"),
            make_message(message_id="m2", text=None, file=make_file(10)),
            make_message(message_id="m3", text="third"),
        ]
    )

    resp = client.get("/api/v1/messages", params={"limit": 2})

    assert resp.status_code == 200
    body = resp.json()
    assert [m["id"] for m in body] == ["m2", "m3"]
    assert body[0]["file"]["name"] == "report.pdf"
    assert body[0]["file"]["type"] == "application/pdf"
    assert body[1]["message"] == "third"
    assert body[1]["clientTimestamp"] is None


def test_list_messages_rejects_bad_paging(client):
    resp = client.get("/api/v1/messages", params={"skip": -1})
    assert resp.status_code == 422


def test_list_messages_store_down(client, uow):
    # The startup sweep may consume one scope first.
    uow.fail_next = [StoreError("down"), StoreError("down")]
    resp = client.get("/api/v1/messages")
    assert resp.status_code == 503


def test_presence_empty(client):
    resp = client.get("/api/v1/presence")
    assert resp.status_code == 200
    assert resp.json() == {"onlineUsers": [], "typingUsers": []}
