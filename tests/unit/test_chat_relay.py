from __future__ import annotations

import asyncio

import pytest

from chat_relay.application.exceptions import (
    AlreadyBoundError,
    AlreadyOnlineError,
    InvalidUsernameError,
    MissingSenderError,
    StoreError,
)
from tests.conftest import make_message


def _presence_types(broadcaster) -> list[str]:
    return [e["type"] for e in broadcaster.of("presenceUpdate")]


@pytest.mark.asyncio
async def test_connect_pushes_initial_state(relay, uow, transport, typing_tracker):
    uow.messages._messages.append(make_message(message_id="m1"))
    await typing_tracker.start("carol")

    await relay.connect("s1")

    assert transport.events_for("s1") == ["messageHistory", "onlineUsers", "typingUpdate"]
    history = transport.sent[0][2]
    assert [m["id"] for m in history["messages"]] == ["m1"]
    assert transport.sent[2][2] == {"typingUsers": ["carol"]}


@pytest.mark.asyncio
async def test_connect_survives_history_failure(relay, uow, transport):
    uow.fail_next = [StoreError("down")]

    await relay.connect("s1")

    assert relay.registry.get("s1") is not None
    assert transport.events_for("s1") == ["onlineUsers", "typingUpdate"]


@pytest.mark.asyncio
async def test_login_binds_and_marks_online(relay, broadcaster):
    await relay.connect("s1")

    username = await relay.login("s1", "  alice ")

    assert username == "alice"
    assert relay.registry.lookup("alice").id == "s1"
    assert relay.presence.snapshot() == ["alice"]
    assert _presence_types(broadcaster) == ["login"]


@pytest.mark.asyncio
@pytest.mark.parametrize("username", [None, "", "ab", "x" * 21])
async def test_login_rejects_invalid_usernames(relay, username):
    await relay.connect("s1")

    with pytest.raises(InvalidUsernameError):
        await relay.login("s1", username)


@pytest.mark.asyncio
async def test_login_repeated_on_same_session_is_noop(relay, broadcaster):
    await relay.connect("s1")
    await relay.login("s1", "alice")

    assert await relay.login("s1", "alice") == "alice"
    assert _presence_types(broadcaster) == ["login"]


@pytest.mark.asyncio
async def test_login_as_other_user_on_bound_session(relay):
    await relay.connect("s1")
    await relay.login("s1", "alice")

    with pytest.raises(AlreadyBoundError):
        await relay.login("s1", "bob")


@pytest.mark.asyncio
async def test_second_login_without_force_is_rejected(relay, transport):
    await relay.connect("a")
    await relay.connect("b")
    await relay.login("a", "alice")

    with pytest.raises(AlreadyOnlineError) as exc_info:
        await relay.login("b", "alice")

    assert exc_info.value.can_force is True
    assert relay.registry.lookup("alice").id == "a"
    assert transport.closed == []


@pytest.mark.asyncio
async def test_forced_login_evicts_old_session_first(relay, transport, broadcaster):
    await relay.connect("a")
    await relay.connect("b")
    await relay.login("a", "alice")

    assert await relay.login("b", "alice", force=True) == "alice"

    assert relay.registry.lookup("alice").id == "b"
    assert ("send", "a", "forced-logout") in transport.log
    assert transport.closed == [("a", "Logged in from another session")]
    assert _presence_types(broadcaster) == ["login", "login"]

    # The evicted socket going away must not log alice out.
    await relay.disconnect("a", "closed by server")
    assert _presence_types(broadcaster) == ["login", "login"]
    assert relay.presence.snapshot() == ["alice"]


@pytest.mark.asyncio
async def test_concurrent_logins_bind_only_one_session(relay, uow):
    uow.delay = 0.01
    await relay.connect("a")
    await relay.connect("b")

    results = await asyncio.gather(
        relay.login("a", "alice"),
        relay.login("b", "alice"),
        return_exceptions=True,
    )

    successes = [r for r in results if r == "alice"]
    failures = [r for r in results if isinstance(r, AlreadyOnlineError)]
    assert len(successes) == 1
    assert len(failures) == 1
    bound = relay.registry.lookup("alice")
    other = "b" if bound.id == "a" else "a"
    assert relay.registry.get(other).username is None


@pytest.mark.asyncio
async def test_concurrent_forced_logins_end_with_one_binding(relay, uow, transport):
    uow.delay = 0.01
    for sid in ("a", "b", "c"):
        await relay.connect(sid)
    await relay.login("a", "alice")

    await asyncio.gather(
        relay.login("b", "alice", force=True),
        relay.login("c", "alice", force=True),
    )

    bound = [sid for sid in ("a", "b", "c") if relay.registry.get(sid).username == "alice"]
    assert len(bound) == 1
    assert len(transport.closed) == 2


@pytest.mark.asyncio
async def test_login_store_failure_releases_binding(relay, uow):
    await relay.connect("s1")
    uow.fail_next = [StoreError("down")]

    with pytest.raises(StoreError):
        await relay.login("s1", "alice")

    assert relay.registry.lookup("alice") is None
    assert relay.registry.get("s1").username is None


@pytest.mark.asyncio
async def test_disconnect_emits_one_logout_and_clears_typing(relay, broadcaster, clock):
    await relay.connect("s1")
    await relay.login("s1", "alice")
    await relay.typing.start("alice")

    await relay.disconnect("s1", "client disconnected")
    await relay.disconnect("s1", "client disconnected")
    clock.advance(600)
    cleaned = await relay.presence.sweep()

    assert _presence_types(broadcaster) == ["login", "logout"]
    assert cleaned == []
    assert "alice" not in relay.typing
    assert relay.registry.get("s1") is None


@pytest.mark.asyncio
async def test_silent_client_typing_entry_expires_with_liveness(relay, transport):
    await relay.connect("s1")
    await relay.login("s1", "alice")
    await relay.typing.start("alice")

    await relay.registry.watch_liveness("s1", interval=0, max_missed=3)
    assert transport.closed == [("s1", "heartbeat timeout")]
    assert "alice" in relay.typing

    await relay.disconnect("s1", "heartbeat timeout")
    assert "alice" not in relay.typing
    assert relay.presence.snapshot() == []


@pytest.mark.asyncio
async def test_check_username(relay, uow):
    await relay.connect("s1")

    fresh = await relay.check_username("alice")
    await relay.login("s1", "alice")
    taken = await relay.check_username("alice")
    await relay.disconnect("s1")
    known = await relay.check_username("alice")
    invalid = await relay.check_username("al")

    assert (fresh.valid, fresh.exists, fresh.online, fresh.can_take_over) == (True, False, False, False)
    assert (taken.valid, taken.exists, taken.online, taken.can_take_over) == (True, True, True, True)
    assert (known.exists, known.online) == (True, False)
    assert invalid.valid is False


@pytest.mark.asyncio
async def test_resolve_username_falls_back_to_bound_session(relay):
    await relay.connect("s1")
    await relay.connect("s2")
    await relay.login("s1", "alice")

    assert relay.resolve_username("s1", None) == "alice"
    assert relay.resolve_username("s2", "bob") == "bob"
    assert relay.resolve_username("s2", "  bob ") == "bob"
    with pytest.raises(InvalidUsernameError):
        relay.resolve_username("s2", "ab")
    with pytest.raises(MissingSenderError):
        relay.resolve_username("s2", None)
