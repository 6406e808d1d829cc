from __future__ import annotations

import pytest


@pytest.mark.asyncio
async def test_start_is_idempotent_and_broadcasts_full_set(typing_tracker, broadcaster):
    await typing_tracker.start("alice")
    await typing_tracker.start("bob")
    await typing_tracker.start("alice")

    assert typing_tracker.snapshot() == ["alice", "bob"]
    assert broadcaster.of("typingUpdate") == [
        {"typingUsers": ["alice"]},
        {"typingUsers": ["alice", "bob"]},
        {"typingUsers": ["alice", "bob"]},
    ]


@pytest.mark.asyncio
async def test_stop_is_idempotent(typing_tracker, broadcaster):
    await typing_tracker.start("alice")
    await typing_tracker.stop("alice")
    await typing_tracker.stop("alice")

    assert typing_tracker.snapshot() == []
    assert broadcaster.of("typingUpdate")[-1] == {"typingUsers": []}


@pytest.mark.asyncio
async def test_discard_only_broadcasts_on_change(typing_tracker, broadcaster):
    assert await typing_tracker.discard("alice") is False
    assert broadcaster.events == []

    await typing_tracker.start("alice")
    assert await typing_tracker.discard("alice") is True
    assert broadcaster.of("typingUpdate")[-1] == {"typingUsers": []}
    assert "alice" not in typing_tracker
