from __future__ import annotations

import pytest

from aiosyncroom.models.types import ActivityKind
from aiosyncroom.server.activity import DEFAULT_CAPACITY, ActivityLog


def test_log_keeps_newest_fifty_entries() -> None:
    log = ActivityLog()
    assert log.capacity == DEFAULT_CAPACITY == 50

    for i in range(51):
        log.append_user("c1", "Ann", f"message {i}", now=1000.0 + i)

    assert len(log) == 50
    texts = [entry.text for entry in log]
    assert texts[0] == "message 1"
    assert texts[-1] == "message 50"


def test_recent_returns_tail_oldest_first() -> None:
    log = ActivityLog(capacity=5)
    for i in range(4):
        log.append_system(f"entry {i}", now=10.0)

    assert [e.text for e in log.recent(2)] == ["entry 2", "entry 3"]
    assert len(log.recent(10)) == 4
    assert log.recent(0) == []


def test_entry_fields() -> None:
    log = ActivityLog()
    user = log.append_user("c1", "Ann", "hi", now=1.5)
    system = log.append_system("Ann joined the room", now=2.0)

    assert user.kind is ActivityKind.USER
    assert user.display_name == "Ann"
    assert user.member_id == "c1"
    assert user.timestamp == 1500
    assert system.kind is ActivityKind.SYSTEM
    assert system.display_name is None
    assert system.timestamp == 2000


def test_capacity_must_be_positive() -> None:
    with pytest.raises(ValueError):
        ActivityLog(capacity=0)
