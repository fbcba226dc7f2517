from __future__ import annotations

import pytest
from conftest import FakeClock, Inbox, connect, join, send

from aiosyncroom.models.core import (
    ChatServerMessage,
    HostChangeMessage,
    MemberJoinedMessage,
    MemberLeftMessage,
    MemberListMessage,
    RoomStateMessage,
)
from aiosyncroom.server.dispatch import BroadcastDispatcher
from aiosyncroom.server.engine import RoomSyncEngine
from aiosyncroom.server.events import (
    HostChangedEvent,
    MemberJoinedEvent,
    MemberLeftEvent,
    RoomCreatedEvent,
    RoomEvent,
    RoomRemovedEvent,
)
from aiosyncroom.server.presence import PresenceManager
from aiosyncroom.server.registry import RoomRegistry


def test_first_member_becomes_host(engine: RoomSyncEngine) -> None:
    c1 = join(engine, "c1", "r1", "Ann")
    room = engine.registry.get("r1")
    assert room is not None
    assert room.host == "c1"

    c2 = join(engine, "c2", "r1", "Bob")
    assert room.host == "c1"
    assert list(room.members) == ["c1", "c2"]

    member_lists = c1.of_type(MemberListMessage)
    assert [m.display_name for m in member_lists[-1].payload.members] == ["Ann", "Bob"]
    assert [m.payload.display_name for m in c1.of_type(MemberJoinedMessage)] == ["Bob"]
    assert c2.of_type(MemberJoinedMessage) == []


def test_joiner_receives_snapshot_first(engine: RoomSyncEngine) -> None:
    join(engine, "c1", "r1", "Ann")
    c2 = join(engine, "c2", "r1", "Bob")

    assert c2.types() == ["room-state", "member-list"]
    snapshot = c2.of_type(RoomStateMessage)[0].payload
    assert snapshot.room_id == "r1"
    assert snapshot.host_id == "c1"
    assert snapshot.is_playing is False
    assert snapshot.position == 0.0
    assert [m.member_id for m in snapshot.members] == ["c1", "c2"]
    assert [e.text for e in snapshot.recent_log] == ["Ann joined the room", "Bob joined the room"]


def test_join_entry_is_not_broadcast_as_chat(engine: RoomSyncEngine) -> None:
    c1 = join(engine, "c1", "r1", "Ann")
    join(engine, "c2", "r1", "Bob")
    assert c1.of_type(ChatServerMessage) == []


def test_missing_display_name_is_generated(engine: RoomSyncEngine) -> None:
    join(engine, "abcd1234", "r1")
    room = engine.registry.get("r1")
    assert room is not None
    assert room.members["abcd1234"].display_name == "Userabcd"


def test_rejoin_updates_name_without_duplicating(engine: RoomSyncEngine) -> None:
    c1 = join(engine, "c1", "r1", "Ann")
    c2 = join(engine, "c2", "r1", "Bob")
    c1.clear()

    send(engine, "c2", "join-room", {"roomId": "r1", "displayName": "Robert"})

    room = engine.registry.get("r1")
    assert room is not None
    assert list(room.members) == ["c1", "c2"]
    assert room.members["c2"].display_name == "Robert"
    assert c1.of_type(MemberJoinedMessage) == []
    assert c2.types()[-2:] == ["room-state", "member-list"]


def test_host_leaves_next_member_takes_over(engine: RoomSyncEngine) -> None:
    join(engine, "c1", "r1", "Ann")
    c2 = join(engine, "c2", "r1", "Bob")
    c2.clear()

    engine.disconnect("c1")

    room = engine.registry.get("r1")
    assert room is not None
    assert len(room.members) == 1
    assert room.host == "c2"
    host_changes = c2.of_type(HostChangeMessage)
    assert len(host_changes) == 1
    assert host_changes[0].payload.new_host_id == "c2"
    assert host_changes[0].payload.new_host_name == "Bob"
    assert c2.types() == ["host-change", "chat", "member-left", "member-list"]
    assert c2.of_type(ChatServerMessage)[0].payload.text == "Ann left the room"
    assert c2.of_type(MemberLeftMessage)[0].payload.member_id == "c1"


def test_host_succession_follows_join_order(engine: RoomSyncEngine) -> None:
    for cid, name in (("c1", "Ann"), ("c2", "Bob"), ("c3", "Cid")):
        join(engine, cid, "r1", name)
    room = engine.registry.get("r1")
    assert room is not None

    engine.disconnect("c2")
    assert room.host == "c1"
    engine.disconnect("c1")
    assert room.host == "c3"


def test_last_member_leaving_removes_room(engine: RoomSyncEngine) -> None:
    join(engine, "c1", "r1", "Ann")
    join(engine, "c2", "r1", "Bob")
    engine.disconnect("c1")
    engine.disconnect("c2")

    assert "r1" not in engine.registry
    assert len(engine.registry) == 0


def test_joining_other_room_leaves_current_one(engine: RoomSyncEngine) -> None:
    join(engine, "c1", "r1", "Ann")
    c2 = join(engine, "c2", "r1", "Bob")

    send(engine, "c1", "join-room", {"roomId": "r2", "displayName": "Ann"})

    r1 = engine.registry.get("r1")
    r2 = engine.registry.get("r2")
    assert r1 is not None and r2 is not None
    assert list(r1.members) == ["c2"]
    assert r1.host == "c2"
    assert list(r2.members) == ["c1"]
    assert r2.host == "c1"
    assert engine.room_of("c1") is r2
    assert c2.of_type(MemberLeftMessage)[0].payload.member_id == "c1"


def test_room_events_are_signalled(engine: RoomSyncEngine) -> None:
    events: list[RoomEvent] = []
    remove = engine.add_event_listener(lambda _engine, event: events.append(event))

    join(engine, "c1", "r1", "Ann")
    engine.disconnect("c1")
    remove()
    join(engine, "c2", "r2", "Bob")

    assert events == [
        RoomCreatedEvent("r1"),
        HostChangedEvent("r1", "c1"),
        MemberJoinedEvent("r1", "c1", "Ann"),
        HostChangedEvent("r1", None),
        MemberLeftEvent("r1", "c1", "Ann"),
        RoomRemovedEvent("r1"),
    ]


def test_failing_listener_does_not_break_join(engine: RoomSyncEngine) -> None:
    def _boom(_engine: RoomSyncEngine, _event: RoomEvent) -> None:
        raise RuntimeError("listener failure")

    engine.add_event_listener(_boom)
    c1 = join(engine, "c1", "r1", "Ann")
    assert c1.types() == ["room-state", "member-list"]


def test_leave_of_non_member_is_noop(clock: FakeClock) -> None:
    registry = RoomRegistry(clock)
    presence = PresenceManager(registry, BroadcastDispatcher(), clock, lambda event: None)
    room = registry.get_or_create("r1")
    inbox = Inbox()
    presence.join(room, "c1", "Ann", inbox.append)
    inbox.clear()

    assert presence.leave(room, "nobody") is False
    assert inbox == []
    assert "r1" in registry


def test_registry_get_or_create_is_idempotent(clock: FakeClock) -> None:
    registry = RoomRegistry(clock)
    room = registry.get_or_create("r1")
    assert registry.get_or_create("r1") is room
    assert registry.remove_if_empty("r1") is True
    assert registry.get("r1") is None
    assert registry.remove_if_empty("r1") is False


def test_connection_outside_room_is_not_a_member(engine: RoomSyncEngine) -> None:
    connect(engine, "c1")
    assert engine.room_of("c1") is None
    assert engine.connection_count == 1


def _assert_room_invariants(engine: RoomSyncEngine, joined: dict[str, str]) -> None:
    expected_rooms = set(joined.values())
    assert {room.room_id for room in engine.registry} == expected_rooms
    for room in engine.registry:
        assert not room.is_empty
        assert room.host is not None
        assert room.is_member(room.host)
        assert set(room.members) == {cid for cid, rid in joined.items() if rid == room.room_id}
    assert engine.registry.member_count == len(joined)


@pytest.mark.parametrize(
    "steps",
    [
        [("join", "c1", "r1"), ("join", "c2", "r1"), ("drop", "c1"), ("drop", "c2")],
        [
            ("join", "c1", "r1"),
            ("join", "c2", "r1"),
            ("join", "c1", "r2"),
            ("drop", "c2"),
            ("drop", "c1"),
        ],
        [
            ("join", "c1", "r1"),
            ("join", "c2", "r2"),
            ("join", "c3", "r1"),
            ("join", "c1", "r2"),
            ("join", "c3", "r2"),
            ("drop", "c2"),
            ("join", "c1", "r1"),
            ("drop", "c3"),
            ("drop", "c1"),
        ],
        [
            ("join", "c1", "r1"),
            ("join", "c1", "r1"),
            ("join", "c2", "r1"),
            ("join", "c3", "r1"),
            ("drop", "c2"),
            ("drop", "c1"),
            ("join", "c1", "r1"),
            ("drop", "c3"),
            ("drop", "c4"),
            ("drop", "c1"),
        ],
    ],
)
def test_room_and_host_invariants_hold_after_every_step(
    engine: RoomSyncEngine, steps: list[tuple[str, ...]]
) -> None:
    connected: set[str] = set()
    joined: dict[str, str] = {}
    for step in steps:
        action, cid = step[0], step[1]
        if action == "join":
            if cid not in connected:
                connect(engine, cid)
                connected.add(cid)
            send(engine, cid, "join-room", {"roomId": step[2]})
            joined[cid] = step[2]
        else:
            engine.disconnect(cid)
            connected.discard(cid)
            joined.pop(cid, None)
        _assert_room_invariants(engine, joined)

    assert len(engine.registry) == 0
