from __future__ import annotations

import pytest
from conftest import FakeClock, connect, join, send

from aiosyncroom.models.core import (
    MediaInfoMessage,
    PlayPauseServerMessage,
    RejectedMessage,
    RejectedPayload,
    RoomStatsMessage,
)
from aiosyncroom.models.media import YouTubeMedia
from aiosyncroom.server.dispatch import ROUTES, BroadcastDispatcher
from aiosyncroom.server.engine import RoomSyncEngine
from aiosyncroom.server.room import Room


def test_invalid_json_is_rejected(engine: RoomSyncEngine) -> None:
    c1 = connect(engine, "c1")
    engine.handle_text("c1", "{not json")
    engine.handle_text("c1", "[1, 2]")

    reasons = [m.payload.reason for m in c1.of_type(RejectedMessage)]
    assert reasons == ["Message is not valid JSON", "Message must be a JSON object"]


def test_unknown_type_is_rejected(engine: RoomSyncEngine) -> None:
    c1 = join(engine, "c1", "r1", "Ann")
    send(engine, "c1", "teleport", {"to": "mars"})
    assert c1.of_type(RejectedMessage)[0].payload.reason == "Unknown message type: teleport"


@pytest.mark.parametrize("msg_type", ['["chat"]', '{"a": 1}', "null", "42"])
def test_non_string_type_is_rejected(engine: RoomSyncEngine, msg_type: str) -> None:
    c1 = join(engine, "c1", "r1", "Ann")
    engine.handle_text("c1", f'{{"type": {msg_type}, "payload": {{"text": "hi"}}}}')

    reasons = [m.payload.reason for m in c1.of_type(RejectedMessage)]
    assert reasons == ["Unknown message type"]


def test_non_string_type_outside_room_is_ignored(engine: RoomSyncEngine) -> None:
    c1 = connect(engine, "c1")
    engine.handle_text("c1", '{"type": ["join-room"]}')
    assert c1 == []


def test_invalid_payload_is_rejected_without_state_change(engine: RoomSyncEngine) -> None:
    c1 = join(engine, "c1", "r1", "Ann")
    c2 = join(engine, "c2", "r1", "Bob")

    send(engine, "c1", "play-pause", {"isPlaying": "yes", "position": 3})
    send(engine, "c1", "seek", {})
    send(engine, "c1", "media-change", {"kind": "vhs", "title": "X"})

    reasons = [m.payload.reason for m in c1.of_type(RejectedMessage)]
    assert reasons == [
        "Invalid play-pause data",
        "Invalid seek data",
        "Invalid media-change data",
    ]
    room = engine.registry.get("r1")
    assert room is not None
    assert room.is_playing is False
    assert room.media is None
    assert c2.of_type(RejectedMessage) == []
    assert c2.of_type(PlayPauseServerMessage) == []


def test_invalid_join_is_rejected(engine: RoomSyncEngine) -> None:
    c1 = connect(engine, "c1")
    send(engine, "c1", "join-room", {"displayName": "Ann"})
    assert c1.of_type(RejectedMessage)[0].payload.reason == "Invalid join-room data"
    assert len(engine.registry) == 0


def test_messages_outside_room_are_ignored(engine: RoomSyncEngine) -> None:
    c1 = connect(engine, "c1")
    join(engine, "c2", "r1", "Bob")

    send(engine, "c1", "play-pause", {"isPlaying": True, "position": 3})
    send(engine, "c1", "chat", {"text": "hello"})
    send(engine, "c1", "teleport")

    assert c1 == []
    room = engine.registry.get("r1")
    assert room is not None
    assert room.is_playing is False


def test_media_info_request(engine: RoomSyncEngine) -> None:
    c1 = join(engine, "c1", "r1", "Ann")
    c2 = join(engine, "c2", "r1", "Bob")
    send(engine, "c1", "media-change", {"kind": "youtube", "videoId": "abc123", "title": "X"})
    send(engine, "c1", "seek", {"position": 7})

    send(engine, "c1", "media-info-request")

    infos = c1.of_type(MediaInfoMessage)
    assert len(infos) == 1
    assert infos[0].payload.media == YouTubeMedia(video_id="abc123", title="X")
    assert infos[0].payload.position == 7.0
    assert infos[0].payload.is_playing is False
    assert c2.of_type(MediaInfoMessage) == []


def test_room_stats_request(engine: RoomSyncEngine, clock: FakeClock) -> None:
    c1 = join(engine, "c1", "r1", "Ann")
    clock.advance(2)
    join(engine, "c2", "r1", "Bob")
    clock.advance(2)

    send(engine, "c1", "room-stats-request")

    stats = c1.of_type(RoomStatsMessage)[0].payload
    assert stats.room_id == "r1"
    assert stats.member_count == 2
    assert [m.display_name for m in stats.members] == ["Ann", "Bob"]
    assert stats.host_id == "c1"
    assert stats.uptime == 4000
    assert stats.media is None


def test_duplicate_connection_id_is_refused(engine: RoomSyncEngine) -> None:
    connect(engine, "c1")
    with pytest.raises(ValueError):
        connect(engine, "c1")


def test_disconnect_is_idempotent(engine: RoomSyncEngine) -> None:
    join(engine, "c1", "r1", "Ann")
    engine.disconnect("c1")
    engine.disconnect("c1")
    assert engine.connection_count == 0
    assert len(engine.registry) == 0


def test_failing_sink_does_not_stop_fan_out(engine: RoomSyncEngine) -> None:
    def _broken(_message: object) -> None:
        raise RuntimeError("socket gone")

    engine.connect("c1", _broken)
    send(engine, "c1", "join-room", {"roomId": "r1", "displayName": "Ann"})
    c2 = join(engine, "c2", "r1", "Bob")

    send(engine, "c2", "play-pause", {"isPlaying": True, "position": 1})

    room = engine.registry.get("r1")
    assert room is not None
    assert room.is_playing is True
    assert c2.types() == ["room-state", "member-list"]


def test_dispatcher_refuses_unrouted_messages() -> None:
    dispatcher = BroadcastDispatcher(routes={})
    room = Room("r1", 0.0)
    message = RejectedMessage(payload=RejectedPayload(reason="x"))
    with pytest.raises(ValueError):
        dispatcher.dispatch(room, message, "c1")
    assert BroadcastDispatcher().delivery_for(message) is ROUTES[RejectedMessage]
