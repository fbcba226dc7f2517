from __future__ import annotations

import orjson
import pytest

from aiosyncroom.models.core import (
    ActivityEntry,
    ChatServerMessage,
    JoinRoomMessage,
    MediaChangeMessage,
    MediaChangeServerMessage,
    MediaChangeServerPayload,
    PeriodicUpdateServerMessage,
    PeriodicUpdateServerPayload,
    PlayPauseMessage,
    SeekMessage,
    SyncRequestMessage,
)
from aiosyncroom.models.media import AudioTrackMedia, Media, YouTubeMedia
from aiosyncroom.models.types import ActivityKind, ClientMessage, MediaKind, ServerMessage


def test_join_room_parses_camel_case_and_trims_name() -> None:
    message = ClientMessage.from_dict(
        {"type": "join-room", "payload": {"roomId": "r1", "displayName": "  Ann  "}}
    )
    assert isinstance(message, JoinRoomMessage)
    assert message.payload.room_id == "r1"
    assert message.payload.display_name == "Ann"


def test_join_room_blank_name_becomes_none() -> None:
    message = ClientMessage.from_dict(
        {"type": "join-room", "payload": {"roomId": "r1", "displayName": "   "}}
    )
    assert isinstance(message, JoinRoomMessage)
    assert message.payload.display_name is None


def test_join_room_requires_room_id() -> None:
    with pytest.raises(ValueError):
        ClientMessage.from_dict({"type": "join-room", "payload": {"roomId": "  "}})


def test_media_change_decodes_variant_by_kind() -> None:
    youtube = ClientMessage.from_dict(
        {
            "type": "media-change",
            "payload": {"kind": "youtube", "videoId": "abc123", "title": "X"},
        }
    )
    assert isinstance(youtube, MediaChangeMessage)
    assert isinstance(youtube.payload, YouTubeMedia)
    assert youtube.payload.media_kind is MediaKind.YOUTUBE
    assert youtube.payload.known_duration is None

    audio = ClientMessage.from_dict(
        {
            "type": "media-change",
            "payload": {
                "kind": "audio",
                "id": "t1",
                "title": "Song",
                "artist": "Band",
                "previewUrl": "https://example.com/t1.mp3",
                "duration": 30,
            },
        }
    )
    assert isinstance(audio, MediaChangeMessage)
    assert isinstance(audio.payload, AudioTrackMedia)
    assert audio.payload.known_duration == 30.0
    assert audio.payload.display_title == "Song - Band"


def test_media_base_is_abstract() -> None:
    with pytest.raises(TypeError):
        Media()  # type: ignore[abstract]


def test_media_change_rejects_missing_fields() -> None:
    with pytest.raises((LookupError, TypeError, ValueError)):
        ClientMessage.from_dict(
            {"type": "media-change", "payload": {"kind": "youtube", "title": "X"}}
        )
    with pytest.raises(ValueError):
        YouTubeMedia(video_id="", title="X")
    with pytest.raises(ValueError):
        AudioTrackMedia(
            id="t1", title="Song", artist="Band", preview_url="https://x", duration=-1
        )


def test_playback_payloads_validate_types() -> None:
    message = ClientMessage.from_dict(
        {"type": "play-pause", "payload": {"isPlaying": True, "position": 12.5}}
    )
    assert isinstance(message, PlayPauseMessage)
    assert message.payload.is_playing is True
    assert message.payload.position == 12.5

    seek = ClientMessage.from_dict({"type": "seek", "payload": {"position": 3}})
    assert isinstance(seek, SeekMessage)
    assert seek.payload.is_playing is None

    with pytest.raises(ValueError):
        ClientMessage.from_dict(
            {"type": "play-pause", "payload": {"isPlaying": "yes", "position": 1}}
        )
    with pytest.raises(ValueError):
        ClientMessage.from_dict(
            {"type": "play-pause", "payload": {"isPlaying": True, "position": "1"}}
        )


def test_sync_request_without_payload() -> None:
    message = ClientMessage.from_dict({"type": "sync-request"})
    assert isinstance(message, SyncRequestMessage)


def test_server_media_change_serializes_camel_case() -> None:
    message = MediaChangeServerMessage(
        payload=MediaChangeServerPayload(
            media=YouTubeMedia(video_id="abc123", title="X"),
            changed_by="Ann",
            changer_id="c1",
        )
    )
    data = orjson.loads(message.to_json())
    assert data["type"] == "media-change"
    assert data["payload"]["changedBy"] == "Ann"
    assert data["payload"]["changerId"] == "c1"
    assert data["payload"]["media"]["videoId"] == "abc123"
    assert data["payload"]["media"]["kind"] == "youtube"
    parsed = ServerMessage.from_json(message.to_json())
    assert isinstance(parsed, MediaChangeServerMessage)
    assert parsed.payload.media == YouTubeMedia(video_id="abc123", title="X")


def test_periodic_update_uses_from_alias() -> None:
    message = PeriodicUpdateServerMessage(
        payload=PeriodicUpdateServerPayload(
            is_playing=True, position=4.0, from_name="Ann", from_id="c1"
        )
    )
    data = orjson.loads(message.to_json())
    assert data["payload"] == {"isPlaying": True, "position": 4.0, "from": "Ann", "fromId": "c1"}


def test_system_chat_entry_omits_author() -> None:
    message = ChatServerMessage(
        payload=ActivityEntry(kind=ActivityKind.SYSTEM, text="Ann joined the room", timestamp=1)
    )
    data = orjson.loads(message.to_json())
    assert data["payload"]["kind"] == "system"
    assert data["payload"]["text"] == "Ann joined the room"
    assert "displayName" not in data["payload"]
