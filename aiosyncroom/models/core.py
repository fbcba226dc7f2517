"""
Room protocol messages.

This module contains every message exchanged between clients and the server over
the room WebSocket. Client messages mutate or query a single room; server
messages carry explicit snapshots of room state and are never built from the
internal room objects directly.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Annotated, Literal

from mashumaro.config import BaseConfig
from mashumaro.mixins.orjson import DataClassORJSONMixin
from mashumaro.types import Alias

from .media import AnyMedia
from .types import ActivityKind, ClientMessage, ServerMessage

MAX_ROOM_ID_LENGTH = 128
"""Longest room id accepted on join."""
MAX_DISPLAY_NAME_LENGTH = 64
"""Longest display name accepted on join."""


def _require_bool(value: object, field_name: str) -> None:
    if not isinstance(value, bool):
        raise ValueError(f"{field_name} must be a boolean, got {value!r}")


def _require_number(value: object, field_name: str) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{field_name} must be a number, got {value!r}")
    if not math.isfinite(value):
        raise ValueError(f"{field_name} must be finite, got {value!r}")


# Client -> Server: join-room
@dataclass
class JoinRoomPayload(DataClassORJSONMixin):
    """Request to join a room."""

    room_id: Annotated[str, Alias("roomId")]
    """Opaque room key, rooms are created on first join."""
    display_name: Annotated[str | None, Alias("displayName")] = None
    """Name shown to other members, generated when missing or blank."""

    def __post_init__(self) -> None:
        """Validate the room id and display name."""
        if not isinstance(self.room_id, str) or not self.room_id.strip():
            raise ValueError("roomId must be a non-empty string")
        if len(self.room_id) > MAX_ROOM_ID_LENGTH:
            raise ValueError(f"roomId must be at most {MAX_ROOM_ID_LENGTH} characters")
        if self.display_name is not None:
            if not isinstance(self.display_name, str):
                raise ValueError("displayName must be a string")
            self.display_name = self.display_name.strip()[:MAX_DISPLAY_NAME_LENGTH] or None

    class Config(BaseConfig):
        """Config for parsing json messages."""

        serialize_by_alias = True
        omit_none = True


@dataclass
class JoinRoomMessage(ClientMessage):
    """Message sent by the client to join a room."""

    payload: JoinRoomPayload
    type: Literal["join-room"] = "join-room"


# Client -> Server: media-change
@dataclass
class MediaChangeMessage(ClientMessage):
    """Message sent by the client to load new media for the whole room."""

    payload: AnyMedia
    type: Literal["media-change"] = "media-change"


# Client -> Server: play-pause
@dataclass
class PlayPausePayload(DataClassORJSONMixin):
    """Play or pause at a position."""

    is_playing: Annotated[bool, Alias("isPlaying")]
    position: float
    """Playback offset in seconds."""

    def __post_init__(self) -> None:
        """Validate field types."""
        _require_bool(self.is_playing, "isPlaying")
        _require_number(self.position, "position")

    class Config(BaseConfig):
        """Config for parsing json messages."""

        serialize_by_alias = True


@dataclass
class PlayPauseMessage(ClientMessage):
    """Message sent by the client when its player was played or paused."""

    payload: PlayPausePayload
    type: Literal["play-pause"] = "play-pause"


# Client -> Server: seek
@dataclass
class SeekPayload(DataClassORJSONMixin):
    """Jump to a position, optionally changing play state."""

    position: float
    """Playback offset in seconds."""
    is_playing: Annotated[bool | None, Alias("isPlaying")] = None
    """New play state, the current state is kept when missing."""

    def __post_init__(self) -> None:
        """Validate field types."""
        _require_number(self.position, "position")
        if self.is_playing is not None:
            _require_bool(self.is_playing, "isPlaying")

    class Config(BaseConfig):
        """Config for parsing json messages."""

        serialize_by_alias = True
        omit_none = True


@dataclass
class SeekMessage(ClientMessage):
    """Message sent by the client when its player seeked."""

    payload: SeekPayload
    type: Literal["seek"] = "seek"


# Client -> Server: periodic-update
@dataclass
class PeriodicUpdateMessage(ClientMessage):
    """Heartbeat with the sender's local playback state."""

    payload: PlayPausePayload
    type: Literal["periodic-update"] = "periodic-update"


# Client -> Server: sync-request
@dataclass
class SyncRequestMessage(ClientMessage):
    """Ask for the estimated current playback position of the room."""

    type: Literal["sync-request"] = "sync-request"


# Client -> Server: chat
@dataclass
class ChatPayload(DataClassORJSONMixin):
    """Chat text typed by a member."""

    text: str

    def __post_init__(self) -> None:
        """Validate field types, length is checked against the room configuration."""
        if not isinstance(self.text, str):
            raise ValueError("text must be a string")


@dataclass
class ChatMessage(ClientMessage):
    """Message sent by the client to post to the room chat."""

    payload: ChatPayload
    type: Literal["chat"] = "chat"


# Client -> Server: media-info-request
@dataclass
class MediaInfoRequestMessage(ClientMessage):
    """Ask for the stored media and playback fields of the room."""

    type: Literal["media-info-request"] = "media-info-request"


# Client -> Server: room-stats-request
@dataclass
class RoomStatsRequestMessage(ClientMessage):
    """Ask for membership statistics of the room."""

    type: Literal["room-stats-request"] = "room-stats-request"


# Shared snapshot objects
@dataclass
class MemberInfo(DataClassORJSONMixin):
    """Public view of a room member."""

    member_id: Annotated[str, Alias("memberId")]
    display_name: Annotated[str, Alias("displayName")]
    joined_at: Annotated[int, Alias("joinedAt")]
    """Join time in milliseconds since the epoch."""

    class Config(BaseConfig):
        """Config for parsing json messages."""

        serialize_by_alias = True


@dataclass
class ActivityEntry(DataClassORJSONMixin):
    """A chat or system entry of the room activity log."""

    kind: ActivityKind
    text: str
    timestamp: int
    """Creation time in milliseconds since the epoch."""
    display_name: Annotated[str | None, Alias("displayName")] = None
    """Author name, only set for user entries."""
    member_id: Annotated[str | None, Alias("memberId")] = None
    """Author id, only set for user entries."""

    class Config(BaseConfig):
        """Config for parsing json messages."""

        serialize_by_alias = True
        omit_none = True


# Server -> Client: room-state
@dataclass
class RoomSnapshot(DataClassORJSONMixin):
    """Self-contained copy of the externally relevant fields of a room."""

    room_id: Annotated[str, Alias("roomId")]
    is_playing: Annotated[bool, Alias("isPlaying")]
    position: float
    """Stored playback offset in seconds, as of last_update."""
    last_update: Annotated[int, Alias("lastUpdate")]
    """Time of the last playback mutation in milliseconds since the epoch."""
    host_id: Annotated[str | None, Alias("hostId")]
    controller: str | None
    members: list[MemberInfo]
    recent_log: Annotated[list[ActivityEntry], Alias("recentLog")]
    """Newest entries of the activity log, oldest first."""
    media: AnyMedia | None = None

    class Config(BaseConfig):
        """Config for parsing json messages."""

        serialize_by_alias = True


@dataclass
class RoomStateMessage(ServerMessage):
    """Full room snapshot sent to a member after joining."""

    payload: RoomSnapshot
    type: Literal["room-state"] = "room-state"


# Server -> Client: member-joined / member-left
@dataclass
class MemberNoticePayload(DataClassORJSONMixin):
    """A member that joined or left."""

    display_name: Annotated[str, Alias("displayName")]
    member_id: Annotated[str, Alias("memberId")]

    class Config(BaseConfig):
        """Config for parsing json messages."""

        serialize_by_alias = True


@dataclass
class MemberJoinedMessage(ServerMessage):
    """Notifies the rest of the room about a new member."""

    payload: MemberNoticePayload
    type: Literal["member-joined"] = "member-joined"


@dataclass
class MemberLeftMessage(ServerMessage):
    """Notifies the remaining members that a member left."""

    payload: MemberNoticePayload
    type: Literal["member-left"] = "member-left"


# Server -> Client: member-list
@dataclass
class MemberListPayload(DataClassORJSONMixin):
    """Members in join order."""

    members: list[MemberInfo] = field(default_factory=list)


@dataclass
class MemberListMessage(ServerMessage):
    """Refreshed membership of the room."""

    payload: MemberListPayload
    type: Literal["member-list"] = "member-list"


# Server -> Client: host-change
@dataclass
class HostChangePayload(DataClassORJSONMixin):
    """The newly elected host."""

    new_host_id: Annotated[str, Alias("newHostId")]
    new_host_name: Annotated[str, Alias("newHostName")]

    class Config(BaseConfig):
        """Config for parsing json messages."""

        serialize_by_alias = True


@dataclass
class HostChangeMessage(ServerMessage):
    """Sent when the host left and another member took over."""

    payload: HostChangePayload
    type: Literal["host-change"] = "host-change"


# Server -> Client: media-change
@dataclass
class MediaChangeServerPayload(DataClassORJSONMixin):
    """New media of the room with attribution."""

    media: AnyMedia
    changed_by: Annotated[str, Alias("changedBy")]
    changer_id: Annotated[str, Alias("changerId")]

    class Config(BaseConfig):
        """Config for parsing json messages."""

        serialize_by_alias = True


@dataclass
class MediaChangeServerMessage(ServerMessage):
    """Media was changed, playback restarts paused at zero."""

    payload: MediaChangeServerPayload
    type: Literal["media-change"] = "media-change"


# Server -> Client: play-pause / seek
@dataclass
class PlaybackServerPayload(DataClassORJSONMixin):
    """Playback fields applied by another member."""

    is_playing: Annotated[bool, Alias("isPlaying")]
    position: float
    controlled_by: Annotated[str, Alias("controlledBy")]
    controller_id: Annotated[str, Alias("controllerId")]

    class Config(BaseConfig):
        """Config for parsing json messages."""

        serialize_by_alias = True


@dataclass
class PlayPauseServerMessage(ServerMessage):
    """Another member played or paused."""

    payload: PlaybackServerPayload
    type: Literal["play-pause"] = "play-pause"


@dataclass
class SeekServerMessage(ServerMessage):
    """Another member seeked."""

    payload: PlaybackServerPayload
    type: Literal["seek"] = "seek"


# Server -> Client: periodic-update
@dataclass
class PeriodicUpdateServerPayload(DataClassORJSONMixin):
    """Heartbeat state relayed from the member driving playback."""

    is_playing: Annotated[bool, Alias("isPlaying")]
    position: float
    from_name: Annotated[str, Alias("from")]
    from_id: Annotated[str, Alias("fromId")]

    class Config(BaseConfig):
        """Config for parsing json messages."""

        serialize_by_alias = True


@dataclass
class PeriodicUpdateServerMessage(ServerMessage):
    """Relayed heartbeat."""

    payload: PeriodicUpdateServerPayload
    type: Literal["periodic-update"] = "periodic-update"


# Server -> Client: sync-response
@dataclass
class SyncResponsePayload(DataClassORJSONMixin):
    """Estimated playback state of the room at server_time."""

    position: float
    is_playing: Annotated[bool, Alias("isPlaying")]
    controller: str | None
    server_time: Annotated[int, Alias("serverTime")]
    """Time of the estimate in milliseconds since the epoch."""
    media: AnyMedia | None = None

    class Config(BaseConfig):
        """Config for parsing json messages."""

        serialize_by_alias = True


@dataclass
class SyncResponseMessage(ServerMessage):
    """Answer to sync-request."""

    payload: SyncResponsePayload
    type: Literal["sync-response"] = "sync-response"


# Server -> Client: chat
@dataclass
class ChatServerMessage(ServerMessage):
    """A new activity log entry."""

    payload: ActivityEntry
    type: Literal["chat"] = "chat"


# Server -> Client: rejected
@dataclass
class RejectedPayload(DataClassORJSONMixin):
    """Why a message was not applied."""

    reason: str


@dataclass
class RejectedMessage(ServerMessage):
    """Validation failure notice, only sent to the offending connection."""

    payload: RejectedPayload
    type: Literal["rejected"] = "rejected"


# Server -> Client: media-info
@dataclass
class MediaInfoPayload(DataClassORJSONMixin):
    """Stored media and playback fields, without estimation."""

    is_playing: Annotated[bool, Alias("isPlaying")]
    position: float
    media: AnyMedia | None = None

    class Config(BaseConfig):
        """Config for parsing json messages."""

        serialize_by_alias = True


@dataclass
class MediaInfoMessage(ServerMessage):
    """Answer to media-info-request."""

    payload: MediaInfoPayload
    type: Literal["media-info"] = "media-info"


# Server -> Client: room-stats
@dataclass
class RoomStatsPayload(DataClassORJSONMixin):
    """Membership statistics of a room."""

    room_id: Annotated[str, Alias("roomId")]
    member_count: Annotated[int, Alias("memberCount")]
    members: list[MemberInfo]
    host_id: Annotated[str | None, Alias("hostId")]
    uptime: int
    """Milliseconds since the longest present member joined."""
    media: AnyMedia | None = None

    class Config(BaseConfig):
        """Config for parsing json messages."""

        serialize_by_alias = True


@dataclass
class RoomStatsMessage(ServerMessage):
    """Answer to room-stats-request."""

    payload: RoomStatsPayload
    type: Literal["room-stats"] = "room-stats"

