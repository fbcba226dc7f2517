"""Per-room state: membership, host, playback fields and activity log."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from aiosyncroom.models.core import (
    MediaInfoPayload,
    MemberInfo,
    MemberListPayload,
    RoomSnapshot,
    RoomStatsPayload,
)
from aiosyncroom.models.media import AudioTrackMedia, YouTubeMedia
from aiosyncroom.models.types import ServerMessage
from aiosyncroom.util import to_millis

from .activity import DEFAULT_CAPACITY, DEFAULT_JOIN_HISTORY, ActivityLog

MessageSink = Callable[[ServerMessage], None]
"""Enqueues a message for one connection, must never block."""


@dataclass
class Member:
    """A connection that joined a room."""

    member_id: str
    """Connection identifier."""
    display_name: str
    joined_at: float
    """Join time in epoch seconds."""
    sink: MessageSink
    """Outbound queue of the member's connection."""

    def to_info(self) -> MemberInfo:
        """Build the public view of this member."""
        return MemberInfo(
            member_id=self.member_id,
            display_name=self.display_name,
            joined_at=to_millis(self.joined_at),
        )


class Room:
    """
    Authoritative state of one room.

    Rooms are owned by a RoomRegistry and mutated only by the presence manager
    and the playback state machine. The members mapping keeps join order, which
    decides host succession.
    """

    room_id: str
    media: YouTubeMedia | AudioTrackMedia | None
    """Currently loaded media, None until the first media change."""
    is_playing: bool
    position: float
    """Playback offset in seconds as of last_update."""
    last_update: float
    """Epoch seconds of the last playback mutation."""
    controller: str | None
    """Member whose last action set the current playback state."""
    host: str | None
    """Member used as tie-break authority, None only while the room empties."""
    members: dict[str, Member]
    activity_log: ActivityLog
    created_at: float

    def __init__(
        self, room_id: str, now: float, *, log_capacity: int = DEFAULT_CAPACITY
    ) -> None:
        """Create an empty room with default playback state."""
        self.room_id = room_id
        self.media = None
        self.is_playing = False
        self.position = 0.0
        self.last_update = now
        self.controller = None
        self.host = None
        self.members = {}
        self.activity_log = ActivityLog(log_capacity)
        self.created_at = now

    def __repr__(self) -> str:
        return f"Room({self.room_id!r}, members={len(self.members)})"

    @property
    def is_empty(self) -> bool:
        """Whether no member is left."""
        return not self.members

    def is_member(self, member_id: str) -> bool:
        """Whether the connection currently belongs to this room."""
        return member_id in self.members

    def display_name_of(self, member_id: str) -> str:
        """Display name of a member, falling back to its id."""
        member = self.members.get(member_id)
        return member.display_name if member is not None else member_id

    @property
    def duration(self) -> float | None:
        """Known length of the current media in seconds."""
        if self.media is None:
            return None
        return self.media.known_duration

    def clamp_position(self, position: float) -> float:
        """Clamp a position to zero and, when known, the media duration."""
        position = max(0.0, float(position))
        if (duration := self.duration) is not None:
            position = min(position, duration)
        return position

    def set_playback(self, *, is_playing: bool, position: float, now: float) -> None:
        """Store new playback fields, last_update never moves backwards."""
        self.is_playing = is_playing
        self.position = self.clamp_position(position)
        self.last_update = max(self.last_update, now)

    def member_infos(self) -> list[MemberInfo]:
        """Public view of all members in join order."""
        return [member.to_info() for member in self.members.values()]

    def member_list(self) -> MemberListPayload:
        """Build the member-list payload."""
        return MemberListPayload(members=self.member_infos())

    def snapshot(self, *, history: int = DEFAULT_JOIN_HISTORY) -> RoomSnapshot:
        """Build the full snapshot sent to a joining member."""
        return RoomSnapshot(
            room_id=self.room_id,
            is_playing=self.is_playing,
            position=self.position,
            last_update=to_millis(self.last_update),
            host_id=self.host,
            controller=self.controller,
            members=self.member_infos(),
            recent_log=self.activity_log.recent(history),
            media=self.media,
        )

    def media_info(self) -> MediaInfoPayload:
        """Stored media and playback fields, without estimation."""
        return MediaInfoPayload(
            is_playing=self.is_playing, position=self.position, media=self.media
        )

    def stats(self, now: float) -> RoomStatsPayload:
        """Membership statistics of the room."""
        earliest = min((m.joined_at for m in self.members.values()), default=now)
        return RoomStatsPayload(
            room_id=self.room_id,
            member_count=len(self.members),
            members=self.member_infos(),
            host_id=self.host,
            uptime=max(0, to_millis(now - earliest)),
            media=self.media,
        )
