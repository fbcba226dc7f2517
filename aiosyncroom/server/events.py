"""Events emitted by the room engine to registered listeners."""

from __future__ import annotations

from dataclasses import dataclass


class RoomEvent:
    """Base event type used by RoomSyncEngine.add_event_listener()."""


@dataclass
class RoomCreatedEvent(RoomEvent):
    """A room was created by its first join."""

    room_id: str


@dataclass
class RoomRemovedEvent(RoomEvent):
    """The last member left and the room was deleted."""

    room_id: str


@dataclass
class MemberJoinedEvent(RoomEvent):
    """A connection joined a room."""

    room_id: str
    member_id: str
    display_name: str


@dataclass
class MemberLeftEvent(RoomEvent):
    """A member left a room or disconnected."""

    room_id: str
    member_id: str
    display_name: str


@dataclass
class HostChangedEvent(RoomEvent):
    """The host of a room changed."""

    room_id: str
    host_id: str | None
    """The new host, None when the room emptied."""


@dataclass
class MediaChangedEvent(RoomEvent):
    """New media was loaded into a room."""

    room_id: str
    member_id: str
    title: str
