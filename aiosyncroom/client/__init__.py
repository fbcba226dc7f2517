"""Public interface for the room sync client package."""

from .client import (
    ChatCallback,
    DisconnectCallback,
    HostChangeCallback,
    MediaChangeCallback,
    MemberListCallback,
    MemberNoticeCallback,
    PeriodicUpdateCallback,
    PlaybackCallback,
    RejectedCallback,
    RoomStateCallback,
    RoomSyncClient,
    SyncResponseCallback,
)

__all__ = [
    "ChatCallback",
    "DisconnectCallback",
    "HostChangeCallback",
    "MediaChangeCallback",
    "MemberListCallback",
    "MemberNoticeCallback",
    "PeriodicUpdateCallback",
    "PlaybackCallback",
    "RejectedCallback",
    "RoomStateCallback",
    "RoomSyncClient",
    "SyncResponseCallback",
]
