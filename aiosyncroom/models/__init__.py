"""Models for the room synchronization protocol."""

from __future__ import annotations

__all__ = [
    "ActivityKind",
    "AnyMedia",
    "AudioTrackMedia",
    "AuthorityPolicy",
    "ClientMessage",
    "Delivery",
    "Media",
    "MediaKind",
    "ServerMessage",
    "YouTubeMedia",
    "core",
    "media",
    "types",
]

from . import core, media, types
from .media import AnyMedia, AudioTrackMedia, Media, YouTubeMedia
from .types import (
    ActivityKind,
    AuthorityPolicy,
    ClientMessage,
    Delivery,
    MediaKind,
    ServerMessage,
)
