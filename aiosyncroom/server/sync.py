"""Projects the stored playback position of a room forward in time."""

from __future__ import annotations

from typing import TYPE_CHECKING, NamedTuple

if TYPE_CHECKING:
    from .room import Room


class SyncEstimate(NamedTuple):
    """Estimated playback state of a room at a given instant."""

    position: float
    """Estimated playback offset in seconds."""
    is_playing: bool


def estimate(room: Room, now: float) -> SyncEstimate:
    """
    Estimate where playback of the room is at time now.

    The stored position is advanced by the wall-clock time elapsed since the
    last update while the room is playing. The result is clamped to zero and,
    when the media reports one, to its duration. The room is not modified.
    """
    elapsed = max(0.0, now - room.last_update)
    position = room.position + (elapsed if room.is_playing else 0.0)
    return SyncEstimate(position=room.clamp_position(position), is_playing=room.is_playing)
