"""Owns the mapping from room id to Room."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator

from aiosyncroom.util import Clock

from .activity import DEFAULT_CAPACITY
from .room import Room

logger = logging.getLogger(__name__)


class RoomRegistry:
    """
    Rooms indexed by id.

    A room is created by the first get_or_create() for its id and removed by
    remove_if_empty() as soon as its last member left. Rooms are never garbage
    collected lazily.
    """

    _rooms: dict[str, Room]
    _clock: Clock
    _log_capacity: int
    _on_created: Callable[[Room], None] | None
    _on_removed: Callable[[Room], None] | None

    def __init__(
        self,
        clock: Clock,
        *,
        log_capacity: int = DEFAULT_CAPACITY,
        on_created: Callable[[Room], None] | None = None,
        on_removed: Callable[[Room], None] | None = None,
    ) -> None:
        """
        Initialize an empty registry.

        Args:
            clock: Wall clock used to stamp new rooms.
            log_capacity: Activity log size of new rooms.
            on_created: Called after a room was created.
            on_removed: Called after a room was removed.
        """
        self._rooms = {}
        self._clock = clock
        self._log_capacity = log_capacity
        self._on_created = on_created
        self._on_removed = on_removed

    def get_or_create(self, room_id: str) -> Room:
        """Return the room with this id, creating an empty one on first use."""
        room = self._rooms.get(room_id)
        if room is not None:
            return room
        room = Room(room_id, self._clock(), log_capacity=self._log_capacity)
        self._rooms[room_id] = room
        logger.info("Room %s created", room_id)
        if self._on_created is not None:
            self._on_created(room)
        return room

    def remove_if_empty(self, room_id: str) -> bool:
        """Delete the room iff it has no members, return whether it was deleted."""
        room = self._rooms.get(room_id)
        if room is None or not room.is_empty:
            return False
        del self._rooms[room_id]
        logger.info("Room %s deleted (empty)", room_id)
        if self._on_removed is not None:
            self._on_removed(room)
        return True

    def get(self, room_id: str) -> Room | None:
        """Return the room with this id, if it exists."""
        return self._rooms.get(room_id)

    @property
    def member_count(self) -> int:
        """Total number of members over all rooms."""
        return sum(len(room.members) for room in self._rooms.values())

    def __contains__(self, room_id: object) -> bool:
        return room_id in self._rooms

    def __len__(self) -> int:
        return len(self._rooms)

    def __iter__(self) -> Iterator[Room]:
        return iter(list(self._rooms.values()))
