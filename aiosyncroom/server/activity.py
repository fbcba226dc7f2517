"""Bounded chat and system history of a room."""

from __future__ import annotations

from collections import deque
from collections.abc import Iterator

from aiosyncroom.models.core import ActivityEntry
from aiosyncroom.models.types import ActivityKind
from aiosyncroom.util import to_millis

DEFAULT_CAPACITY = 50
DEFAULT_JOIN_HISTORY = 10


class ActivityLog:
    """
    Append-only ring buffer of activity entries.

    Once full, every append evicts the oldest entry. Nothing else ever removes
    entries.
    """

    _entries: deque[ActivityEntry]

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        """Create an empty log holding at most capacity entries."""
        if capacity <= 0:
            raise ValueError(f"capacity must be positive, got {capacity}")
        self._entries = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        """Maximum number of retained entries."""
        assert self._entries.maxlen is not None
        return self._entries.maxlen

    def append_user(
        self, member_id: str, display_name: str, text: str, now: float
    ) -> ActivityEntry:
        """Record chat text typed by a member."""
        entry = ActivityEntry(
            kind=ActivityKind.USER,
            text=text,
            timestamp=to_millis(now),
            display_name=display_name,
            member_id=member_id,
        )
        self._entries.append(entry)
        return entry

    def append_system(self, text: str, now: float) -> ActivityEntry:
        """Record a generated entry for join, leave or media change."""
        entry = ActivityEntry(kind=ActivityKind.SYSTEM, text=text, timestamp=to_millis(now))
        self._entries.append(entry)
        return entry

    def recent(self, count: int = DEFAULT_JOIN_HISTORY) -> list[ActivityEntry]:
        """Return the newest count entries, oldest first."""
        if count <= 0:
            return []
        return list(self._entries)[-count:]

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[ActivityEntry]:
        return iter(self._entries)
