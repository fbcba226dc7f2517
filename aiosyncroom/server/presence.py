"""Membership and host bookkeeping of rooms."""

from __future__ import annotations

import logging
from collections.abc import Callable

from aiosyncroom.models.core import (
    ChatServerMessage,
    HostChangeMessage,
    HostChangePayload,
    MemberJoinedMessage,
    MemberLeftMessage,
    MemberListMessage,
    MemberNoticePayload,
    RoomSnapshot,
    RoomStateMessage,
)
from aiosyncroom.util import Clock

from .activity import DEFAULT_JOIN_HISTORY
from .dispatch import BroadcastDispatcher
from .events import HostChangedEvent, MemberJoinedEvent, MemberLeftEvent, RoomEvent
from .registry import RoomRegistry
from .room import Member, MessageSink, Room

logger = logging.getLogger(__name__)


class PresenceManager:
    """
    Tracks the members of rooms and elects their hosts.

    The first member of a room becomes its host. When the host leaves, the
    earliest-joined remaining member takes over.
    """

    def __init__(
        self,
        registry: RoomRegistry,
        dispatcher: BroadcastDispatcher,
        clock: Clock,
        signal_event: Callable[[RoomEvent], None],
        *,
        join_history: int = DEFAULT_JOIN_HISTORY,
    ) -> None:
        """
        Initialize the presence manager.

        Args:
            registry: Registry owning the rooms, used for empty-room cleanup.
            dispatcher: Fan-out for membership notifications.
            clock: Wall clock for join times and log entries.
            signal_event: Receives RoomEvents for membership and host changes.
            join_history: Number of activity entries included in join snapshots.
        """
        self._registry = registry
        self._dispatcher = dispatcher
        self._clock = clock
        self._signal_event = signal_event
        self._join_history = join_history

    def join(
        self, room: Room, member_id: str, display_name: str, sink: MessageSink
    ) -> RoomSnapshot:
        """
        Add a connection to a room and seed its view with a snapshot.

        Joining again with the same connection updates the display name and sink
        but keeps the original join order.

        Returns:
            The snapshot that was sent to the joining connection.
        """
        now = self._clock()
        existing = room.members.get(member_id)
        if existing is not None:
            logger.debug("%s re-joined room %s", member_id, room.room_id)
            existing.display_name = display_name
            existing.sink = sink
        else:
            room.members[member_id] = Member(
                member_id=member_id, display_name=display_name, joined_at=now, sink=sink
            )
            room.activity_log.append_system(f"{display_name} joined the room", now)
            logger.info("%s (%s) joined room %s", display_name, member_id, room.room_id)

        if room.host is None:
            room.host = member_id
            self._signal_event(HostChangedEvent(room.room_id, member_id))

        snapshot = room.snapshot(history=self._join_history)
        self._dispatcher.dispatch(room, RoomStateMessage(payload=snapshot), member_id)
        if existing is None:
            self._dispatcher.dispatch(
                room,
                MemberJoinedMessage(
                    payload=MemberNoticePayload(display_name=display_name, member_id=member_id)
                ),
                member_id,
            )
            self._signal_event(MemberJoinedEvent(room.room_id, member_id, display_name))
        self._dispatcher.dispatch(room, MemberListMessage(payload=room.member_list()), member_id)
        return snapshot

    def leave(self, room: Room, member_id: str) -> bool:
        """
        Remove a member from a room.

        Elects a new host if needed, notifies the remaining members and deletes
        the room once it is empty. Leaving a room the connection is not part of
        does nothing.

        Returns:
            Whether the connection was a member.
        """
        member = room.members.pop(member_id, None)
        if member is None:
            return False
        now = self._clock()
        logger.info("%s (%s) left room %s", member.display_name, member_id, room.room_id)

        if room.host == member_id:
            room.host = next(iter(room.members), None)
            self._signal_event(HostChangedEvent(room.room_id, room.host))
            if room.host is not None:
                new_host = room.members[room.host]
                logger.info("Host of room %s is now %s", room.room_id, new_host.display_name)
                self._dispatcher.dispatch(
                    room,
                    HostChangeMessage(
                        payload=HostChangePayload(
                            new_host_id=new_host.member_id, new_host_name=new_host.display_name
                        )
                    ),
                    member_id,
                )

        entry = room.activity_log.append_system(f"{member.display_name} left the room", now)
        self._dispatcher.dispatch(room, ChatServerMessage(payload=entry), member_id)
        self._dispatcher.dispatch(
            room,
            MemberLeftMessage(
                payload=MemberNoticePayload(display_name=member.display_name, member_id=member_id)
            ),
            member_id,
        )
        self._dispatcher.dispatch(room, MemberListMessage(payload=room.member_list()), member_id)
        self._signal_event(MemberLeftEvent(room.room_id, member_id, member.display_name))

        self._registry.remove_if_empty(room.room_id)
        return True
