"""Fan-out of outbound room messages."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from aiosyncroom.models.core import (
    ChatServerMessage,
    HostChangeMessage,
    MediaChangeServerMessage,
    MediaInfoMessage,
    MemberJoinedMessage,
    MemberLeftMessage,
    MemberListMessage,
    PeriodicUpdateServerMessage,
    PlayPauseServerMessage,
    RejectedMessage,
    RoomStateMessage,
    RoomStatsMessage,
    SeekServerMessage,
    SyncResponseMessage,
)
from aiosyncroom.models.types import Delivery, ServerMessage

if TYPE_CHECKING:
    from .room import Room

logger = logging.getLogger(__name__)

ROUTES: dict[type[ServerMessage], Delivery] = {
    # Sender included
    MediaChangeServerMessage: Delivery.ALL,
    ChatServerMessage: Delivery.ALL,
    MemberListMessage: Delivery.ALL,
    HostChangeMessage: Delivery.ALL,
    # Sender excluded, it applied the change locally
    PlayPauseServerMessage: Delivery.OTHERS,
    SeekServerMessage: Delivery.OTHERS,
    PeriodicUpdateServerMessage: Delivery.OTHERS,
    MemberJoinedMessage: Delivery.OTHERS,
    MemberLeftMessage: Delivery.OTHERS,
    # Answers to a single connection
    RoomStateMessage: Delivery.SENDER,
    SyncResponseMessage: Delivery.SENDER,
    RejectedMessage: Delivery.SENDER,
    MediaInfoMessage: Delivery.SENDER,
    RoomStatsMessage: Delivery.SENDER,
}
"""Recipients of every outbound message type relative to the acting member."""


class BroadcastDispatcher:
    """Delivers outbound messages to the members of a room per the routing table."""

    def __init__(self, routes: dict[type[ServerMessage], Delivery] | None = None) -> None:
        """Initialize with the given routing table, defaults to ROUTES."""
        self._routes = dict(ROUTES if routes is None else routes)

    def delivery_for(self, message: ServerMessage) -> Delivery:
        """Return the delivery rule of a message."""
        try:
            return self._routes[type(message)]
        except KeyError:
            raise ValueError(f"No route for message type {type(message).__name__}") from None

    def dispatch(self, room: Room, message: ServerMessage, sender_id: str) -> int:
        """
        Send a message to the members of a room.

        Args:
            room: Room whose members receive the message.
            message: The outbound message, must be listed in the routing table.
            sender_id: Member whose action produced the message. It does not need
                to be a member anymore, e.g. for notifications about its leave.

        Returns:
            Number of members the message was handed to.
        """
        delivery = self.delivery_for(message)
        if delivery is Delivery.SENDER:
            recipients = [m for m in room.members.values() if m.member_id == sender_id]
        elif delivery is Delivery.OTHERS:
            recipients = [m for m in room.members.values() if m.member_id != sender_id]
        else:
            recipients = list(room.members.values())

        for member in recipients:
            try:
                member.sink(message)
            except Exception:
                logger.exception(
                    "Failed to enqueue %s for member %s", type(message).__name__, member.member_id
                )
        return len(recipients)
