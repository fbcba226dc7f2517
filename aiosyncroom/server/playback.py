"""Transition rules for the playback state of a room."""

from __future__ import annotations

import logging
from collections.abc import Callable

from aiosyncroom.models.core import (
    ChatServerMessage,
    MediaChangeServerMessage,
    MediaChangeServerPayload,
    PeriodicUpdateServerMessage,
    PeriodicUpdateServerPayload,
    PlaybackServerPayload,
    PlayPauseServerMessage,
    SeekServerMessage,
)
from aiosyncroom.models.media import AudioTrackMedia, YouTubeMedia
from aiosyncroom.models.types import AuthorityPolicy
from aiosyncroom.util import Clock

from .config import MAX_CHAT_LENGTH, STALENESS_THRESHOLD_S
from .dispatch import BroadcastDispatcher
from .events import MediaChangedEvent, RoomEvent
from .room import Room

logger = logging.getLogger(__name__)


class RejectedError(Exception):
    """A well-formed message failed validation and was not applied."""

    def __init__(self, reason: str) -> None:
        """Initialize with the reason reported back to the sender."""
        super().__init__(reason)
        self.reason = reason


class PlaybackStateMachine:
    """
    Applies playback events to rooms.

    Callers must make sure the sender is a member of the room. Every accepted
    event updates the room, records the sender as controller and is fanned out
    through the dispatcher.
    """

    def __init__(
        self,
        dispatcher: BroadcastDispatcher,
        clock: Clock,
        signal_event: Callable[[RoomEvent], None],
        *,
        policy: AuthorityPolicy = AuthorityPolicy.STALENESS_TIMEOUT,
        staleness_threshold: float = STALENESS_THRESHOLD_S,
        max_chat_length: int = MAX_CHAT_LENGTH,
    ) -> None:
        """
        Initialize the state machine.

        Args:
            dispatcher: Fan-out for accepted events.
            clock: Wall clock used for last_update and log entries.
            signal_event: Receives RoomEvents for media changes.
            policy: Who may drive playback, see AuthorityPolicy.
            staleness_threshold: Seconds after which a silent controller loses
                its exclusive right to send periodic updates.
            max_chat_length: Longest accepted chat text after trimming.
        """
        self._dispatcher = dispatcher
        self._clock = clock
        self._signal_event = signal_event
        self.policy = policy
        self.staleness_threshold = staleness_threshold
        self.max_chat_length = max_chat_length

    def may_control(self, room: Room, sender_id: str, now: float, *, periodic: bool) -> bool:
        """
        Check whether a member may change the playback state.

        Args:
            room: The room to control.
            sender_id: The member sending the event.
            now: Time the event is applied.
            periodic: True for periodic-update, False for play-pause and seek.
        """
        if self.policy is AuthorityPolicy.OPEN:
            return True
        if self.policy is AuthorityPolicy.HOST_ONLY:
            return sender_id == room.host
        if not periodic:
            return True
        if room.controller == sender_id:
            return True
        if room.controller is None or not room.is_member(room.controller):
            # Nobody holds control
            return True
        return now - room.last_update > self.staleness_threshold

    def change_media(
        self, room: Room, sender_id: str, media: YouTubeMedia | AudioTrackMedia
    ) -> None:
        """Load new media, playback restarts paused at zero."""
        now = self._clock()
        sender_name = room.display_name_of(sender_id)
        room.media = media
        room.set_playback(is_playing=False, position=0.0, now=now)
        room.controller = sender_id
        logger.info(
            "Media changed in room %s by %s: %s", room.room_id, sender_name, media.display_title
        )

        self._dispatcher.dispatch(
            room,
            MediaChangeServerMessage(
                payload=MediaChangeServerPayload(
                    media=media, changed_by=sender_name, changer_id=sender_id
                )
            ),
            sender_id,
        )
        entry = room.activity_log.append_system(
            f"{sender_name} loaded: {media.display_title}", now
        )
        self._dispatcher.dispatch(room, ChatServerMessage(payload=entry), sender_id)
        self._signal_event(MediaChangedEvent(room.room_id, sender_id, media.display_title))

    def play_pause(self, room: Room, sender_id: str, *, is_playing: bool, position: float) -> bool:
        """Apply a play or pause, returns whether it was accepted."""
        now = self._clock()
        if not self.may_control(room, sender_id, now, periodic=False):
            logger.debug("Dropping play-pause from %s in room %s", sender_id, room.room_id)
            return False
        room.set_playback(is_playing=is_playing, position=position, now=now)
        room.controller = sender_id
        logger.debug(
            "Play/pause in room %s: playing=%s at %.2fs",
            room.room_id,
            room.is_playing,
            room.position,
        )
        self._dispatcher.dispatch(
            room, PlayPauseServerMessage(payload=self._playback_payload(room, sender_id)), sender_id
        )
        return True

    def seek(
        self, room: Room, sender_id: str, *, position: float, is_playing: bool | None = None
    ) -> bool:
        """Apply a seek, the play state is kept unless given."""
        now = self._clock()
        if not self.may_control(room, sender_id, now, periodic=False):
            logger.debug("Dropping seek from %s in room %s", sender_id, room.room_id)
            return False
        room.set_playback(
            is_playing=room.is_playing if is_playing is None else is_playing,
            position=position,
            now=now,
        )
        room.controller = sender_id
        logger.debug("Seek in room %s to %.2fs", room.room_id, room.position)
        self._dispatcher.dispatch(
            room, SeekServerMessage(payload=self._playback_payload(room, sender_id)), sender_id
        )
        return True

    def periodic_update(
        self, room: Room, sender_id: str, *, is_playing: bool, position: float
    ) -> bool:
        """Apply a heartbeat if the sender holds authority over the room."""
        now = self._clock()
        if not self.may_control(room, sender_id, now, periodic=True):
            logger.debug(
                "Dropping periodic-update from %s in room %s, controlled by %s",
                sender_id,
                room.room_id,
                room.controller,
            )
            return False
        if room.controller != sender_id:
            logger.debug("%s took over control of room %s", sender_id, room.room_id)
        room.set_playback(is_playing=is_playing, position=position, now=now)
        room.controller = sender_id
        self._dispatcher.dispatch(
            room,
            PeriodicUpdateServerMessage(
                payload=PeriodicUpdateServerPayload(
                    is_playing=room.is_playing,
                    position=room.position,
                    from_name=room.display_name_of(sender_id),
                    from_id=sender_id,
                )
            ),
            sender_id,
        )
        return True

    def chat(self, room: Room, sender_id: str, text: str) -> None:
        """
        Post chat text to the room.

        Raises:
            RejectedError: If the trimmed text is empty or too long.
        """
        text = text.strip()
        if not text:
            raise RejectedError("Chat message must not be empty")
        if len(text) > self.max_chat_length:
            raise RejectedError(
                f"Chat message must be at most {self.max_chat_length} characters"
            )
        member = room.members[sender_id]
        entry = room.activity_log.append_user(sender_id, member.display_name, text, self._clock())
        logger.debug("Chat in room %s from %s", room.room_id, member.display_name)
        self._dispatcher.dispatch(room, ChatServerMessage(payload=entry), sender_id)

    def _playback_payload(self, room: Room, sender_id: str) -> PlaybackServerPayload:
        return PlaybackServerPayload(
            is_playing=room.is_playing,
            position=room.position,
            controlled_by=room.display_name_of(sender_id),
            controller_id=sender_id,
        )
