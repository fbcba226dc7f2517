"""Routes inbound client messages of all connections to their rooms."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from contextlib import suppress
from dataclasses import dataclass

import orjson

from aiosyncroom.models.core import (
    ChatMessage,
    JoinRoomMessage,
    JoinRoomPayload,
    MediaChangeMessage,
    MediaInfoMessage,
    MediaInfoRequestMessage,
    PeriodicUpdateMessage,
    PlayPauseMessage,
    RejectedMessage,
    RejectedPayload,
    RoomStatsMessage,
    RoomStatsRequestMessage,
    SeekMessage,
    SyncRequestMessage,
    SyncResponseMessage,
    SyncResponsePayload,
)
from aiosyncroom.models.types import ClientMessage
from aiosyncroom.util import Clock, default_display_name, to_millis

from .config import ServerConfig
from .dispatch import BroadcastDispatcher
from .events import RoomCreatedEvent, RoomEvent, RoomRemovedEvent
from .playback import PlaybackStateMachine, RejectedError
from .presence import PresenceManager
from .registry import RoomRegistry
from .room import MessageSink, Room
from .sync import estimate

logger = logging.getLogger(__name__)

KNOWN_MESSAGE_TYPES = frozenset(
    cls.type
    for cls in (
        JoinRoomMessage,
        MediaChangeMessage,
        PlayPauseMessage,
        SeekMessage,
        PeriodicUpdateMessage,
        SyncRequestMessage,
        ChatMessage,
        MediaInfoRequestMessage,
        RoomStatsRequestMessage,
    )
)


@dataclass
class Session:
    """What the engine knows about one connection."""

    connection_id: str
    sink: MessageSink
    room_id: str | None = None
    """Room the connection joined, None before the first join."""


class RoomSyncEngine:
    """
    The room synchronization engine.

    Owns the registry and every connection session. Each inbound message is
    validated, applied to exactly one room and fanned out within a single
    synchronous call, so no two mutations of a room ever interleave as long as
    all calls happen on one event loop.
    """

    _sessions: dict[str, Session]
    _event_cbs: list[Callable[[RoomSyncEngine, RoomEvent], None]]

    def __init__(self, config: ServerConfig | None = None, clock: Clock = time.time) -> None:
        """
        Initialize the engine.

        Args:
            config: Server configuration, defaults to ServerConfig().
            clock: Wall clock returning epoch seconds.
        """
        self._config = config or ServerConfig()
        self._clock = clock
        self._sessions = {}
        self._event_cbs = []
        self._registry = RoomRegistry(
            clock,
            log_capacity=self._config.chat_history_size,
            on_created=lambda room: self._signal_event(RoomCreatedEvent(room.room_id)),
            on_removed=lambda room: self._signal_event(RoomRemovedEvent(room.room_id)),
        )
        self._dispatcher = BroadcastDispatcher()
        self._presence = PresenceManager(
            self._registry,
            self._dispatcher,
            clock,
            self._signal_event,
            join_history=self._config.join_history_size,
        )
        self._playback = PlaybackStateMachine(
            self._dispatcher,
            clock,
            self._signal_event,
            policy=self._config.authority_policy,
            staleness_threshold=self._config.staleness_threshold,
            max_chat_length=self._config.max_chat_length,
        )

    @property
    def config(self) -> ServerConfig:
        """Configuration of this engine."""
        return self._config

    @property
    def registry(self) -> RoomRegistry:
        """Read-only use intended, rooms are mutated through messages only."""
        return self._registry

    @property
    def connection_count(self) -> int:
        """Number of connected sessions, joined or not."""
        return len(self._sessions)

    def room_of(self, connection_id: str) -> Room | None:
        """Return the room a connection is a member of."""
        session = self._sessions.get(connection_id)
        if session is None or session.room_id is None:
            return None
        room = self._registry.get(session.room_id)
        if room is None or not room.is_member(connection_id):
            return None
        return room

    def connect(self, connection_id: str, sink: MessageSink) -> None:
        """Register a new connection, it is not part of any room yet."""
        if connection_id in self._sessions:
            raise ValueError(f"Connection {connection_id} is already registered")
        self._sessions[connection_id] = Session(connection_id, sink)
        logger.debug("Connection %s registered", connection_id)

    def disconnect(self, connection_id: str) -> None:
        """Tear down a connection, leaving its room immediately."""
        session = self._sessions.pop(connection_id, None)
        if session is None:
            return
        if (room := self._leave_current_room(session)) is not None:
            logger.debug("Connection %s left room %s on disconnect", connection_id, room.room_id)
        logger.debug("Connection %s unregistered", connection_id)

    def handle_text(self, connection_id: str, data: str | bytes) -> None:
        """
        Handle a raw JSON message of a connection.

        Malformed messages are answered with a rejected notice. Messages other
        than join-room from connections outside of a room are ignored.
        """
        session = self._sessions.get(connection_id)
        if session is None:
            logger.debug("Ignoring message from unknown connection %s", connection_id)
            return
        try:
            raw = orjson.loads(data)
        except orjson.JSONDecodeError:
            self._reject(session, "Message is not valid JSON")
            return
        if not isinstance(raw, dict):
            self._reject(session, "Message must be a JSON object")
            return

        msg_type = raw.get("type")
        if msg_type != JoinRoomMessage.type and self.room_of(connection_id) is None:
            logger.debug("Ignoring %s from %s outside of a room", msg_type, connection_id)
            return
        if not isinstance(msg_type, str):
            self._reject(session, "Unknown message type")
            return
        if msg_type not in KNOWN_MESSAGE_TYPES:
            self._reject(session, f"Unknown message type: {msg_type}")
            return
        try:
            message = ClientMessage.from_dict(raw)
        except (LookupError, TypeError, ValueError) as err:
            logger.debug("Invalid %s from %s: %s", msg_type, connection_id, err)
            self._reject(session, f"Invalid {msg_type} data")
            return
        self.handle_message(connection_id, message)

    def handle_message(self, connection_id: str, message: ClientMessage) -> None:
        """Apply a parsed client message."""
        session = self._sessions.get(connection_id)
        if session is None:
            logger.debug("Ignoring message from unknown connection %s", connection_id)
            return

        if isinstance(message, JoinRoomMessage):
            self._join(session, message.payload)
            return

        room = self.room_of(connection_id)
        if room is None:
            logger.debug(
                "Ignoring %s from %s outside of a room", type(message).__name__, connection_id
            )
            return

        try:
            match message:
                case MediaChangeMessage(media):
                    self._playback.change_media(room, connection_id, media)
                case PlayPauseMessage(payload):
                    self._playback.play_pause(
                        room,
                        connection_id,
                        is_playing=payload.is_playing,
                        position=payload.position,
                    )
                case SeekMessage(payload):
                    self._playback.seek(
                        room,
                        connection_id,
                        position=payload.position,
                        is_playing=payload.is_playing,
                    )
                case PeriodicUpdateMessage(payload):
                    self._playback.periodic_update(
                        room,
                        connection_id,
                        is_playing=payload.is_playing,
                        position=payload.position,
                    )
                case ChatMessage(payload):
                    self._playback.chat(room, connection_id, payload.text)
                case SyncRequestMessage():
                    self._respond_sync(room, connection_id)
                case MediaInfoRequestMessage():
                    self._dispatcher.dispatch(
                        room, MediaInfoMessage(payload=room.media_info()), connection_id
                    )
                case RoomStatsRequestMessage():
                    self._dispatcher.dispatch(
                        room, RoomStatsMessage(payload=room.stats(self._clock())), connection_id
                    )
                case _:
                    logger.debug("Unhandled client message type: %s", type(message).__name__)
        except RejectedError as err:
            self._reject(session, err.reason)

    def add_event_listener(
        self, callback: Callable[[RoomSyncEngine, RoomEvent], None]
    ) -> Callable[[], None]:
        """
        Register a callback to listen for room events.

        Events include rooms being created and removed, members joining and
        leaving, host changes and media changes.

        Returns a function to remove the listener.
        """
        self._event_cbs.append(callback)

        def _remove() -> None:
            with suppress(ValueError):
                self._event_cbs.remove(callback)

        return _remove

    def _signal_event(self, event: RoomEvent) -> None:
        for cb in self._event_cbs:
            try:
                cb(self, event)
            except Exception:
                logger.exception("Error in event listener")

    def _join(self, session: Session, payload: JoinRoomPayload) -> None:
        if session.room_id is not None and session.room_id != payload.room_id:
            self._leave_current_room(session)
        room = self._registry.get_or_create(payload.room_id)
        session.room_id = room.room_id
        display_name = payload.display_name or default_display_name(session.connection_id)
        self._presence.join(room, session.connection_id, display_name, session.sink)

    def _leave_current_room(self, session: Session) -> Room | None:
        if session.room_id is None:
            return None
        room = self._registry.get(session.room_id)
        session.room_id = None
        if room is None or not self._presence.leave(room, session.connection_id):
            return None
        return room

    def _respond_sync(self, room: Room, connection_id: str) -> None:
        now = self._clock()
        current = estimate(room, now)
        self._dispatcher.dispatch(
            room,
            SyncResponseMessage(
                payload=SyncResponsePayload(
                    position=current.position,
                    is_playing=current.is_playing,
                    controller=room.controller,
                    server_time=to_millis(now),
                    media=room.media,
                )
            ),
            connection_id,
        )

    def _reject(self, session: Session, reason: str) -> None:
        logger.debug("Rejecting message from %s: %s", session.connection_id, reason)
        try:
            session.sink(RejectedMessage(payload=RejectedPayload(reason=reason)))
        except Exception:
            logger.exception("Failed to enqueue rejection for %s", session.connection_id)
