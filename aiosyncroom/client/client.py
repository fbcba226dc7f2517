"""Room sync client implementation to connect to a RoomSyncServer."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from contextlib import suppress
from typing import Any, TypeVar

from aiohttp import ClientSession, ClientWebSocketResponse, WSMessage, WSMsgType

from aiosyncroom.models.core import (
    ActivityEntry,
    ChatMessage,
    ChatPayload,
    ChatServerMessage,
    HostChangeMessage,
    HostChangePayload,
    JoinRoomMessage,
    JoinRoomPayload,
    MediaChangeMessage,
    MediaChangeServerMessage,
    MediaChangeServerPayload,
    MediaInfoMessage,
    MediaInfoPayload,
    MediaInfoRequestMessage,
    MemberInfo,
    MemberJoinedMessage,
    MemberLeftMessage,
    MemberListMessage,
    MemberNoticePayload,
    PeriodicUpdateMessage,
    PeriodicUpdateServerMessage,
    PeriodicUpdateServerPayload,
    PlaybackServerPayload,
    PlayPauseMessage,
    PlayPausePayload,
    PlayPauseServerMessage,
    RejectedMessage,
    RoomSnapshot,
    RoomStateMessage,
    RoomStatsMessage,
    RoomStatsPayload,
    RoomStatsRequestMessage,
    SeekMessage,
    SeekPayload,
    SeekServerMessage,
    SyncRequestMessage,
    SyncResponseMessage,
    SyncResponsePayload,
)
from aiosyncroom.models.media import AudioTrackMedia, YouTubeMedia
from aiosyncroom.models.types import ClientMessage, ServerMessage

logger = logging.getLogger(__name__)

_T = TypeVar("_T")

# Callback invoked with the snapshot received after joining a room.
RoomStateCallback = Callable[[RoomSnapshot], None]

# Callback invoked when another member joined or left.
MemberNoticeCallback = Callable[[MemberNoticePayload], None]

# Callback invoked with the refreshed member list of the room.
MemberListCallback = Callable[[list[MemberInfo]], None]

# Callback invoked when the host left and another member took over.
HostChangeCallback = Callable[[HostChangePayload], None]

# Callback invoked when a member loaded new media.
MediaChangeCallback = Callable[[MediaChangeServerPayload], None]

# Callback invoked when another member played, paused or seeked.
PlaybackCallback = Callable[[PlaybackServerPayload], None]

# Callback invoked with heartbeats relayed from the member driving playback.
PeriodicUpdateCallback = Callable[[PeriodicUpdateServerPayload], None]

# Callback invoked with the answer to request_sync().
SyncResponseCallback = Callable[[SyncResponsePayload], None]

# Callback invoked with new chat and system entries.
ChatCallback = Callable[[ActivityEntry], None]

# Callback invoked with the reason when the server rejected a message.
RejectedCallback = Callable[[str], None]

# Callback invoked with the answer to request_media_info().
MediaInfoCallback = Callable[[MediaInfoPayload], None]

# Callback invoked with the answer to request_room_stats().
RoomStatsCallback = Callable[[RoomStatsPayload], None]

# Callback invoked when the client disconnects from the server.
DisconnectCallback = Callable[[], None]


class RoomSyncClient:
    """
    Async client for a synced media room.

    The client must be created within an async context. After connect(), call
    join_room() to enter a room; all other requests require a joined room and
    are ignored by the server otherwise.
    """

    _session: ClientSession | None
    """Optional aiohttp ClientSession for WebSocket connection."""
    _owns_session: bool
    """Whether this client owns and should close the session."""
    _loop: asyncio.AbstractEventLoop
    """Event loop for this client."""
    _ws: ClientWebSocketResponse | None = None
    """WebSocket connection to the server."""
    _connected: bool = False
    """Whether the client is currently connected."""
    _reader_task: asyncio.Task[None] | None = None
    """Background task reading messages from server."""
    _send_lock: asyncio.Lock
    """Lock for serializing WebSocket message sends."""
    _room_state_waiter: asyncio.Future[RoomSnapshot] | None = None
    """Future resolved by the next room-state message."""

    _room_state: RoomSnapshot | None = None
    """Latest snapshot received from the server."""
    _members: list[MemberInfo]
    """Latest member list of the joined room."""
    _host_id: str | None = None
    """Host of the joined room, as last announced."""

    def __init__(self, *, session: ClientSession | None = None) -> None:
        """
        Create a new room sync client instance.

        Args:
            session: Optional aiohttp ClientSession. If None, a session is created
                and managed by this client.
        """
        self._session = session
        self._owns_session = session is None
        self._loop = asyncio.get_running_loop()
        self._send_lock = asyncio.Lock()
        self._members = []

        self._room_state_callbacks: list[RoomStateCallback] = []
        self._member_joined_callbacks: list[MemberNoticeCallback] = []
        self._member_left_callbacks: list[MemberNoticeCallback] = []
        self._member_list_callbacks: list[MemberListCallback] = []
        self._host_change_callbacks: list[HostChangeCallback] = []
        self._media_change_callbacks: list[MediaChangeCallback] = []
        self._play_pause_callbacks: list[PlaybackCallback] = []
        self._seek_callbacks: list[PlaybackCallback] = []
        self._periodic_update_callbacks: list[PeriodicUpdateCallback] = []
        self._sync_response_callbacks: list[SyncResponseCallback] = []
        self._chat_callbacks: list[ChatCallback] = []
        self._rejected_callbacks: list[RejectedCallback] = []
        self._media_info_callbacks: list[MediaInfoCallback] = []
        self._room_stats_callbacks: list[RoomStatsCallback] = []
        self._disconnect_callbacks: list[DisconnectCallback] = []

    @property
    def connected(self) -> bool:
        """Return True if the client currently has an active connection."""
        return self._connected and self._ws is not None and not self._ws.closed

    @property
    def room_state(self) -> RoomSnapshot | None:
        """Snapshot received when the room was last joined."""
        return self._room_state

    @property
    def room_id(self) -> str | None:
        """Id of the joined room."""
        return self._room_state.room_id if self._room_state is not None else None

    @property
    def members(self) -> list[MemberInfo]:
        """Members of the joined room in join order, kept current by member-list."""
        return list(self._members)

    @property
    def host_id(self) -> str | None:
        """Host of the joined room, kept current by host-change."""
        return self._host_id

    async def connect(self, url: str) -> None:
        """Connect to a room sync server via WebSocket."""
        if self.connected:
            logger.debug("Already connected")
            return

        if self._session is None:
            self._session = ClientSession()

        logger.info("Connecting to room sync server at %s", url)
        self._ws = await self._session.ws_connect(url, heartbeat=30)
        self._connected = True
        self._reader_task = self._loop.create_task(self._reader_loop())

    async def disconnect(self) -> None:
        """Disconnect from the server and release resources."""
        self._connected = False
        current_task = asyncio.current_task(loop=self._loop)

        if self._reader_task is not None:
            if self._reader_task is not current_task:
                self._reader_task.cancel()
                with suppress(asyncio.CancelledError):
                    await self._reader_task
            self._reader_task = None
        if self._ws is not None:
            await self._ws.close()
            self._ws = None
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None
        if self._room_state_waiter is not None and not self._room_state_waiter.done():
            self._room_state_waiter.cancel()
        self._room_state_waiter = None
        self._room_state = None
        self._members = []
        self._host_id = None

        self._notify(self._disconnect_callbacks, "disconnect")

    async def join_room(
        self, room_id: str, display_name: str | None = None, *, timeout: float = 10
    ) -> RoomSnapshot:
        """
        Join a room, leaving the current one if it differs.

        Returns:
            The room snapshot sent by the server.

        Raises:
            TimeoutError: If the server did not answer with a room-state in time.
            ValueError: If room_id is empty.
        """
        message = JoinRoomMessage(
            payload=JoinRoomPayload(room_id=room_id, display_name=display_name)
        )
        waiter: asyncio.Future[RoomSnapshot] = self._loop.create_future()
        self._room_state_waiter = waiter
        await self._send(message)
        try:
            return await asyncio.wait_for(waiter, timeout=timeout)
        except TimeoutError as err:
            raise TimeoutError(f"Timed out waiting for the state of room {room_id}") from err
        finally:
            if self._room_state_waiter is waiter:
                self._room_state_waiter = None

    async def change_media(self, media: YouTubeMedia | AudioTrackMedia) -> None:
        """Load new media for everyone in the room."""
        await self._send(MediaChangeMessage(payload=media))

    async def play_pause(self, *, is_playing: bool, position: float) -> None:
        """Report that the local player was played or paused."""
        await self._send(
            PlayPauseMessage(payload=PlayPausePayload(is_playing=is_playing, position=position))
        )

    async def seek(self, position: float, *, is_playing: bool | None = None) -> None:
        """Report that the local player seeked."""
        await self._send(SeekMessage(payload=SeekPayload(position=position, is_playing=is_playing)))

    async def send_periodic_update(self, *, is_playing: bool, position: float) -> None:
        """Send a heartbeat with the local playback state."""
        await self._send(
            PeriodicUpdateMessage(
                payload=PlayPausePayload(is_playing=is_playing, position=position)
            )
        )

    async def request_sync(self) -> None:
        """Ask for the estimated playback position, answered via sync response listeners."""
        await self._send(SyncRequestMessage())

    async def send_chat(self, text: str) -> None:
        """Post text to the room chat."""
        await self._send(ChatMessage(payload=ChatPayload(text=text)))

    async def request_media_info(self) -> None:
        """Ask for the stored media and playback fields of the room."""
        await self._send(MediaInfoRequestMessage())

    async def request_room_stats(self) -> None:
        """Ask for membership statistics of the room."""
        await self._send(RoomStatsRequestMessage())

    def add_room_state_listener(self, callback: RoomStateCallback) -> Callable[[], None]:
        """Add a listener for room-state messages.

        Returns:
            A function that removes this listener when called.
        """
        return self._add_listener(self._room_state_callbacks, callback)

    def add_member_joined_listener(self, callback: MemberNoticeCallback) -> Callable[[], None]:
        """Add a listener for members joining the room.

        Returns:
            A function that removes this listener when called.
        """
        return self._add_listener(self._member_joined_callbacks, callback)

    def add_member_left_listener(self, callback: MemberNoticeCallback) -> Callable[[], None]:
        """Add a listener for members leaving the room.

        Returns:
            A function that removes this listener when called.
        """
        return self._add_listener(self._member_left_callbacks, callback)

    def add_member_list_listener(self, callback: MemberListCallback) -> Callable[[], None]:
        """Add a listener for member-list messages.

        Returns:
            A function that removes this listener when called.
        """
        return self._add_listener(self._member_list_callbacks, callback)

    def add_host_change_listener(self, callback: HostChangeCallback) -> Callable[[], None]:
        """Add a listener for host-change messages.

        Returns:
            A function that removes this listener when called.
        """
        return self._add_listener(self._host_change_callbacks, callback)

    def add_media_change_listener(self, callback: MediaChangeCallback) -> Callable[[], None]:
        """Add a listener for media-change messages.

        Returns:
            A function that removes this listener when called.
        """
        return self._add_listener(self._media_change_callbacks, callback)

    def add_play_pause_listener(self, callback: PlaybackCallback) -> Callable[[], None]:
        """Add a listener for play-pause messages of other members.

        Returns:
            A function that removes this listener when called.
        """
        return self._add_listener(self._play_pause_callbacks, callback)

    def add_seek_listener(self, callback: PlaybackCallback) -> Callable[[], None]:
        """Add a listener for seek messages of other members.

        Returns:
            A function that removes this listener when called.
        """
        return self._add_listener(self._seek_callbacks, callback)

    def add_periodic_update_listener(
        self, callback: PeriodicUpdateCallback
    ) -> Callable[[], None]:
        """Add a listener for relayed periodic updates.

        Returns:
            A function that removes this listener when called.
        """
        return self._add_listener(self._periodic_update_callbacks, callback)

    def add_sync_response_listener(self, callback: SyncResponseCallback) -> Callable[[], None]:
        """Add a listener for sync-response messages.

        Returns:
            A function that removes this listener when called.
        """
        return self._add_listener(self._sync_response_callbacks, callback)

    def add_chat_listener(self, callback: ChatCallback) -> Callable[[], None]:
        """Add a listener for chat and system entries.

        Returns:
            A function that removes this listener when called.
        """
        return self._add_listener(self._chat_callbacks, callback)

    def add_rejected_listener(self, callback: RejectedCallback) -> Callable[[], None]:
        """Add a listener for messages the server rejected.

        Returns:
            A function that removes this listener when called.
        """
        return self._add_listener(self._rejected_callbacks, callback)

    def add_media_info_listener(self, callback: MediaInfoCallback) -> Callable[[], None]:
        """Add a listener for media-info messages.

        Returns:
            A function that removes this listener when called.
        """
        return self._add_listener(self._media_info_callbacks, callback)

    def add_room_stats_listener(self, callback: RoomStatsCallback) -> Callable[[], None]:
        """Add a listener for room-stats messages.

        Returns:
            A function that removes this listener when called.
        """
        return self._add_listener(self._room_stats_callbacks, callback)

    def add_disconnect_listener(self, callback: DisconnectCallback) -> Callable[[], None]:
        """Add a listener for disconnect events.

        Returns:
            A function that removes this listener when called.
        """
        return self._add_listener(self._disconnect_callbacks, callback)

    @staticmethod
    def _add_listener(callbacks: list[_T], callback: _T) -> Callable[[], None]:
        callbacks.append(callback)
        return lambda: callbacks.remove(callback) if callback in callbacks else None

    async def _send(self, message: ClientMessage) -> None:
        if not self.connected or self._ws is None:
            raise RuntimeError("Client is not connected")
        async with self._send_lock:
            await self._ws.send_str(message.to_json())

    async def _reader_loop(self) -> None:
        assert self._ws is not None
        try:
            async for msg in self._ws:
                await self._handle_ws_message(msg)
        except asyncio.CancelledError:
            pass
        except Exception:
            logger.exception("WebSocket reader encountered an error")
        finally:
            if self._connected:
                await self.disconnect()

    async def _handle_ws_message(self, msg: WSMessage) -> None:
        if msg.type is WSMsgType.TEXT:
            self._handle_json_message(msg.data)
        elif msg.type in (WSMsgType.CLOSE, WSMsgType.CLOSING, WSMsgType.CLOSED):
            logger.info("WebSocket closed by server")
            await self.disconnect()
        elif msg.type is WSMsgType.ERROR:
            logger.error("WebSocket error: %s", self._ws.exception() if self._ws else "unknown")
            await self.disconnect()
        else:
            logger.debug("Ignoring WebSocket message of type %s", msg.type)

    def _handle_json_message(self, data: str) -> None:
        try:
            message = ServerMessage.from_json(data)
        except Exception:
            logger.exception("Failed to parse server message: %s", data)
            return

        match message:
            case RoomStateMessage(payload=payload):
                self._handle_room_state(payload)
            case MemberJoinedMessage(payload=payload):
                self._notify(self._member_joined_callbacks, "member joined", payload)
            case MemberLeftMessage(payload=payload):
                self._notify(self._member_left_callbacks, "member left", payload)
            case MemberListMessage(payload=payload):
                self._members = list(payload.members)
                self._notify(self._member_list_callbacks, "member list", self.members)
            case HostChangeMessage(payload=payload):
                self._host_id = payload.new_host_id
                self._notify(self._host_change_callbacks, "host change", payload)
            case MediaChangeServerMessage(payload=payload):
                self._notify(self._media_change_callbacks, "media change", payload)
            case PlayPauseServerMessage(payload=payload):
                self._notify(self._play_pause_callbacks, "play/pause", payload)
            case SeekServerMessage(payload=payload):
                self._notify(self._seek_callbacks, "seek", payload)
            case PeriodicUpdateServerMessage(payload=payload):
                self._notify(self._periodic_update_callbacks, "periodic update", payload)
            case SyncResponseMessage(payload=payload):
                self._notify(self._sync_response_callbacks, "sync response", payload)
            case ChatServerMessage(payload=payload):
                self._notify(self._chat_callbacks, "chat", payload)
            case RejectedMessage(payload=payload):
                logger.warning("Server rejected message: %s", payload.reason)
                self._notify(self._rejected_callbacks, "rejected", payload.reason)
            case MediaInfoMessage(payload=payload):
                self._notify(self._media_info_callbacks, "media info", payload)
            case RoomStatsMessage(payload=payload):
                self._notify(self._room_stats_callbacks, "room stats", payload)
            case _:
                logger.debug("Unhandled server message type: %s", type(message).__name__)

    def _handle_room_state(self, payload: RoomSnapshot) -> None:
        self._room_state = payload
        self._members = list(payload.members)
        self._host_id = payload.host_id
        logger.info("Joined room %s with %d members", payload.room_id, len(payload.members))
        if self._room_state_waiter is not None and not self._room_state_waiter.done():
            self._room_state_waiter.set_result(payload)
        self._notify(self._room_state_callbacks, "room state", payload)

    @staticmethod
    def _notify(callbacks: Sequence[Callable[..., None]], name: str, *args: Any) -> None:
        for callback in list(callbacks):
            try:
                callback(*args)
            except Exception:
                logger.exception("Error in %s callback %s", name, callback)
