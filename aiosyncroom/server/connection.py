"""Represents a single WebSocket connection attached to the room server."""

from __future__ import annotations

import asyncio
import logging
import uuid
from contextlib import suppress
from typing import TYPE_CHECKING, cast

from aiohttp import WSMsgType, web

from aiosyncroom.models.types import ServerMessage

from .config import MAX_PENDING_MSG

logger = logging.getLogger(__name__)

# The cyclic import is not an issue during runtime, so hide it
# pyright: reportImportCycles=none
if TYPE_CHECKING:
    from .engine import RoomSyncEngine


class RoomConnection:
    """
    A client connected to a RoomSyncServer over a WebSocket.

    Inbound text frames are handed to the engine one at a time. Outbound
    messages are queued and written by a dedicated task, so the engine never
    waits for a slow client.
    """

    _engine: RoomSyncEngine
    _request: web.Request
    _wsock: web.WebSocketResponse
    _connection_id: str
    _to_write: asyncio.Queue[ServerMessage]
    """Queue for messages to be sent to the client through the WebSocket."""
    _writer_task: asyncio.Task[None] | None = None
    """Task responsible for sending JSON data."""
    _message_loop_task: asyncio.Task[None] | None = None
    """Task responsible for receiving and processing messages."""
    _closing: bool = False
    _disconnecting: bool = False
    """Flag to prevent multiple concurrent disconnect tasks."""
    _logger: logging.Logger

    def __init__(
        self,
        engine: RoomSyncEngine,
        request: web.Request,
        *,
        heartbeat: float = 55,
        max_pending: int = MAX_PENDING_MSG,
    ) -> None:
        """
        DO NOT CALL THIS CONSTRUCTOR. INTERNAL USE ONLY.

        Use RoomSyncServer.on_client_connect instead.

        Args:
            engine: The engine that owns all rooms.
            request: Web request that is upgraded to a WebSocket.
            heartbeat: Ping interval in seconds.
            max_pending: Outbound queue size before the client counts as too slow.
        """
        self._engine = engine
        self._request = request
        self._wsock = web.WebSocketResponse(heartbeat=heartbeat)
        self._connection_id = uuid.uuid4().hex
        self._to_write = asyncio.Queue(maxsize=max_pending)
        self._closing = False
        self._disconnecting = False
        self._logger = logger.getChild(self._connection_id[:8])
        self._logger.debug("Connection initialized for %s", request.remote)

    @property
    def connection_id(self) -> str:
        """Unique identifier of this connection, used as member id in rooms."""
        return self._connection_id

    async def disconnect(self) -> None:
        """Leave the room and close the connection."""
        if self._closing:
            return
        self._closing = True
        self._disconnecting = True
        self._logger.debug("Disconnecting")

        self._engine.disconnect(self._connection_id)

        current_task = asyncio.current_task()
        for task in (self._writer_task, self._message_loop_task):
            if task is not None and not task.done() and task is not current_task:
                task.cancel()
                with suppress(asyncio.CancelledError):
                    await task

        if not self._wsock.closed:
            await self._wsock.close()
        self._logger.info("Client disconnected")

    async def handle(self) -> web.WebSocketResponse:
        """
        Handle the complete websocket connection lifecycle.

        This method should only be called by RoomSyncServer.
        """
        try:
            try:
                async with asyncio.timeout(10):
                    await self._wsock.prepare(self._request)
            except TimeoutError:
                self._logger.warning("Timeout preparing request")
                raise
            self._logger.info("Connection established from %s", self._request.remote)

            self._engine.connect(self._connection_id, self.send_message)
            loop = asyncio.get_running_loop()
            self._writer_task = loop.create_task(self._writer())
            self._message_loop_task = loop.create_task(self._run_message_loop())
            with suppress(asyncio.CancelledError):
                await self._message_loop_task
        finally:
            await self.disconnect()
        return self._wsock

    async def _run_message_loop(self) -> None:
        """Run the main message processing loop."""
        try:
            async for msg in self._wsock:
                if msg.type in (WSMsgType.CLOSE, WSMsgType.CLOSING, WSMsgType.CLOSED):
                    break
                if msg.type == WSMsgType.ERROR:
                    self._logger.debug("WebSocket error: %s", self._wsock.exception())
                    break
                if msg.type == WSMsgType.BINARY:
                    self._logger.warning("Ignoring binary message, the protocol is JSON only")
                    continue
                if msg.type != WSMsgType.TEXT:
                    continue

                try:
                    self._engine.handle_text(self._connection_id, cast("str", msg.data))
                except Exception:
                    self._logger.exception("Error handling message")
            self._logger.debug("wsock was closed")
        except asyncio.CancelledError:
            self._logger.debug("Message loop cancelled")
        except Exception:
            self._logger.exception("Unexpected error inside websocket API")
        finally:
            # Cancel the writer when message loop exits
            if self._writer_task and not self._writer_task.done():
                self._logger.debug("Message loop finished, cancelling writer")
                self._writer_task.cancel()

    async def _writer(self) -> None:
        """Write outgoing messages from the queue."""
        try:
            while not self._wsock.closed and not self._closing:
                item = await self._to_write.get()
                try:
                    await self._wsock.send_str(item.to_json())
                except ConnectionError:
                    self._logger.warning("Connection error sending JSON data, ending writer task")
                    break
            self._logger.debug("WebSocket Connection was closed for the client, ending writer task")
        except asyncio.CancelledError:
            raise
        except Exception:
            self._logger.exception("Error in writer task for client")
        finally:
            # Cancel the message loop when writer exits
            if self._message_loop_task and not self._message_loop_task.done():
                self._logger.debug("Writer finished, cancelling message loop")
                self._message_loop_task.cancel()

    def send_message(self, message: ServerMessage) -> None:
        """
        Enqueue a message to be sent to the client.

        Never blocks. A client that does not keep up with its queue is
        disconnected.
        """
        if self._closing:
            return
        try:
            self._to_write.put_nowait(message)
        except asyncio.QueueFull:
            # Only trigger disconnect once, even if queue fills repeatedly
            if not self._disconnecting:
                self._disconnecting = True
                self._logger.error("Message queue full, client too slow - disconnecting")
                task = asyncio.get_running_loop().create_task(self.disconnect())
                task.add_done_callback(lambda t: t.exception() if not t.cancelled() else None)
            return
        self._logger.debug("Enqueueing message: %s", type(message).__name__)
