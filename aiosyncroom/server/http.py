"""Read-only HTTP endpoints and error middleware of the room server."""

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from aiohttp import web

from aiosyncroom.util import to_millis

if TYPE_CHECKING:
    from .server import RoomSyncServer

logger = logging.getLogger(__name__)

VERSION = "2.0.0"
FEATURES = [
    "YouTube Videos",
    "Audio Tracks",
    "Real-time Chat",
    "User Management",
    "Host Election",
]
MIN_ROOM_ID_LENGTH = 3
MAX_ROOM_ID_LENGTH = 20

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]


@web.middleware
async def error_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    """Turn unknown routes and unhandled errors into JSON responses."""
    try:
        return await handler(request)
    except web.HTTPNotFound:
        return web.json_response({"error": "Endpoint not found"}, status=404)
    except web.HTTPException:
        raise
    except Exception:
        logger.exception("Unhandled error serving %s %s", request.method, request.path)
        return web.json_response({"error": "Internal server error"}, status=500)


class RoomHttpApi:
    """Introspection endpoints reading from the registry of a server."""

    def __init__(self, server: RoomSyncServer) -> None:
        """Attach to the server whose rooms are exposed."""
        self._server = server

    def register(self, app: web.Application) -> None:
        """Add all routes to the application."""
        app.router.add_get("/", self.index)
        app.router.add_get("/health", self.health)
        app.router.add_get("/api/stats", self.stats)
        app.router.add_get("/api/room/{room_id}", self.room_info)
        app.router.add_post("/api/room/create", self.room_create)

    async def index(self, request: web.Request) -> web.Response:
        """Report that the server is running."""
        return web.json_response(
            {
                "status": "Room sync server is running",
                "rooms": len(self._server.engine.registry),
                "features": FEATURES,
                "timestamp": datetime.now(UTC).isoformat(),
            }
        )

    async def health(self, request: web.Request) -> web.Response:
        """Health check."""
        return web.json_response(
            {
                "status": "healthy",
                "rooms": len(self._server.engine.registry),
                "connections": self._server.engine.connection_count,
                "uptime": self._server.uptime,
                "version": VERSION,
            }
        )

    async def stats(self, request: web.Request) -> web.Response:
        """Server wide room and member counts."""
        registry = self._server.engine.registry
        rooms = list(registry)
        return web.json_response(
            {
                "totalRooms": len(rooms),
                "activeRooms": sum(1 for room in rooms if not room.is_empty),
                "totalUsers": registry.member_count,
                "uptime": self._server.uptime,
                "timestamp": int(time.time() * 1000),
            }
        )

    async def room_info(self, request: web.Request) -> web.Response:
        """Public information about one room."""
        room_id = request.match_info["room_id"]
        room = self._server.engine.registry.get(room_id)
        if room is None:
            return web.json_response({"error": "Room not found"}, status=404)
        snapshot = room.snapshot()
        return web.json_response(
            {
                "roomId": room.room_id,
                "userCount": len(room.members),
                "users": [
                    {"displayName": m.display_name, "joinedAt": m.joined_at}
                    for m in snapshot.members
                ],
                "hostId": room.host,
                "media": room.media.to_dict() if room.media is not None else None,
                "isPlaying": room.is_playing,
                "lastUpdate": snapshot.last_update,
                "createdAt": to_millis(room.created_at),
                "chatMessageCount": len(room.activity_log),
            }
        )

    async def room_create(self, request: web.Request) -> web.Response:
        """
        Check a room id before handing out a join link.

        Rooms are only created by their first join, this endpoint merely
        validates the id and reports whether it is still free.
        """
        try:
            data = await request.json()
        except ValueError:
            return web.json_response({"error": "Body must be JSON"}, status=400)
        room_id = data.get("roomId") if isinstance(data, dict) else None
        if (
            not isinstance(room_id, str)
            or not MIN_ROOM_ID_LENGTH <= len(room_id) <= MAX_ROOM_ID_LENGTH
        ):
            return web.json_response(
                {
                    "error": (
                        f"Room ID must be between {MIN_ROOM_ID_LENGTH}-"
                        f"{MAX_ROOM_ID_LENGTH} characters"
                    )
                },
                status=400,
            )
        if room_id in self._server.engine.registry:
            return web.json_response({"error": "Room already exists"}, status=409)
        return web.json_response(
            {
                "roomId": room_id,
                "message": "Room ready to be created",
                "joinUrl": f"{request.scheme}://{request.host}?room={room_id}",
            }
        )
