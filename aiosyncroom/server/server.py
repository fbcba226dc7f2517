"""Room sync server exposing the room protocol over aiohttp."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable

import aiohttp_cors
from aiohttp import web

from aiosyncroom.util import Clock

from .config import ServerConfig
from .connection import RoomConnection
from .engine import RoomSyncEngine
from .events import RoomEvent
from .http import RoomHttpApi, error_middleware

logger = logging.getLogger(__name__)


class RoomSyncServer:
    """Accepts WebSocket clients and serves read-only HTTP introspection."""

    _config: ServerConfig
    _engine: RoomSyncEngine
    _connections: set[RoomConnection]
    """All open WebSocket connections."""
    _started_at: float
    _app: web.Application | None
    """Web application instance for the server."""
    _app_runner: web.AppRunner | None
    """App runner for the web application."""
    _tcp_site: web.TCPSite | None
    """TCP site for the web application."""

    def __init__(self, config: ServerConfig | None = None, clock: Clock = time.time) -> None:
        """
        Initialize a new room sync server.

        Args:
            config: Server configuration, defaults to ServerConfig().
            clock: Wall clock returning epoch seconds, used for room timestamps.
        """
        self._config = config or ServerConfig()
        self._engine = RoomSyncEngine(self._config, clock)
        self._connections = set()
        self._started_at = time.monotonic()
        self._app = None
        self._app_runner = None
        self._tcp_site = None
        logger.debug(
            "RoomSyncServer initialized: policy=%s", self._config.authority_policy.value
        )

    def _create_web_application(self) -> web.Application:
        """
        Create and configure the aiohttp web application.

        Returns:
            Configured aiohttp web.Application instance.
        """
        app = web.Application(middlewares=[error_middleware])
        app.router.add_get(self._config.ws_path, self.on_client_connect)
        RoomHttpApi(self).register(app)

        cors = aiohttp_cors.setup(
            app,
            defaults={
                origin: aiohttp_cors.ResourceOptions(
                    allow_credentials=True,
                    expose_headers="*",
                    allow_headers="*",
                    allow_methods=["GET", "POST"],
                )
                for origin in self._config.cors_origins
            },
        )
        for route in list(app.router.routes()):
            cors.add(route)
        return app

    @property
    def config(self) -> ServerConfig:
        """Configuration of this server."""
        return self._config

    @property
    def engine(self) -> RoomSyncEngine:
        """The engine owning all rooms."""
        return self._engine

    @property
    def connections(self) -> set[RoomConnection]:
        """Get the set of all open connections."""
        return self._connections

    @property
    def uptime(self) -> float:
        """Seconds since this server was created."""
        return time.monotonic() - self._started_at

    @property
    def port(self) -> int | None:
        """Port the server listens on, None while stopped."""
        if self._app_runner is None or not self._app_runner.addresses:
            return None
        return int(self._app_runner.addresses[0][1])

    def add_event_listener(self, callback: Callable[[RoomSyncEngine, RoomEvent], None]) -> Callable[[], None]:
        """
        Register a callback to listen for room events.

        Returns a function to remove the listener.
        """
        return self._engine.add_event_listener(callback)

    async def on_client_connect(self, request: web.Request) -> web.StreamResponse:
        """Handle an incoming WebSocket connection."""
        logger.debug("Incoming client connection from %s", request.remote)
        connection = RoomConnection(
            self._engine, request, max_pending=self._config.max_pending_messages
        )
        self._connections.add(connection)
        try:
            return await connection.handle()
        finally:
            self._connections.discard(connection)

    async def start_server(self, port: int | None = None, host: str | None = None) -> None:
        """
        Start listening.

        :param port: The TCP port to bind to, defaults to the configured port. 0 picks
            a free port.
        :param host: The IP address to listen on, defaults to the configured host.
        """
        if self._app is not None:
            logger.warning("Server is already running")
            return

        host = self._config.host if host is None else host
        port = self._config.port if port is None else port
        logger.info("Starting room sync server on %s:%d", host, port)
        self._app = self._create_web_application()
        self._app_runner = web.AppRunner(self._app)
        await self._app_runner.setup()

        try:
            self._tcp_site = web.TCPSite(
                self._app_runner,
                host=host if host != "0.0.0.0" else None,
                port=port,
            )
            await self._tcp_site.start()
            logger.info("Room sync server started successfully on %s:%d", host, self.port or port)
        except OSError as e:
            logger.error("Failed to start server on %s:%d: %s", host, port, e)
            await self._app_runner.cleanup()
            self._app_runner = None
            self._app = None
            raise

    async def stop_server(self) -> None:
        """Stop the HTTP server."""
        if self._tcp_site:
            await self._tcp_site.stop()
            self._tcp_site = None
            logger.debug("TCP site stopped")

        if self._app_runner:
            await self._app_runner.cleanup()
            self._app_runner = None
            logger.debug("App runner cleaned up")

        self._app = None

    async def close(self) -> None:
        """Disconnect all clients and stop the server."""
        connections = list(self._connections)
        if connections:
            results = await asyncio.gather(
                *(c.disconnect() for c in connections), return_exceptions=True
            )
            for connection, result in zip(connections, results, strict=True):
                if isinstance(result, Exception):
                    logger.warning(
                        "Error disconnecting %s: %s", connection.connection_id, result
                    )
        await self.stop_server()
