"""Run a standalone room sync server: ``python -m aiosyncroom``."""

from __future__ import annotations

import asyncio
import logging
import os
from contextlib import suppress

from aiosyncroom.server.config import ServerConfig
from aiosyncroom.server.server import RoomSyncServer
from aiosyncroom.util import get_local_ip

logger = logging.getLogger("aiosyncroom")


async def serve(config: ServerConfig) -> None:
    """Run the server until cancelled."""
    server = RoomSyncServer(config)
    await server.start_server()
    if (ip := get_local_ip()) is not None:
        logger.info("Rooms reachable at ws://%s:%d%s", ip, server.port or config.port, config.ws_path)
    try:
        await asyncio.Event().wait()
    finally:
        await server.close()


def main() -> None:
    """Configure logging from LOG_LEVEL and serve forever."""
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    config = ServerConfig.from_env()
    with suppress(KeyboardInterrupt):
        asyncio.run(serve(config))


if __name__ == "__main__":
    main()
