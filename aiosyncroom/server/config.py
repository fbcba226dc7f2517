"""Runtime configuration of the room server."""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field

from aiosyncroom.models.types import AuthorityPolicy

logger = logging.getLogger(__name__)

DEFAULT_CORS_ORIGINS = (
    "http://localhost:3000",
    "https://*.vercel.app",
    "https://*.onrender.com",
    "https://*.claude.ai",
)
STALENESS_THRESHOLD_S = 10.0
MAX_CHAT_LENGTH = 500
MAX_PENDING_MSG = 4096


@dataclass
class ServerConfig:
    """Settings of a RoomSyncServer."""

    host: str = "0.0.0.0"
    port: int = 3001
    ws_path: str = "/ws"
    """Path of the room WebSocket endpoint."""
    cors_origins: tuple[str, ...] = field(default=DEFAULT_CORS_ORIGINS)
    """Origins allowed to make credentialed cross-origin requests, matched literally."""
    authority_policy: AuthorityPolicy = AuthorityPolicy.STALENESS_TIMEOUT
    staleness_threshold: float = STALENESS_THRESHOLD_S
    """Seconds without playback updates after which anyone may drive periodic updates."""
    chat_history_size: int = 50
    join_history_size: int = 10
    """Newest activity entries included in the snapshot sent on join."""
    max_chat_length: int = MAX_CHAT_LENGTH
    max_pending_messages: int = MAX_PENDING_MSG
    """Outbound queue size per connection before it is dropped as too slow."""

    def __post_init__(self) -> None:
        """Validate field values."""
        if not 0 < self.port < 65536:
            raise ValueError(f"port must be in range 1-65535, got {self.port}")
        if not self.ws_path.startswith("/"):
            raise ValueError(f"ws_path must start with '/', got {self.ws_path!r}")
        if self.staleness_threshold < 0:
            raise ValueError("staleness_threshold must not be negative")
        if self.chat_history_size <= 0:
            raise ValueError("chat_history_size must be positive")
        if not 0 <= self.join_history_size <= self.chat_history_size:
            raise ValueError("join_history_size must be between 0 and chat_history_size")
        if self.max_chat_length <= 0:
            raise ValueError("max_chat_length must be positive")
        if self.max_pending_messages <= 0:
            raise ValueError("max_pending_messages must be positive")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> ServerConfig:
        """
        Build a configuration from environment variables.

        Recognized variables: HOST, PORT, SYNCROOM_WS_PATH, SYNCROOM_CORS_ORIGINS
        (comma separated), SYNCROOM_AUTHORITY_POLICY (open, host_only or
        staleness_timeout) and SYNCROOM_STALENESS_SECONDS. Unset variables keep
        their defaults.
        """
        env = os.environ if environ is None else environ
        kwargs: dict[str, object] = {}
        if host := env.get("HOST"):
            kwargs["host"] = host
        if port := env.get("PORT"):
            kwargs["port"] = int(port)
        if ws_path := env.get("SYNCROOM_WS_PATH"):
            kwargs["ws_path"] = ws_path
        if origins := env.get("SYNCROOM_CORS_ORIGINS"):
            kwargs["cors_origins"] = tuple(o.strip() for o in origins.split(",") if o.strip())
        if policy := env.get("SYNCROOM_AUTHORITY_POLICY"):
            try:
                kwargs["authority_policy"] = AuthorityPolicy(policy.strip().lower())
            except ValueError:
                raise ValueError(
                    f"Unknown authority policy {policy!r}, expected one of "
                    f"{[p.value for p in AuthorityPolicy]}"
                ) from None
        if staleness := env.get("SYNCROOM_STALENESS_SECONDS"):
            kwargs["staleness_threshold"] = float(staleness)
        config = cls(**kwargs)  # type: ignore[arg-type]
        logger.debug("Loaded configuration: %s", config)
        return config
