"""Utility functions for aiosyncroom."""

from __future__ import annotations

import socket
from collections.abc import Callable

Clock = Callable[[], float]
"""Returns wall-clock time in seconds since the epoch."""


def to_millis(seconds: float) -> int:
    """Convert epoch seconds to the integer milliseconds used on the wire."""
    return int(round(seconds * 1000))


def default_display_name(member_id: str) -> str:
    """Name given to members that joined without one."""
    return f"User{member_id[:4]}"


def get_local_ip() -> str | None:
    """Get a local IP address to print in the startup banner.

    Returns the IP address of the interface that would be used to connect
    to an external address, or None if no network is available.
    """
    try:
        # This doesn't send any data, just determines which interface would be used
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as s:
            s.connect(("8.8.8.8", 80))
            result: str = s.getsockname()[0]
            return result
    except OSError:
        return None
