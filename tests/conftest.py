from __future__ import annotations

from typing import Any, TypeVar

import orjson
import pytest

from aiosyncroom.models.types import ServerMessage
from aiosyncroom.server.config import ServerConfig
from aiosyncroom.server.engine import RoomSyncEngine

_M = TypeVar("_M", bound=ServerMessage)

T0 = 1_700_000_000.0


class FakeClock:
    """Manually advanced wall clock."""

    def __init__(self, start: float = T0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class Inbox(list[ServerMessage]):
    """Records every message handed to a connection sink."""

    def of_type(self, cls: type[_M]) -> list[_M]:
        return [m for m in self if isinstance(m, cls)]

    def types(self) -> list[str]:
        return [m.type for m in self]  # type: ignore[attr-defined]


def send(engine: RoomSyncEngine, connection_id: str, msg_type: str, payload: Any = None) -> None:
    message: dict[str, Any] = {"type": msg_type}
    if payload is not None:
        message["payload"] = payload
    engine.handle_text(connection_id, orjson.dumps(message).decode())


def connect(engine: RoomSyncEngine, connection_id: str) -> Inbox:
    inbox = Inbox()
    engine.connect(connection_id, inbox.append)
    return inbox


def join(
    engine: RoomSyncEngine, connection_id: str, room_id: str, name: str | None = None
) -> Inbox:
    inbox = connect(engine, connection_id)
    payload: dict[str, Any] = {"roomId": room_id}
    if name is not None:
        payload["displayName"] = name
    send(engine, connection_id, "join-room", payload)
    return inbox


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def engine(clock: FakeClock) -> RoomSyncEngine:
    return RoomSyncEngine(ServerConfig(), clock)
