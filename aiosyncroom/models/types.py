"""Models for enum types used by aiosyncroom."""

from dataclasses import dataclass
from enum import Enum

from mashumaro.config import BaseConfig
from mashumaro.mixins.orjson import DataClassORJSONMixin
from mashumaro.types import Discriminator


# Base message classes
@dataclass
class ClientMessage(DataClassORJSONMixin):
    """Base class for client messages."""

    class Config(BaseConfig):
        """Config for parsing json messages."""

        discriminator = Discriminator(field="type", include_subtypes=True)


@dataclass
class ServerMessage(DataClassORJSONMixin):
    """Base class for server messages."""

    class Config(BaseConfig):
        """Config for parsing json messages."""

        discriminator = Discriminator(field="type", include_subtypes=True)


# Enums


class MediaKind(Enum):
    """Kinds of media a room can play."""

    YOUTUBE = "youtube"
    """A YouTube video, played by the client's embedded player."""
    AUDIO = "audio"
    """An audio track with a direct preview URL."""


class ActivityKind(Enum):
    """Kinds of entries in a room's activity log."""

    USER = "user"
    """Chat text typed by a member."""
    SYSTEM = "system"
    """Generated on join, leave and media change."""


class AuthorityPolicy(Enum):
    """Who may drive the playback state of a room."""

    OPEN = "open"
    """Any member may send play-pause, seek and periodic-update."""
    HOST_ONLY = "host_only"
    """Only the host may send play-pause, seek and periodic-update."""
    STALENESS_TIMEOUT = "staleness_timeout"
    """
    Any member may play, pause and seek.

    Periodic updates are accepted from the controller, or from anyone once the
    controller is gone or has been silent for longer than the staleness threshold.
    """


class Delivery(Enum):
    """Recipients of an outbound room message relative to the acting member."""

    ALL = "all"
    """Every member of the room, including the sender."""
    OTHERS = "others"
    """Every member except the sender."""
    SENDER = "sender"
    """Only the sender."""
