"""
Media descriptors shared by the room protocol.

A room plays at most one media item at a time. The item is a tagged variant
discriminated by its ``kind`` field.
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Annotated, Literal

from mashumaro.config import BaseConfig
from mashumaro.mixins.orjson import DataClassORJSONMixin
from mashumaro.types import Alias, Discriminator

from .types import MediaKind


def _require_text(value: object, field_name: str) -> None:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{field_name} must be a non-empty string")


def _check_duration(duration: float | None) -> None:
    if duration is None:
        return
    if (
        isinstance(duration, bool)
        or not isinstance(duration, (int, float))
        or not math.isfinite(duration)
        or duration < 0
    ):
        raise ValueError(f"duration must be a non-negative number, got {duration!r}")


def _positive_or_none(duration: float | None) -> float | None:
    if duration is None or duration <= 0:
        return None
    return float(duration)


@dataclass
class Media(DataClassORJSONMixin, ABC):
    """Base class for media items."""

    @property
    @abstractmethod
    def media_kind(self) -> MediaKind:
        """Kind of this media item."""

    @property
    def known_duration(self) -> float | None:
        """Length in seconds, if the item carries one."""
        return None

    @property
    @abstractmethod
    def display_title(self) -> str:
        """Title used in activity log entries."""


@dataclass
class YouTubeMedia(Media):
    """A YouTube video."""

    video_id: Annotated[str, Alias("videoId")]
    """YouTube video id."""
    title: str
    """Video title."""
    thumbnail: str | None = None
    """Thumbnail URL."""
    channel: str | None = None
    """Channel name."""
    duration: float | None = None
    """Video length in seconds, when the client reports it."""
    kind: Literal["youtube"] = "youtube"

    def __post_init__(self) -> None:
        """Validate the required video fields."""
        _require_text(self.video_id, "videoId")
        _require_text(self.title, "title")
        _check_duration(self.duration)

    @property
    def media_kind(self) -> MediaKind:
        """Kind of this media item."""
        return MediaKind.YOUTUBE

    @property
    def known_duration(self) -> float | None:
        """Length in seconds, if the item carries one."""
        return _positive_or_none(self.duration)

    @property
    def display_title(self) -> str:
        """Title used in activity log entries."""
        return self.title

    class Config(BaseConfig):
        """Config for parsing json messages."""

        serialize_by_alias = True
        omit_none = True


@dataclass
class AudioTrackMedia(Media):
    """An audio track with a playable preview URL."""

    id: str
    """Track id at the search provider."""
    title: str
    """Track title."""
    artist: str
    """Performing artist."""
    preview_url: Annotated[str, Alias("previewUrl")]
    """URL the clients stream the audio from."""
    duration: float | None = None
    """Track length in seconds, when the provider reports it."""
    album: str | None = None
    artwork: str | None = None
    source: str | None = None
    """Search provider the track came from."""
    kind: Literal["audio"] = "audio"

    def __post_init__(self) -> None:
        """Validate the required track fields."""
        _require_text(self.id, "id")
        _require_text(self.title, "title")
        _require_text(self.preview_url, "previewUrl")
        if not isinstance(self.artist, str):
            raise ValueError("artist must be a string")
        _check_duration(self.duration)

    @property
    def media_kind(self) -> MediaKind:
        """Kind of this media item."""
        return MediaKind.AUDIO

    @property
    def known_duration(self) -> float | None:
        """Length in seconds, if the item carries one."""
        return _positive_or_none(self.duration)

    @property
    def display_title(self) -> str:
        """Title used in activity log entries."""
        if self.artist:
            return f"{self.title} - {self.artist}"
        return self.title

    class Config(BaseConfig):
        """Config for parsing json messages."""

        serialize_by_alias = True
        omit_none = True


AnyMedia = Annotated[
    YouTubeMedia | AudioTrackMedia, Discriminator(field="kind", include_supertypes=True)
]
"""Field type that decodes into the matching media subclass."""
