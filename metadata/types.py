"""Structured types describing media items and their catalog identifiers."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

# Authority tag for MusicBrainz recording (track) identifiers.
MUSICBRAINZ_TRACK = "MusicBrainz Track"


@dataclass(frozen=True)
class ExternalIdentifier:
    """An identifier value issued by one external catalog."""

    generator: str
    value: str

    def __post_init__(self) -> None:
        if not isinstance(self.value, str) or not self.value.strip():
            raise ValueError("identifier value must be a non-empty string")
        object.__setattr__(self, "value", self.value.strip())


@dataclass(frozen=True)
class MediaItem:
    """A media file plus the descriptive fields exported alongside its features."""

    path: str | None
    name: str | None = None
    artist: str | None = None
    album: str | None = None
    identifiers: tuple[ExternalIdentifier, ...] = field(default_factory=tuple)
    item_id: Any = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "identifiers", tuple(self.identifiers or ()))

    @property
    def display_name(self) -> str:
        if self.name:
            return self.name
        if self.path:
            return str(self.path)
        return "Unknown Song Name"

    def identifiers_for(self, generator: str) -> list[ExternalIdentifier]:
        return [identifier for identifier in self.identifiers if identifier.generator == generator]


__all__ = ["ExternalIdentifier", "MediaItem", "MUSICBRAINZ_TRACK"]
