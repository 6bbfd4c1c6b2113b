"""Audio tag access for MusicBrainz identifiers and descriptive fields."""

from __future__ import annotations

import logging
import os
from typing import Any

from mutagen import File as MutagenFile
from mutagen import MutagenError

from metadata.types import MUSICBRAINZ_TRACK, ExternalIdentifier, MediaItem

_LOG = logging.getLogger(__name__)

# Key understood by mutagen's easy interfaces (EasyID3, EasyMP4) and Vorbis comments alike.
_TRACK_ID_KEY = "musicbrainz_trackid"


def _open(path: str) -> Any:
    return MutagenFile(path, easy=True)


def _sanitize_text(value: Any) -> str | None:
    if value is None:
        return None
    text = "".join(ch if ord(ch) >= 32 else " " for ch in str(value)).strip()
    return text or None


def _first_text(tags: Any, key: str) -> str | None:
    if tags is None:
        return None
    try:
        values = tags.get(key)
    except (KeyError, ValueError):
        return None
    if not values:
        return None
    if isinstance(values, (list, tuple)):
        return _sanitize_text(values[0])
    return _sanitize_text(values)


def _all_text(tags: Any, key: str) -> list[str]:
    if tags is None:
        return []
    try:
        values = tags.get(key) or []
    except (KeyError, ValueError):
        return []
    if not isinstance(values, (list, tuple)):
        values = [values]
    cleaned = []
    for value in values:
        text = _sanitize_text(value)
        if text:
            cleaned.append(text)
    return cleaned


class MutagenMetadataAccessor:
    """Read and embed MusicBrainz track identifiers directly in audio files."""

    def read_identifiers(self, path: str) -> list[ExternalIdentifier]:
        try:
            audio = _open(path)
        except (MutagenError, OSError):
            _LOG.warning("Unable to read tags from %s", path, exc_info=True)
            return []
        if audio is None:
            return []
        return [ExternalIdentifier(MUSICBRAINZ_TRACK, value) for value in _all_text(audio.tags, _TRACK_ID_KEY)]

    def embed_identifier(self, path: str, identifier: ExternalIdentifier) -> None:
        """Write ``identifier`` into the tags of ``path``, replacing any existing track id."""
        if identifier.generator != MUSICBRAINZ_TRACK:
            raise ValueError(f"Unsupported identifier authority: {identifier.generator}")
        audio = _open(path)
        if audio is None:
            ext = os.path.splitext(path)[1].lower()
            raise ValueError(f"Unsupported file format for tagging: {ext or '(none)'}")
        if audio.tags is None:
            audio.add_tags()
        try:
            audio.tags[_TRACK_ID_KEY] = [identifier.value]
        except (KeyError, ValueError, TypeError) as exc:
            raise ValueError(f"Track identifiers cannot be embedded into {os.path.basename(path)}") from exc
        audio.save()
        _LOG.debug("Embedded %s=%s into %s", _TRACK_ID_KEY, identifier.value, path)

    def read_media_item(self, path: str, *, item_id: Any = None) -> MediaItem:
        """Build a :class:`MediaItem` from the file's own tags.

        Unreadable or untagged files still produce an item named after the
        file so that they can be analyzed without identifier correlation.
        """
        fallback_name = os.path.splitext(os.path.basename(path))[0]
        try:
            audio = _open(path)
        except (MutagenError, OSError):
            _LOG.warning("Unable to read tags from %s", path, exc_info=True)
            audio = None
        tags = audio.tags if audio is not None else None
        identifiers = tuple(
            ExternalIdentifier(MUSICBRAINZ_TRACK, value) for value in _all_text(tags, _TRACK_ID_KEY)
        )
        return MediaItem(
            path=path,
            name=_first_text(tags, "title") or fallback_name,
            artist=_first_text(tags, "artist"),
            album=_first_text(tags, "album"),
            identifiers=identifiers,
            item_id=item_id if item_id is not None else path,
        )
