"""Select the file handed to the extractor for one media item."""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from dataclasses import dataclass, field
from typing import Protocol

from engine.errors import TempFileError
from metadata.types import MUSICBRAINZ_TRACK, ExternalIdentifier, MediaItem

logger = logging.getLogger(__name__)


class MetadataAccessor(Protocol):
    def read_identifiers(self, path: str) -> list[ExternalIdentifier]:
        """Return the identifiers stored in the file's own tags."""

    def embed_identifier(self, path: str, identifier: ExternalIdentifier) -> None:
        """Store ``identifier`` in the tags of the file at ``path``."""


@dataclass(frozen=True)
class PreparedInput:
    input_path: str
    temp_files: list[str] = field(default_factory=list)


def prepare_input(
    item: MediaItem,
    resolved: ExternalIdentifier | None,
    accessor: MetadataAccessor,
    *,
    generator: str = MUSICBRAINZ_TRACK,
) -> PreparedInput:
    """Return the path to analyze and any temp files created for it.

    The original file is never modified. When the identifier has to be
    embedded, a copy with the same extension is tagged instead.
    """
    original = os.path.abspath(str(item.path))
    # Read the file directly; the item's identifiers may come from elsewhere.
    embedded = [identifier for identifier in accessor.read_identifiers(original) if identifier.generator == generator]
    if embedded or resolved is None:
        return PreparedInput(input_path=original)

    logger.info(
        "Track %s. MBID is not embedded. Embedding %s into copy. Consider embedding MBIDs before running this task.",
        item.display_name,
        resolved.value,
    )
    copy_path = _copy_with_identifier(original, resolved, accessor)
    return PreparedInput(input_path=copy_path, temp_files=[copy_path])


def _copy_with_identifier(original: str, identifier: ExternalIdentifier, accessor: MetadataAccessor) -> str:
    extension = os.path.splitext(original)[1]
    try:
        fd, copy_path = tempfile.mkstemp(prefix="copy", suffix=extension)
        os.close(fd)
    except OSError as exc:
        raise TempFileError(f"Unable to create a working copy of {original}: {exc}") from exc
    try:
        shutil.copyfile(original, copy_path)
        accessor.embed_identifier(copy_path, identifier)
    except Exception as exc:
        _remove_quietly(copy_path)
        raise TempFileError(f"Unable to embed {identifier.value} into a copy of {original}: {exc}") from exc
    return copy_path


def _remove_quietly(path: str) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError:
        logger.error("Failed to remove temp file %s", path, exc_info=True)
