"""Resolve the MusicBrainz track identifier used to correlate an export row."""

from __future__ import annotations

import logging
from typing import Protocol

from metadata.types import MUSICBRAINZ_TRACK, ExternalIdentifier, MediaItem

logger = logging.getLogger(__name__)


class LookupService(Protocol):
    def lookup(self, item: MediaItem) -> list[MediaItem]:
        """Return candidate matches for ``item``, best first."""


class IdentifierResolver:
    """Find an embedded identifier for an item or fetch one from a lookup service."""

    def __init__(self, lookup_service: LookupService | None = None, *, generator: str = MUSICBRAINZ_TRACK) -> None:
        self._lookup_service = lookup_service
        self.generator = generator

    def resolve_embedded(self, item: MediaItem) -> list[ExternalIdentifier]:
        return item.identifiers_for(self.generator)

    def resolve_primary(self, item: MediaItem) -> ExternalIdentifier | None:
        embedded = self.resolve_embedded(item)
        if embedded:
            if len(embedded) > 1:
                logger.warning(
                    "Track %s carries %d %s identifiers, using the first: %s",
                    item.display_name,
                    len(embedded),
                    self.generator,
                    [identifier.value for identifier in embedded],
                )
            return embedded[0]
        return self._lookup(item)

    def _lookup(self, item: MediaItem) -> ExternalIdentifier | None:
        if self._lookup_service is None:
            return None
        try:
            candidates = self._lookup_service.lookup(item) or []
        except Exception:
            logger.exception("Failed to look up %s identifier for %s", self.generator, item.display_name)
            return None
        for candidate in candidates:
            matches = candidate.identifiers_for(self.generator)
            if matches:
                logger.info("Track %s. Looked up %s %s", item.display_name, self.generator, matches[0].value)
                return matches[0]
        logger.debug("Track %s. No %s identifier found via lookup", item.display_name, self.generator)
        return None
