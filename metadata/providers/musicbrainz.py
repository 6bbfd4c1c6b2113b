import logging

from config.settings import MUSICBRAINZ_MIN_SCORE, MUSICBRAINZ_SEARCH_LIMIT
from metadata.services.musicbrainz_service import get_musicbrainz_service
from metadata.types import MUSICBRAINZ_TRACK, ExternalIdentifier, MediaItem


class MusicBrainzLookup:
    """Look up candidate recordings for a media item by artist, title and album."""

    def __init__(self, service=None, *, min_score=MUSICBRAINZ_MIN_SCORE, limit=MUSICBRAINZ_SEARCH_LIMIT):
        self._service = service
        self.min_score = int(min_score)
        self.limit = int(limit)

    @property
    def service(self):
        if self._service is None:
            self._service = get_musicbrainz_service()
        return self._service

    def lookup(self, item):
        if not item.artist or not item.name:
            logging.debug("MusicBrainz lookup skipped for %s: artist or title missing", item.display_name)
            return []
        result = self.service.search_recordings(item.artist, item.name, album=item.album, limit=self.limit)
        recordings = (result or {}).get("recording-list") or []
        candidates = []
        for rec in recordings:
            candidate = _recording_to_candidate(rec, min_score=self.min_score)
            if candidate:
                candidates.append(candidate)
        return candidates


def _recording_to_candidate(rec, *, min_score):
    recording_id = rec.get("id")
    if not recording_id:
        return None
    score = _parse_score(rec.get("ext:score"))
    if score is not None and score < min_score:
        logging.debug("MusicBrainz recording %s ignored: score %s < %s", recording_id, score, min_score)
        return None
    release_list = rec.get("release-list") or []
    release = release_list[0] if release_list else None
    return MediaItem(
        path=None,
        name=rec.get("title"),
        artist=_extract_artist(rec),
        album=release.get("title") if release else None,
        identifiers=(ExternalIdentifier(MUSICBRAINZ_TRACK, recording_id),),
    )


def _extract_artist(rec):
    credit = rec.get("artist-credit") or []
    if credit and isinstance(credit[0], dict):
        artist = credit[0].get("artist", {}).get("name")
        if artist:
            return artist
    return rec.get("artist-credit-phrase")


def _parse_score(value):
    try:
        if value is None:
            return None
        return int(value)
    except (TypeError, ValueError):
        return None
