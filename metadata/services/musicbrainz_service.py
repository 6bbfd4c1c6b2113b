import logging
import os
import threading
import time
from collections import OrderedDict

import musicbrainzngs


logger = logging.getLogger(__name__)

MUSICBRAINZ_APP_NAME = "abzexport"
MUSICBRAINZ_APP_VERSION = "1.0"
MUSICBRAINZ_CONTACT = os.getenv("MUSICBRAINZ_CONTACT", "https://github.com/jlmelville/abzexport")

_DEFAULT_MAX_CACHE_ENTRIES = 512
_DEFAULT_CACHE_TTL_SECONDS = 6 * 60 * 60
_DEFAULT_MIN_INTERVAL_SECONDS = 1.0


class _TTLCache:
    def __init__(self, *, max_entries=_DEFAULT_MAX_CACHE_ENTRIES, ttl_seconds=_DEFAULT_CACHE_TTL_SECONDS):
        self.max_entries = int(max_entries)
        self.ttl_seconds = int(ttl_seconds)
        self._lock = threading.Lock()
        self._entries = OrderedDict()

    def get(self, key):
        now = time.time()
        with self._lock:
            value = self._entries.get(key)
            if not value:
                return None
            expires_at, payload = value
            if expires_at < now:
                self._entries.pop(key, None)
                return None
            self._entries.move_to_end(key)
            return payload

    def set(self, key, payload):
        expires_at = time.time() + self.ttl_seconds
        with self._lock:
            self._entries[key] = (expires_at, payload)
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)


class MusicBrainzService:
    """Process-wide MusicBrainz client with request pacing and a search cache.

    Requests are issued once; failures propagate to the caller, which decides
    whether a missing answer is acceptable.
    """

    def __init__(self, *, debug=None):
        self._init_lock = threading.Lock()
        self._initialized = False
        self._cache = _TTLCache()
        self._request_lock = threading.Lock()
        self._last_request_ts = 0.0
        if debug is None:
            env_debug = str(os.environ.get("ABZEXPORT_MUSICBRAINZ_DEBUG", "")).strip().lower()
            self._debug = env_debug in {"1", "true", "yes", "on"}
        else:
            self._debug = bool(debug)
        self._metrics_lock = threading.Lock()
        self._metrics = {
            "total_requests": 0,
            "cache_hits": 0,
            "cache_misses": 0,
            "failures": 0,
        }

    def _debug_log(self, message, *args):
        if self._debug:
            logger.debug(message, *args)

    def _inc_metric(self, key, amount=1):
        with self._metrics_lock:
            self._metrics[key] = int(self._metrics.get(key, 0)) + int(amount)

    def _respect_rate_limit(self):
        with self._request_lock:
            now = time.monotonic()
            wait_for = _DEFAULT_MIN_INTERVAL_SECONDS - (now - self._last_request_ts)
            if wait_for > 0:
                self._debug_log("[MUSICBRAINZ] rate-limit sleep %.3fs", wait_for)
                time.sleep(wait_for)
            self._last_request_ts = time.monotonic()

    def _ensure_initialized(self):
        if self._initialized:
            return
        with self._init_lock:
            if self._initialized:
                return
            logging.getLogger("musicbrainzngs").setLevel(logging.WARNING)
            musicbrainzngs.set_useragent(MUSICBRAINZ_APP_NAME, MUSICBRAINZ_APP_VERSION, MUSICBRAINZ_CONTACT)
            # Pacing is done by _respect_rate_limit, shared across worker threads.
            musicbrainzngs.set_rate_limit(False)
            self._initialized = True

    def _call(self, fn):
        self._ensure_initialized()
        self._respect_rate_limit()
        self._inc_metric("total_requests")
        try:
            return fn()
        except Exception:
            self._inc_metric("failures")
            raise

    def get_metrics(self):
        with self._metrics_lock:
            return dict(self._metrics)

    def search_recordings(self, artist, title, *, album=None, limit=5):
        key = f"search_recordings:{artist}|{title}|{album or ''}|{int(limit or 5)}"
        cached = self._cache.get(key)
        if cached is not None:
            self._inc_metric("cache_hits")
            self._debug_log("[MUSICBRAINZ] cache hit key=%s", key)
            return cached
        self._inc_metric("cache_misses")
        self._debug_log("[MUSICBRAINZ] cache miss key=%s", key)

        query = {"artist": artist, "recording": title}
        if album:
            query["release"] = album

        payload = self._call(lambda: musicbrainzngs.search_recordings(limit=int(limit or 5), **query))
        self._cache.set(key, payload)
        return payload


_MUSICBRAINZ_SERVICE = None
_MUSICBRAINZ_SERVICE_LOCK = threading.Lock()


def get_musicbrainz_service():
    global _MUSICBRAINZ_SERVICE
    if _MUSICBRAINZ_SERVICE is not None:
        return _MUSICBRAINZ_SERVICE
    with _MUSICBRAINZ_SERVICE_LOCK:
        if _MUSICBRAINZ_SERVICE is None:
            _MUSICBRAINZ_SERVICE = MusicBrainzService()
    return _MUSICBRAINZ_SERVICE
