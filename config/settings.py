"""Application settings constants."""

from __future__ import annotations

import sys

IS_MAC = sys.platform == "darwin"
IS_WINDOWS = sys.platform.startswith("win")

# Name of the bundled Essentia extractor shipped with the AcousticBrainz client.
STREAMING_EXTRACTOR_MUSIC = "streaming_extractor_music" + (".exe" if IS_WINDOWS else "")
PROFILE_YAML = "profile.yaml"

# SHA-1 of the Essentia build reported in the submission profile.
ESSENTIA_BUILD_SHA = (
    "cead25079874084f62182a551b7393616cd33d87" if IS_MAC else "2d9f1f26377add8aeb1075a9c2973f962c4f09fd"
)

# Upper bound for a single extractor run; 0 waits indefinitely.
EXTRACTOR_TIMEOUT_SECONDS = 1800

# Name of the shared TSV export written below the user's home directory.
OUTPUT_FILENAME = "out.tsv"

# MusicBrainz search results scoring below this are not trusted for lookup.
MUSICBRAINZ_MIN_SCORE = 90
MUSICBRAINZ_SEARCH_LIMIT = 5

DEFAULT_MAX_WORKERS = 2

# Category attached to every user-visible message.
MESSAGE_CATEGORY = "Analysis"
