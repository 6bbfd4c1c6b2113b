"""Flatten extractor JSON results into sorted path/value records."""

from __future__ import annotations

import json
import logging
from typing import Any

from engine.errors import ResultParseError

logger = logging.getLogger(__name__)

# Branches dropped before flattening to keep exported rows small.
METADATA_BRANCH = "metadata"
RHYTHM_BRANCH = "rhythm"
BEATS_POSITION = "beats_position"


def load_result(path) -> dict[str, Any]:
    """Read the extractor's JSON output file.

    Raises:
        ResultParseError: If the file cannot be read, is not valid JSON, or
            its top level is not an object.
    """
    try:
        with open(path, "r", encoding="utf-8") as handle:
            payload = json.load(handle)
    except (OSError, UnicodeDecodeError) as exc:
        raise ResultParseError(f"Unable to read extractor result {path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise ResultParseError(f"Extractor returned invalid JSON in {path}: {exc}") from exc
    if not isinstance(payload, dict):
        raise ResultParseError(f"Extractor result {path} is not a JSON object")
    return payload


def strip_bulky_branches(result: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of ``result`` without ``metadata`` and ``rhythm.beats_position``."""
    stripped = {key: value for key, value in result.items() if key != METADATA_BRANCH}
    rhythm = stripped.get(RHYTHM_BRANCH)
    if isinstance(rhythm, dict):
        stripped[RHYTHM_BRANCH] = {key: value for key, value in rhythm.items() if key != BEATS_POSITION}
    return stripped


def flatten(tree: Any) -> dict[str, str]:
    """Flatten a parsed JSON tree into ``{path: text}`` with sorted keys.

    Object members extend the path with ``:key`` and array elements with
    ``[index]``; the root contributes no prefix.

    >>> flatten({"a": {"b": 1, "c": [2, 3]}})
    {'a:b': '1', 'a:c[0]': '2', 'a:c[1]': '3'}
    """
    flat: dict[str, str] = {}
    _flatten_into(flat, tree, "")
    return {key: flat[key] for key in sorted(flat)}


def _flatten_into(flat: dict[str, str], node: Any, prefix: str) -> None:
    if isinstance(node, dict):
        for key, child in node.items():
            _flatten_into(flat, child, f"{prefix}:{key}" if prefix else str(key))
    elif isinstance(node, list):
        for index, child in enumerate(node):
            _flatten_into(flat, child, f"{prefix}[{index}]")
    else:
        flat[prefix] = _leaf_text(node)


def _leaf_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value)


def build_record(result: dict[str, Any]) -> dict[str, str]:
    return flatten(strip_bulky_branches(result))


def extract_recorded_mbid(result: dict[str, Any]) -> str | None:
    """Return the first MusicBrainz track id the extractor read from the file tags."""
    metadata = result.get(METADATA_BRANCH)
    if not isinstance(metadata, dict):
        return None
    tags = metadata.get("tags")
    if not isinstance(tags, dict):
        return None
    values = tags.get("musicbrainz_trackid")
    if isinstance(values, list):
        values = values[0] if values else None
    if isinstance(values, str) and values.strip():
        return values.strip()
    return None
