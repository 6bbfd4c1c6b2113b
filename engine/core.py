import json
import os
from dataclasses import dataclass
from pathlib import Path

from config.settings import DEFAULT_MAX_WORKERS, EXTRACTOR_TIMEOUT_SECONDS, MUSICBRAINZ_MIN_SCORE
from engine.paths import default_binary_path, default_output_path

_KNOWN_KEYS = {
    "output_path",
    "extractor_binary",
    "extractor_timeout_seconds",
    "max_workers",
    "musicbrainz_lookup",
    "musicbrainz_min_score",
}


@dataclass(frozen=True)
class ExportConfig:
    output_path: Path
    extractor_binary: Path
    extractor_timeout_seconds: float | None
    max_workers: int
    musicbrainz_lookup: bool
    musicbrainz_min_score: int


def load_config(path):
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def validate_config(config):
    errors = []
    if not isinstance(config, dict):
        return ["config must be a JSON object"]

    unknown = sorted(set(config) - _KNOWN_KEYS)
    if unknown:
        errors.append(f"unknown config keys: {', '.join(unknown)}")

    for key in ("output_path", "extractor_binary"):
        value = config.get(key)
        if value is not None and (not isinstance(value, str) or not value.strip()):
            errors.append(f"{key} must be a non-empty string")

    timeout = config.get("extractor_timeout_seconds")
    if timeout is not None:
        if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout < 0:
            errors.append("extractor_timeout_seconds must be a number >= 0")

    workers = config.get("max_workers")
    if workers is not None:
        if isinstance(workers, bool) or not isinstance(workers, int) or workers < 1:
            errors.append("max_workers must be an integer >= 1")

    lookup = config.get("musicbrainz_lookup")
    if lookup is not None and not isinstance(lookup, bool):
        errors.append("musicbrainz_lookup must be true or false")

    score = config.get("musicbrainz_min_score")
    if score is not None:
        if isinstance(score, bool) or not isinstance(score, int) or not 0 <= score <= 100:
            errors.append("musicbrainz_min_score must be an integer between 0 and 100")

    return errors


def _env_timeout():
    raw = os.environ.get("ABZEXPORT_EXTRACTOR_TIMEOUT")
    if raw is None or not raw.strip():
        return None
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"ABZEXPORT_EXTRACTOR_TIMEOUT must be a number, got {raw!r}") from None


def build_export_config(config=None):
    """Combine a validated config mapping with environment defaults."""
    config = config or {}
    errors = validate_config(config)
    if errors:
        raise ValueError("; ".join(errors))

    output_path = config.get("output_path")
    extractor_binary = config.get("extractor_binary")
    timeout = config.get("extractor_timeout_seconds")
    if timeout is None:
        timeout = _env_timeout()
    if timeout is None:
        timeout = EXTRACTOR_TIMEOUT_SECONDS

    return ExportConfig(
        output_path=Path(output_path).expanduser().resolve() if output_path else default_output_path(),
        extractor_binary=Path(extractor_binary).expanduser().resolve() if extractor_binary else default_binary_path(),
        extractor_timeout_seconds=float(timeout) if timeout else None,
        max_workers=int(config.get("max_workers") or DEFAULT_MAX_WORKERS),
        musicbrainz_lookup=bool(config.get("musicbrainz_lookup", True)),
        musicbrainz_min_score=int(config.get("musicbrainz_min_score", MUSICBRAINZ_MIN_SCORE)),
    )
