import os
from pathlib import Path

from config.settings import OUTPUT_FILENAME, STREAMING_EXTRACTOR_MUSIC


PROJECT_ROOT = Path(__file__).resolve().parent.parent


def _default_root_paths():
    base = PROJECT_ROOT / "data"
    return {
        "bin": PROJECT_ROOT / "bin",
        "config": base / "config",
        "logs": base / "logs",
    }


_DEFAULTS = _default_root_paths()

CONFIG_DIR = Path(os.environ.get("ABZEXPORT_CONFIG_DIR", _DEFAULTS["config"])).resolve()
LOG_DIR = Path(os.environ.get("ABZEXPORT_LOG_DIR", _DEFAULTS["logs"])).resolve()


def ensure_dir(path):
    if path:
        os.makedirs(path, exist_ok=True)


def default_binary_path():
    override = os.environ.get("ABZEXPORT_EXTRACTOR_BINARY")
    if override:
        return Path(override).expanduser().resolve()
    return (_DEFAULTS["bin"] / STREAMING_EXTRACTOR_MUSIC).resolve()


def default_output_path():
    override = os.environ.get("ABZEXPORT_OUTPUT_PATH")
    if override:
        return Path(override).expanduser().resolve()
    return Path.home() / OUTPUT_FILENAME


def resolve_config_path(path):
    if not path:
        return os.path.join(CONFIG_DIR, "config.json")
    if os.path.isabs(path):
        return os.path.abspath(path)
    return os.path.abspath(os.path.join(CONFIG_DIR, path))
