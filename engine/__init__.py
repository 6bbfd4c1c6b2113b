from .core import ExportConfig, build_export_config, load_config, validate_config
from .errors import ExportError

__all__ = [
    "ExportConfig",
    "ExportError",
    "build_export_config",
    "load_config",
    "validate_config",
]
