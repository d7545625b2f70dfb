"""tiffpng - exact TIFF to PNG transcoding.

Keep top-level imports lightweight: the decoder and encoder libraries are only
needed once a conversion actually runs, so public names are lazy-loaded on
demand and `import tiffpng.errors` works without them.
"""

from __future__ import annotations

from importlib import import_module
from typing import Any

__version__ = "0.1.0"

__all__ = [
    # Modules
    "config",
    "errors",
    "formats",
    "io",
    "negotiate",
    "pipeline",
    "session",
    "transcode",
    # Pipeline
    "convert_file",
    "convert_files",
    "output_path_for",
    # Building blocks
    "ConversionMode",
    "ConvertConfig",
    "EncodeSession",
    "TargetPixelFormat",
    "negotiate_format",
]


_LAZY_SUBMODULES = {
    "config",
    "errors",
    "formats",
    "io",
    "negotiate",
    "pipeline",
    "session",
    "transcode",
}

_LAZY_EXPORTS = {
    "convert_file": ("pipeline", "convert_file"),
    "convert_files": ("pipeline", "convert_files"),
    "output_path_for": ("pipeline", "output_path_for"),
    "ConversionMode": ("formats", "ConversionMode"),
    "ConvertConfig": ("config.settings", "ConvertConfig"),
    "EncodeSession": ("session", "EncodeSession"),
    "TargetPixelFormat": ("formats", "TargetPixelFormat"),
    "negotiate_format": ("negotiate", "negotiate_format"),
}


def __getattr__(name: str) -> Any:  # pragma: no cover - thin delegation
    if name in _LAZY_SUBMODULES:
        module = import_module(f"{__name__}.{name}")
        globals()[name] = module
        return module

    target = _LAZY_EXPORTS.get(name)
    if target is not None:
        module_name, attr = target
        module = import_module(f"{__name__}.{module_name}")
        value = getattr(module, attr)
        globals()[name] = value
        return value

    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


def __dir__() -> list[str]:  # pragma: no cover - tooling convenience
    return sorted(set(globals()) | set(__all__))
