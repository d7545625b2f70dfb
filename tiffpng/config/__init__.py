from __future__ import annotations

from tiffpng.config.settings import ConvertConfig

__all__ = [
    "ConvertConfig",
]
