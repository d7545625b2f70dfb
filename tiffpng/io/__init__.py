from __future__ import annotations

from tiffpng.io.source import TiffSource, pack_subbyte_row, read_rgba_raster

__all__ = [
    "TiffSource",
    "pack_subbyte_row",
    "read_rgba_raster",
]
