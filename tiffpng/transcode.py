"""Turn source pixels into PNG-ready rows.

Two strategies, one per :class:`~tiffpng.formats.ConversionMode`:

- :class:`ScanlineTranscoder` passes TIFF scanlines through, only swapping
  16-bit samples to big-endian when the host is little-endian.
- :class:`RasterTranscoder` unpacks a ``0xAARRGGBB`` raster into R,G,B,A
  bytes with shift-and-mask.
"""

from __future__ import annotations

import logging
import sys
from typing import Iterator, Protocol

import numpy as np

from .errors import ConversionError, SourceReadFailed, TranscodeError
from .formats import TargetPixelFormat

logger = logging.getLogger(__name__)


class ScanlineReader(Protocol):
    def read_scanline(self, row: int) -> bytes: ...


def swap_to_big_endian(row: bytes, bit_depth: int, *, host_byteorder: str = sys.byteorder) -> bytes:
    """Return ``row`` with 16-bit samples in PNG (big-endian) order.

    ``row`` holds samples in host order. 8-bit and sub-byte rows, and any row
    on a big-endian host, come back unchanged.
    """

    if int(bit_depth) != 16 or host_byteorder == "big":
        return bytes(row)
    if len(row) % 2:
        raise TranscodeError(f"16-bit row has odd length {len(row)}")
    return np.frombuffer(row, dtype=np.uint16).byteswap().tobytes()


def pack_argb(rgba: np.ndarray) -> np.ndarray:
    """Pack an (H, W, 4) uint8 RGBA array into (H, W) uint32 ``0xAARRGGBB``."""

    arr = np.asarray(rgba)
    if arr.ndim != 3 or arr.shape[2] != 4:
        raise ValueError(f"Expected shape (H,W,4), got {arr.shape}")
    px = arr.astype(np.uint32)
    return (px[..., 3] << 24) | (px[..., 0] << 16) | (px[..., 1] << 8) | px[..., 2]


def unpack_argb_row(row: np.ndarray) -> bytes:
    """Extract R,G,B,A bytes from one row of ``0xAARRGGBB`` pixels."""

    px = np.asarray(row, dtype=np.uint32)
    out = np.empty((px.shape[0], 4), dtype=np.uint8)
    out[:, 0] = (px >> 16) & 0xFF
    out[:, 1] = (px >> 8) & 0xFF
    out[:, 2] = px & 0xFF
    out[:, 3] = (px >> 24) & 0xFF
    return out.tobytes()


class ScanlineTranscoder:
    """Exact passthrough: one source scanline per destination row."""

    def __init__(
        self,
        source: ScanlineReader,
        fmt: TargetPixelFormat,
        *,
        width: int,
        height: int,
        host_byteorder: str = sys.byteorder,
    ) -> None:
        self.source = source
        self.fmt = fmt
        self.width = int(width)
        self.height = int(height)
        self.host_byteorder = str(host_byteorder)

    @property
    def swaps_bytes(self) -> bool:
        return int(self.fmt.bit_depth) == 16 and self.host_byteorder == "little"

    def row(self, y: int) -> bytes:
        try:
            line = self.source.read_scanline(y)
        except ConversionError:
            raise
        except Exception as exc:  # noqa: BLE001 - decoder failure boundary
            raise SourceReadFailed(str(exc), row=y) from exc
        return swap_to_big_endian(line, self.fmt.bit_depth, host_byteorder=self.host_byteorder)

    def rows(self) -> Iterator[bytes]:
        if self.swaps_bytes:
            logger.debug("swapping 16-bit samples to big-endian")
        for y in range(self.height):
            yield self.row(y)


class RasterTranscoder:
    """Normalized mode: RGBA8 rows from a packed ``0xAARRGGBB`` raster."""

    def __init__(self, raster: np.ndarray) -> None:
        arr = np.asarray(raster)
        if arr.ndim != 2:
            raise TranscodeError(f"Expected a 2D packed raster, got shape {arr.shape}")
        self.raster = arr.astype(np.uint32, copy=False)

    @property
    def height(self) -> int:
        return int(self.raster.shape[0])

    @property
    def width(self) -> int:
        return int(self.raster.shape[1])

    def row(self, y: int) -> bytes:
        return unpack_argb_row(self.raster[y])

    def rows(self) -> Iterator[bytes]:
        for y in range(self.height):
            yield self.row(y)

    def release(self) -> None:
        self.raster = np.empty((0, 0), dtype=np.uint32)
