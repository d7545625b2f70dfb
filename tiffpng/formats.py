from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, IntEnum

import numpy as np

from .errors import AllocationError, MetadataError


class Photometric(IntEnum):
    """TIFF PhotometricInterpretation values the converter distinguishes."""

    MIN_IS_WHITE = 0
    MIN_IS_BLACK = 1
    RGB = 2
    PALETTE = 3
    OTHER = -1

    @classmethod
    def from_tag(cls, value: int) -> "Photometric":
        try:
            return cls(int(value))
        except ValueError:
            return cls.OTHER


class ColorType(IntEnum):
    """PNG IHDR color types (palette excluded)."""

    GRAY = 0
    RGB = 2
    GRAY_ALPHA = 4
    RGBA = 6

    @property
    def channels(self) -> int:
        return {
            ColorType.GRAY: 1,
            ColorType.RGB: 3,
            ColorType.GRAY_ALPHA: 2,
            ColorType.RGBA: 4,
        }[self]

    @property
    def greyscale(self) -> bool:
        return self in (ColorType.GRAY, ColorType.GRAY_ALPHA)

    @property
    def alpha(self) -> bool:
        return self in (ColorType.GRAY_ALPHA, ColorType.RGBA)


class ConversionMode(str, Enum):
    """How pixels travel from the TIFF to the PNG.

    - ``passthrough``: original bit depth and channel layout, scanline by
      scanline; 16-bit samples are byte-swapped to big-endian.
    - ``normalized``: always RGBA8 from a decoded 0xAARRGGBB raster. Loses
      16-bit precision and forces alpha=255 for opaque sources.
    """

    PASSTHROUGH = "passthrough"
    NORMALIZED = "normalized"


def parse_conversion_mode(raw: str | ConversionMode) -> ConversionMode:
    if isinstance(raw, ConversionMode):
        return raw
    try:
        return ConversionMode(str(raw).strip().lower())
    except Exception as exc:  # noqa: BLE001 - value validation helper
        raise ValueError(
            f"Unknown conversion mode: {raw!r}. Choose from: passthrough, normalized."
        ) from exc


@dataclass(frozen=True)
class TargetPixelFormat:
    color_type: ColorType
    bit_depth: int

    @property
    def channels(self) -> int:
        return self.color_type.channels

    @property
    def name(self) -> str:
        return f"{self.color_type.name}{int(self.bit_depth)}"

    def row_bytes(self, width: int) -> int:
        """Bytes in one unfiltered PNG scanline of ``width`` pixels."""

        bits = int(width) * self.channels * int(self.bit_depth)
        return (bits + 7) // 8

    def __str__(self) -> str:
        return self.name


GRAY8 = TargetPixelFormat(ColorType.GRAY, 8)
GRAY16 = TargetPixelFormat(ColorType.GRAY, 16)
GRAY_ALPHA8 = TargetPixelFormat(ColorType.GRAY_ALPHA, 8)
GRAY_ALPHA16 = TargetPixelFormat(ColorType.GRAY_ALPHA, 16)
RGB8 = TargetPixelFormat(ColorType.RGB, 8)
RGB16 = TargetPixelFormat(ColorType.RGB, 16)
RGBA8 = TargetPixelFormat(ColorType.RGBA, 8)
RGBA16 = TargetPixelFormat(ColorType.RGBA, 16)


@dataclass(frozen=True)
class SourceImageDescriptor:
    """Read-only view of the first image in a TIFF file."""

    width: int
    height: int
    bits_per_sample: int
    samples_per_pixel: int
    photometric: Photometric
    photometric_code: int = -1
    planar_config: int = 1

    @property
    def bytes_per_sample(self) -> int:
        return max(1, (int(self.bits_per_sample) + 7) // 8)

    @property
    def scanline_size(self) -> int:
        bits = int(self.width) * int(self.samples_per_pixel) * int(self.bits_per_sample)
        return (bits + 7) // 8

    def validate(self) -> "SourceImageDescriptor":
        """Reject empty or overflowing images before anything is allocated."""

        if self.width <= 0 or self.height <= 0:
            raise MetadataError(
                f"Image dimensions must be positive, got {self.width}x{self.height}"
            )
        if self.samples_per_pixel <= 0:
            raise MetadataError(f"SamplesPerPixel must be positive, got {self.samples_per_pixel}")
        if self.bits_per_sample <= 0:
            raise MetadataError(f"BitsPerSample must be positive, got {self.bits_per_sample}")

        limit = int(np.iinfo(np.intp).max)
        total = (
            int(self.width)
            * int(self.height)
            * int(self.samples_per_pixel)
            * self.bytes_per_sample
        )
        # Normalized mode needs 4 bytes per pixel regardless of the source layout.
        total = max(total, int(self.width) * int(self.height) * 4)
        if total > limit:
            raise AllocationError(
                f"Pixel buffer for {self.width}x{self.height}x{self.samples_per_pixel} "
                f"exceeds the addressable size ({limit} bytes)"
            )
        return self
