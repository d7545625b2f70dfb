"""Pick the PNG pixel format for a TIFF image.

:func:`negotiate_format` is the only place color types are chosen. The
remaining helpers are preflight checks that reject formats PNG cannot store
before any output file is created.
"""

from __future__ import annotations

import logging

from .errors import (
    FormatError,
    UnsupportedBitDepth,
    UnsupportedPhotometric,
    UnsupportedSampleLayout,
)
from .formats import (
    RGBA8,
    ColorType,
    Photometric,
    SourceImageDescriptor,
    TargetPixelFormat,
)

logger = logging.getLogger(__name__)

# Bit depths allowed in a PNG IHDR per color type.
_PNG_BIT_DEPTHS = {
    ColorType.GRAY: (1, 2, 4, 8, 16),
    ColorType.GRAY_ALPHA: (8, 16),
    ColorType.RGB: (8, 16),
    ColorType.RGBA: (8, 16),
}


def negotiate_format(descriptor: SourceImageDescriptor) -> TargetPixelFormat:
    """Map (photometric, samples per pixel) to a PNG color type at the source depth."""

    spp = int(descriptor.samples_per_pixel)
    depth = int(descriptor.bits_per_sample)

    if descriptor.photometric is Photometric.MIN_IS_BLACK:
        color_type = ColorType.GRAY_ALPHA if spp == 2 else ColorType.GRAY
    elif descriptor.photometric is Photometric.RGB:
        color_type = ColorType.RGBA if spp == 4 else ColorType.RGB
    else:
        code = descriptor.photometric_code
        if code < 0:
            code = int(descriptor.photometric)
        raise UnsupportedPhotometric(code)

    fmt = TargetPixelFormat(color_type, depth)
    logger.debug(
        "negotiated %s for photometric=%s spp=%d bps=%d",
        fmt,
        descriptor.photometric.name,
        spp,
        depth,
    )
    return fmt


def normalized_format() -> TargetPixelFormat:
    """Normalized mode always writes 8-bit RGBA."""

    return RGBA8


def check_bit_depth(fmt: TargetPixelFormat) -> TargetPixelFormat:
    allowed = _PNG_BIT_DEPTHS[fmt.color_type]
    if int(fmt.bit_depth) not in allowed:
        raise UnsupportedBitDepth(fmt.bit_depth, fmt.color_type.name)
    return fmt


def check_sample_layout(descriptor: SourceImageDescriptor, fmt: TargetPixelFormat) -> None:
    """Scanlines are passed through untouched, so channel counts must agree."""

    if int(descriptor.samples_per_pixel) != fmt.channels:
        raise UnsupportedSampleLayout(
            f"{descriptor.samples_per_pixel} samples per pixel cannot be written as "
            f"{fmt.color_type.name} ({fmt.channels} channels) without conversion"
        )


def check_sample_format(sample_format: int) -> None:
    """Only unsigned integer samples (SampleFormat=1) map onto PNG samples."""

    if int(sample_format) != 1:
        raise FormatError(
            f"Unsupported TIFF SampleFormat {int(sample_format)}; only unsigned integers are supported"
        )
