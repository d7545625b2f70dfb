from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Optional

import numpy as np

from tiffpng.errors import (
    AllocationError,
    IoError,
    MetadataError,
    SourceReadFailed,
)
from tiffpng.formats import Photometric, SourceImageDescriptor
from tiffpng.transcode import pack_argb

logger = logging.getLogger(__name__)

# Baseline TIFF tag codes.
TAG_IMAGE_WIDTH = 256
TAG_IMAGE_LENGTH = 257
TAG_BITS_PER_SAMPLE = 258
TAG_PHOTOMETRIC = 262
TAG_SAMPLES_PER_PIXEL = 277
TAG_PLANAR_CONFIG = 284
TAG_SAMPLE_FORMAT = 339

# Compression schemes whose segments need JPEGTables / a JPEG header.
_JPEG_COMPRESSIONS = (6, 7, 33007, 34892)

_PIL_16BIT_MODES = ("I;16", "I;16L", "I;16B", "I;16N")

_DIRECT_RGBA_PHOTOMETRICS = (Photometric.MIN_IS_BLACK, Photometric.MIN_IS_WHITE, Photometric.RGB)


def _single_value(value: Any, *, name: str) -> int:
    """Collapse per-sample tag values (e.g. BitsPerSample=(8, 8, 8)) to one int."""

    if isinstance(value, (tuple, list)):
        if not value:
            raise MetadataError(f"{name} tag is empty")
        first = int(value[0])
        if any(int(v) != first for v in value):
            raise MetadataError(f"{name} differs between samples: {tuple(value)!r}")
        return first
    try:
        return int(value)
    except Exception as exc:  # noqa: BLE001 - tag validation boundary
        raise MetadataError(f"{name} tag is unreadable: {value!r}") from exc


def pack_subbyte_row(values: np.ndarray, bits: int) -> bytes:
    """Pack 1/2/4-bit samples MSB-first, padding the last byte with zeros."""

    per_byte = 8 // int(bits)
    vals = np.asarray(values).astype(np.uint8).reshape(-1) & ((1 << int(bits)) - 1)
    pad = (-vals.size) % per_byte
    if pad:
        vals = np.concatenate([vals, np.zeros(pad, dtype=np.uint8)])
    shifts = (8 - int(bits)) - int(bits) * np.arange(per_byte, dtype=np.uint8)
    groups = vals.reshape(-1, per_byte) << shifts
    return np.bitwise_or.reduce(groups, axis=1).astype(np.uint8).tobytes()


def to_rgba8(pixels: np.ndarray, *, photometric: Photometric, bits_per_sample: int) -> np.ndarray:
    """Convert one row of (W, S) samples to (W, 4) uint8 RGBA.

    16-bit samples keep their high byte and sub-byte samples are stretched to
    the full 0..255 range. Gray is copied into R, G and B. The sample after
    the color samples is alpha; without one, alpha is 255.
    """

    px = np.asarray(pixels)
    if px.ndim == 1:
        px = px[:, None]
    bits = int(bits_per_sample)
    if bits == 16:
        px8 = (px.astype(np.uint16) >> 8).astype(np.uint8)
    elif bits == 8:
        px8 = px.astype(np.uint8)
    elif bits in (1, 2, 4):
        px8 = (px.astype(np.uint16) * 255 // ((1 << bits) - 1)).astype(np.uint8)
    else:
        raise ValueError(f"Cannot reduce {bits}-bit samples to 8 bits")

    out = np.empty((px8.shape[0], 4), dtype=np.uint8)
    if photometric is Photometric.RGB:
        if px8.shape[1] < 3:
            raise ValueError(f"RGB row needs 3 samples per pixel, got {px8.shape[1]}")
        out[:, :3] = px8[:, :3]
        alpha_at = 3
    else:
        gray = px8[:, 0]
        if photometric is Photometric.MIN_IS_WHITE:
            gray = 255 - gray
        out[:, 0] = gray
        out[:, 1] = gray
        out[:, 2] = gray
        alpha_at = 1
    out[:, 3] = px8[:, alpha_at] if px8.shape[1] > alpha_at else 255
    return out


class TiffSource:
    """First image of a TIFF file, read through ``tifffile``.

    Scanlines are handed out in host byte order with samples interleaved,
    regardless of the file's byte order or planar configuration. Pixel data
    is decoded one band at a time, where a band is the strip (or row of
    tiles) holding the requested row, and only the current band is kept.
    """

    def __init__(self, handle: Any, page: Any, path: Path) -> None:
        self._handle = handle
        self._page = page
        self.path = path
        self._descriptor: Optional[SourceImageDescriptor] = None
        self._band: Optional[np.ndarray] = None
        self._band_index = -1

    @classmethod
    def open(cls, path: str | Path) -> "TiffSource":
        import tifffile

        p = Path(path)
        try:
            handle = tifffile.TiffFile(str(p))
        except OSError as exc:
            raise IoError(f"Could not open TIFF file {str(p)!r}: {exc}") from exc
        except Exception as exc:  # noqa: BLE001 - tifffile parse errors are ValueErrors
            raise IoError(f"Could not read {str(p)!r} as TIFF: {exc}") from exc

        try:
            page = handle.pages[0]
        except Exception as exc:  # noqa: BLE001 - translate to conversion error
            handle.close()
            raise IoError(f"TIFF file {str(p)!r} contains no images: {exc}") from exc

        logger.debug("opened %s (%d page(s))", p, len(handle.pages))
        return cls(handle, page, p)

    # ------------------------------------------------------------------
    @property
    def descriptor(self) -> SourceImageDescriptor:
        if self._descriptor is None:
            self._descriptor = self._read_descriptor()
        return self._descriptor

    @property
    def sample_format(self) -> int:
        value = self._page.tags.valueof(TAG_SAMPLE_FORMAT, default=1)
        return _single_value(value, name="SampleFormat")

    @property
    def scanline_size(self) -> int:
        return self.descriptor.scanline_size

    @property
    def band_height(self) -> int:
        """Rows per strip, or tile length for tiled images."""

        page = self._page
        if page.is_tiled:
            return int(page.tilelength)
        return max(1, min(int(page.rowsperstrip), self.descriptor.height))

    def _read_descriptor(self) -> SourceImageDescriptor:
        tags = self._page.tags

        required = {
            "ImageWidth": TAG_IMAGE_WIDTH,
            "ImageLength": TAG_IMAGE_LENGTH,
            "PhotometricInterpretation": TAG_PHOTOMETRIC,
        }
        values: dict[str, Any] = {}
        for name, code in required.items():
            value = tags.valueof(code)
            if value is None:
                raise MetadataError(f"Missing required TIFF tag {name} ({code}) in {str(self.path)!r}")
            values[name] = value

        photometric_code = _single_value(values["PhotometricInterpretation"], name="PhotometricInterpretation")
        return SourceImageDescriptor(
            width=_single_value(values["ImageWidth"], name="ImageWidth"),
            height=_single_value(values["ImageLength"], name="ImageLength"),
            # TIFF 6.0 defaults when the tags are absent.
            bits_per_sample=_single_value(
                tags.valueof(TAG_BITS_PER_SAMPLE, default=1), name="BitsPerSample"
            ),
            samples_per_pixel=_single_value(
                tags.valueof(TAG_SAMPLES_PER_PIXEL, default=1), name="SamplesPerPixel"
            ),
            photometric=Photometric.from_tag(photometric_code),
            photometric_code=photometric_code,
            planar_config=_single_value(
                tags.valueof(TAG_PLANAR_CONFIG, default=1), name="PlanarConfiguration"
            ),
        )

    # ------------------------------------------------------------------
    def _band_segments(self, band: int) -> list[int]:
        """Strip/tile indices that make up ``band`` of the first depth plane."""

        page = self._page
        desc = self.descriptor
        planes = desc.samples_per_pixel if desc.planar_config == 2 else 1
        if page.is_tiled:
            across = -(-desc.width // int(page.tilewidth))
            down = -(-desc.height // int(page.tilelength))
            depth = -(-int(page.imagedepth) // int(page.tiledepth))
            per_plane = across * down * depth
            return [p * per_plane + band * across + x for p in range(planes) for x in range(across)]
        per_plane = -(-desc.height // self.band_height) * int(page.imagedepth)
        return [p * per_plane + band for p in range(planes)]

    def _read_segment(self, index: int) -> Optional[bytes]:
        page = self._page
        offset = int(page.dataoffsets[index])
        count = int(page.databytecounts[index])
        if offset == 0 or count == 0:
            return None
        fh = page.parent.filehandle
        with fh.lock:
            fh.seek(offset)
            return fh.read(count)

    def _decode_band(self, band: int, row: int) -> np.ndarray:
        page = self._page
        desc = self.descriptor
        start = band * self.band_height
        rows = min(self.band_height, desc.height - start)
        planes = desc.samples_per_pixel if desc.planar_config == 2 else 1
        contig = desc.samples_per_pixel // planes

        kwargs: dict[str, Any] = {}
        if int(page.compression) in _JPEG_COMPRESSIONS:
            kwargs["jpegtables"] = page.jpegtables
            kwargs["jpegheader"] = page.jpegheader

        try:
            out: Optional[np.ndarray] = None
            decode = page.decode
            for index in self._band_segments(band):
                if index >= len(page.dataoffsets):
                    raise ValueError(f"segment {index} is missing from the file")
                segment, position, _ = decode(self._read_segment(index), index, **kwargs)
                if out is None:
                    dtype = segment.dtype if segment is not None else np.dtype(page.dtype)
                    out = np.zeros((planes, rows, desc.width, contig), dtype=dtype)
                if segment is None:
                    continue
                plane, x0 = int(position[0]), int(position[3])
                h = min(segment.shape[1], rows)
                w = min(segment.shape[2], desc.width - x0)
                out[plane, :h, x0 : x0 + w] = segment[0, :h, :w]
        except MemoryError as exc:
            raise AllocationError(
                f"Could not allocate a {desc.width}x{rows} pixel band"
            ) from exc
        except Exception as exc:  # noqa: BLE001 - decoder failure boundary
            raise SourceReadFailed(str(exc), row=row) from exc

        # (planes, rows, W, contig) -> (rows, W, samples)
        pixels = np.moveaxis(out, 0, -2).reshape(rows, desc.width, -1)
        if pixels.dtype.itemsize > 1:
            pixels = pixels.astype(pixels.dtype.newbyteorder("="), copy=False)
        logger.debug("decoded rows %d..%d of %s", start, start + rows - 1, self.path)
        return np.ascontiguousarray(pixels)

    def read_pixels(self, row: int) -> np.ndarray:
        """Return row ``row`` as a (width, samples) array of unpacked samples."""

        desc = self.descriptor
        if row < 0 or row >= desc.height:
            raise SourceReadFailed(f"row index out of range [0, {desc.height})", row=row)
        band = row // self.band_height
        if band != self._band_index:
            self._band = None
            self._band = self._decode_band(band, row)
            self._band_index = band
        return self._band[row - band * self.band_height]

    def read_scanline(self, row: int) -> bytes:
        """Return row ``row`` in the source's packed, host-order representation."""

        line = self.read_pixels(row)
        bits = self.descriptor.bits_per_sample
        if bits < 8:
            return pack_subbyte_row(line, bits)
        return line.tobytes()

    def _decodes_to_rgba(self) -> bool:
        desc = self.descriptor
        if desc.photometric not in _DIRECT_RGBA_PHOTOMETRICS:
            return False
        if desc.bits_per_sample not in (1, 2, 4, 8, 16) or self.sample_format != 1:
            return False
        return desc.photometric is not Photometric.RGB or desc.samples_per_pixel >= 3

    def rgba_raster(self) -> np.ndarray:
        """Decode the image into an (H, W) uint32 raster of ``0xAARRGGBB``.

        Gray, gray+alpha, RGB and RGBA at any bit depth PNG knows are
        converted from the decoded samples. Other layouts (palette, YCbCr,
        CMYK, ...) go through Pillow via :func:`read_rgba_raster`.
        """

        desc = self.descriptor
        if not self._decodes_to_rgba():
            logger.debug("converting %s to RGBA with Pillow", self.path)
            return read_rgba_raster(self.path)

        try:
            raster = np.empty((desc.height, desc.width), dtype=np.uint32)
        except MemoryError as exc:
            raise AllocationError(
                f"Could not allocate {desc.width}x{desc.height} RGBA raster"
            ) from exc
        for y in range(desc.height):
            rgba = to_rgba8(
                self.read_pixels(y),
                photometric=desc.photometric,
                bits_per_sample=desc.bits_per_sample,
            )
            raster[y] = pack_argb(rgba[None])[0]
        self._band = None
        self._band_index = -1
        return raster

    def close(self) -> None:
        self._band = None
        self._band_index = -1
        if self._handle is not None:
            self._handle.close()
            self._handle = None
            logger.debug("closed %s", self.path)

    def __enter__(self) -> "TiffSource":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def read_rgba_raster(path: str | Path) -> np.ndarray:
    """Decode the first image with Pillow into an (H, W) uint32 raster.

    Each pixel is host-endian ``0xAARRGGBB`` and rows run top to bottom.
    Pillow performs the color conversion; 16-bit grayscale is reduced to
    8 bits by keeping the high byte.
    """

    from PIL import Image

    path_str = str(path)
    try:
        with Image.open(path_str) as img:
            img.load()
            if img.mode in _PIL_16BIT_MODES:
                wide = np.asarray(img).astype(np.uint16)
                img = Image.fromarray((wide >> 8).astype(np.uint8))
            rgba = np.asarray(img.convert("RGBA"), dtype=np.uint8)
    except MemoryError as exc:
        raise AllocationError(f"Could not allocate RGBA raster for {path_str!r}") from exc
    except Exception as exc:  # noqa: BLE001 - decoder failure boundary
        raise SourceReadFailed(str(exc), row=None) from exc

    return pack_argb(rgba)
