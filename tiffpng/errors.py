"""Error taxonomy for TIFF -> PNG conversion.

Every failure of a single file's conversion surfaces as a subclass of
:class:`ConversionError`. Validation-style errors also derive from
``ValueError`` so callers that only care about "bad input" can catch that.
"""

from __future__ import annotations

from typing import Optional


class ConversionError(RuntimeError):
    """Base class for errors local to one file's conversion."""


class IoError(ConversionError):
    """The source or destination file could not be opened or created."""


class MetadataError(ConversionError, ValueError):
    """Required source tags are missing, unreadable, or out of range."""


class FormatError(ConversionError, ValueError):
    """The source pixel layout cannot be represented in the target format."""


class UnsupportedPhotometric(FormatError):
    def __init__(self, photometric: int) -> None:
        super().__init__(f"Unsupported photometric interpretation: {int(photometric)}")
        self.photometric = int(photometric)


class UnsupportedBitDepth(FormatError):
    def __init__(self, bit_depth: int, color_type: str) -> None:
        super().__init__(f"Unsupported bit depth {int(bit_depth)} for color type {color_type}")
        self.bit_depth = int(bit_depth)
        self.color_type = str(color_type)


class UnsupportedSampleLayout(FormatError):
    """Samples per pixel do not match the channel count of the chosen color type."""


class TranscodeError(ConversionError):
    """Source pixel data could not be turned into destination rows."""


class SourceReadFailed(TranscodeError):
    def __init__(self, message: str, *, row: Optional[int] = None) -> None:
        where = "raster" if row is None else f"row {int(row)}"
        super().__init__(f"Failed to read source {where}: {message}")
        self.row = None if row is None else int(row)


class EncodeError(ConversionError):
    """The PNG encoder reported a fatal error."""


class RowProtocolError(EncodeError):
    """The row-write protocol was violated (wrong state, length, or count)."""


class AllocationError(ConversionError):
    """A pixel buffer could not be allocated or its size overflows."""
