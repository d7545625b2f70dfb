"""Scoped PNG encode session.

An :class:`EncodeSession` owns everything on the destination side of one
conversion: the output file, the ``pypng`` writer plus the zlib stream, and
the reusable scanline buffer. It drives PNG's three-phase protocol::

    with EncodeSession(path) as session:
        session.begin(width, height, fmt)
        for row in rows:
            session.write_row(row)
        session.finalize()

``pypng`` reports fatal conditions by raising ``png.Error``; every call into
the encoder translates those into :class:`~tiffpng.errors.EncodeError`.
Entering ``FINALIZED`` or ``FAILED`` releases the acquired resources in
reverse acquisition order, exactly once. A session is never reused.
"""

from __future__ import annotations

import logging
import zlib
from contextlib import contextmanager
from enum import Enum
from pathlib import Path
from typing import IO, Iterable, Iterator, Optional

import png

from .errors import AllocationError, ConversionError, EncodeError, IoError, RowProtocolError
from .formats import TargetPixelFormat

logger = logging.getLogger(__name__)

ON_FAILURE_CHOICES = ("remove", "keep")


class SessionState(str, Enum):
    UNOPENED = "unopened"
    OPENED = "opened"
    HEADER_WRITTEN = "header_written"
    WRITING_ROWS = "writing_rows"
    FINALIZED = "finalized"
    FAILED = "failed"


_TERMINAL = (SessionState.FINALIZED, SessionState.FAILED)


class SessionHooks:
    """Observer for resource acquisition; the default does nothing."""

    def acquired(self, resource: str) -> None:
        pass

    def released(self, resource: str) -> None:
        pass


class EncodeSession:
    def __init__(
        self,
        path: str | Path,
        *,
        compression: Optional[int] = None,
        chunk_limit: int = 2**20,
        on_failure: str = "remove",
        hooks: Optional[SessionHooks] = None,
    ) -> None:
        if on_failure not in ON_FAILURE_CHOICES:
            raise ValueError(
                f"on_failure must be one of {ON_FAILURE_CHOICES}, got {on_failure!r}"
            )
        if compression is not None and not -1 <= int(compression) <= 9:
            raise ValueError(f"compression must be in [-1, 9] or None, got {compression!r}")
        if int(chunk_limit) <= 0:
            raise ValueError(f"chunk_limit must be positive, got {chunk_limit!r}")

        self.path = Path(path)
        self.compression = None if compression is None else int(compression)
        self.chunk_limit = int(chunk_limit)
        self.on_failure = on_failure
        self.hooks = hooks if hooks is not None else SessionHooks()

        self.state = SessionState.UNOPENED
        self.fmt: Optional[TargetPixelFormat] = None
        self.width = 0
        self.height = 0
        self.rows_written = 0

        self._fp: Optional[IO[bytes]] = None
        self._writer: Optional[png.Writer] = None
        self._compressor = None
        self._pending = bytearray()
        self._row_buffer: Optional[bytearray] = None
        self._row_bytes = 0
        self._released = False

    # ------------------------------------------------------------------
    # Context management
    def __enter__(self) -> "EncodeSession":
        if self.state is SessionState.UNOPENED:
            self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self.state not in _TERMINAL:
            if exc_type is None:
                logger.warning(
                    "session for %s closed after %d/%d rows without finalize()",
                    self.path,
                    self.rows_written,
                    self.height,
                )
            self._fail()
        self.release()

    # ------------------------------------------------------------------
    def _require_state(self, *allowed: SessionState, op: str) -> None:
        if self.state not in allowed:
            expected = ", ".join(s.value for s in allowed)
            error = RowProtocolError(
                f"{op}() called in state {self.state.value!r}; expected one of: {expected}"
            )
            if self.state not in _TERMINAL:
                self._fail()
            raise error

    def _fail(self) -> None:
        if self.state in _TERMINAL:
            return
        logger.debug("session for %s failed in state %s", self.path, self.state.value)
        self.state = SessionState.FAILED
        self.release()

    @contextmanager
    def _encoder_call(self, stage: str) -> Iterator[None]:
        """Translate encoder-side failures into typed errors and fail the session."""

        try:
            yield
        except ConversionError:
            self._fail()
            raise
        except png.Error as exc:
            self._fail()
            raise EncodeError(f"PNG encoder error during {stage}: {exc}") from exc
        except (OSError, zlib.error) as exc:
            self._fail()
            raise EncodeError(f"Failed to write PNG data during {stage}: {exc}") from exc
        except MemoryError as exc:
            self._fail()
            raise AllocationError(f"Out of memory during {stage}") from exc

    # ------------------------------------------------------------------
    # Protocol
    def open(self) -> "EncodeSession":
        """Create the output file for writing."""

        self._require_state(SessionState.UNOPENED, op="open")
        try:
            self._fp = self.path.open("wb")
        except OSError as exc:
            self._fail()
            raise IoError(f"Failed to open output PNG file {str(self.path)!r}: {exc}") from exc
        self.hooks.acquired("file")
        self.state = SessionState.OPENED
        logger.debug("opened %s for writing", self.path)
        return self

    def begin(self, width: int, height: int, fmt: TargetPixelFormat) -> None:
        """Write the PNG signature and IHDR; fixes the format for the session."""

        self._require_state(SessionState.OPENED, op="begin")
        with self._encoder_call("header write"):
            writer = png.Writer(
                width=int(width),
                height=int(height),
                greyscale=fmt.color_type.greyscale,
                alpha=fmt.color_type.alpha,
                bitdepth=int(fmt.bit_depth),
                compression=self.compression,
                interlace=False,
                chunk_limit=self.chunk_limit,
            )
            if writer.rescale or writer.bitdepth != int(fmt.bit_depth):
                raise EncodeError(
                    f"PNG cannot store {fmt.color_type.name} at {fmt.bit_depth} bits per sample"
                )
            if writer.color_type != int(fmt.color_type):
                raise EncodeError(
                    f"Encoder chose color type {writer.color_type}, expected {int(fmt.color_type)}"
                )
            self._writer = writer
            # Writer.write_packed pulls every row from one iterator, which cannot
            # serve push-style write_row calls. IDAT data is compressed and
            # chunked here the same way write_packed does it.
            if self.compression is not None:
                self._compressor = zlib.compressobj(self.compression)
            else:
                self._compressor = zlib.compressobj()
            self.hooks.acquired("encoder")

            self._row_bytes = fmt.row_bytes(width)
            self._row_buffer = bytearray(1 + self._row_bytes)
            self.hooks.acquired("row_buffer")

            writer.write_preamble(self._fp)

        self.fmt = fmt
        self.width = int(width)
        self.height = int(height)
        self.state = SessionState.HEADER_WRITTEN
        logger.debug("wrote header %dx%d %s to %s", self.width, self.height, fmt, self.path)

    def write_row(self, row: bytes) -> None:
        """Append one scanline; rows go top to bottom, exactly ``height`` of them."""

        self._require_state(
            SessionState.HEADER_WRITTEN, SessionState.WRITING_ROWS, op="write_row"
        )
        if self.rows_written >= self.height:
            self._fail()
            raise RowProtocolError(f"Image has {self.height} rows; refusing row {self.rows_written}")
        if len(row) != self._row_bytes:
            self._fail()
            raise RowProtocolError(
                f"Row {self.rows_written} has {len(row)} bytes, expected {self._row_bytes}"
            )

        with self._encoder_call(f"row {self.rows_written}"):
            buf = self._row_buffer
            # Filter type 0 (None) for every scanline.
            buf[0] = 0
            buf[1:] = row
            self._pending.extend(self._compressor.compress(buf))
            if len(self._pending) > self.chunk_limit:
                png.write_chunk(self._fp, b"IDAT", self._pending)
                self._pending.clear()

        self.rows_written += 1
        self.state = SessionState.WRITING_ROWS

    def write_rows(self, rows: Iterable[bytes]) -> int:
        for row in rows:
            self.write_row(row)
        return self.rows_written

    def finalize(self) -> None:
        """Flush the zlib stream, write the final IDAT and IEND, then release."""

        self._require_state(SessionState.WRITING_ROWS, op="finalize")
        if self.rows_written != self.height:
            self._fail()
            raise RowProtocolError(
                f"rows supplied ({self.rows_written}) does not match height ({self.height})"
            )

        with self._encoder_call("finalize"):
            self._pending.extend(self._compressor.flush())
            if self._pending:
                png.write_chunk(self._fp, b"IDAT", self._pending)
                self._pending.clear()
            png.write_chunk(self._fp, b"IEND")
            self._fp.flush()

        self.state = SessionState.FINALIZED
        logger.debug("finalized %s (%d rows)", self.path, self.rows_written)
        self.release()

    # ------------------------------------------------------------------
    def release(self) -> None:
        """Free row buffer, encoder state, and file handle; safe to call repeatedly."""

        if self._released:
            return
        self._released = True
        if self.state not in _TERMINAL:
            self.state = SessionState.FAILED

        if self._row_buffer is not None:
            self._row_buffer = None
            self.hooks.released("row_buffer")

        if self._writer is not None or self._compressor is not None:
            self._writer = None
            self._compressor = None
            self._pending = bytearray()
            self.hooks.released("encoder")

        if self._fp is not None:
            fp, self._fp = self._fp, None
            try:
                fp.close()
            finally:
                self.hooks.released("file")
                if self.state is SessionState.FAILED and self.on_failure == "remove":
                    self.path.unlink(missing_ok=True)
                    logger.warning("removed partial output %s", self.path)

    close = release
