"""One-file-at-a-time TIFF -> PNG conversion.

Control flow per file: open source -> negotiate the PNG format -> open an
encode session -> stream rows -> finalize. Errors stay local to the file
being converted; :func:`convert_files` keeps going with the next one.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional

from tiffpng.config.settings import ConvertConfig
from tiffpng.errors import ConversionError, IoError, SourceReadFailed
from tiffpng.formats import ConversionMode, TargetPixelFormat
from tiffpng.io.source import TiffSource
from tiffpng.negotiate import (
    check_bit_depth,
    check_sample_format,
    check_sample_layout,
    negotiate_format,
    normalized_format,
)
from tiffpng.session import EncodeSession, SessionHooks
from tiffpng.transcode import RasterTranscoder, ScanlineTranscoder

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConversionResult:
    input_path: Path
    output_path: Path
    fmt: TargetPixelFormat
    mode: ConversionMode
    rows_written: int


@dataclass(frozen=True)
class FileOutcome:
    input_path: Path
    result: Optional[ConversionResult] = None
    error: Optional[ConversionError] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.result is not None


def output_path_for(path: str | Path) -> Path:
    """Replace the file name's extension with ``.png`` (append when there is none)."""

    p = Path(path)
    name = p.name
    dot = name.rfind(".")
    if dot >= 0:
        name = name[:dot] + ".png"
    else:
        name = name + ".png"
    return p.with_name(name)


def _same_file(a: Path, b: Path) -> bool:
    try:
        return a.resolve() == b.resolve()
    except OSError:
        return False


def convert_file(
    input_path: str | Path,
    output_path: str | Path | None = None,
    *,
    config: Optional[ConvertConfig] = None,
    hooks: Optional[SessionHooks] = None,
) -> ConversionResult:
    """Convert the first image of a TIFF file to PNG.

    Parameters
    ----------
    input_path:
        TIFF file to read.
    output_path:
        PNG file to write. Defaults to :func:`output_path_for(input_path)`.
    config:
        Mode, compression and failure policy. Defaults to exact passthrough.
    hooks:
        Optional resource observer passed to the :class:`EncodeSession`.

    Raises
    ------
    ConversionError
        Any failure; the output file is removed unless
        ``config.on_failure == "keep"``.
    """

    cfg = config if config is not None else ConvertConfig()
    src_path = Path(input_path)
    out_path = Path(output_path) if output_path is not None else output_path_for(src_path)

    if _same_file(src_path, out_path):
        raise IoError(f"Output path {str(out_path)!r} would overwrite the input file")

    with TiffSource.open(src_path) as source:
        desc = source.descriptor.validate()

        if cfg.mode is ConversionMode.PASSTHROUGH:
            fmt = check_bit_depth(negotiate_format(desc))
            check_sample_layout(desc, fmt)
            check_sample_format(source.sample_format)
            transcoder = ScanlineTranscoder(source, fmt, width=desc.width, height=desc.height)
        else:
            fmt = normalized_format()
            transcoder = RasterTranscoder(source.rgba_raster())
            if (transcoder.width, transcoder.height) != (desc.width, desc.height):
                transcoder.release()
                raise SourceReadFailed(
                    f"raster is {transcoder.width}x{transcoder.height}, "
                    f"expected {desc.width}x{desc.height}",
                    row=None,
                )

        logger.info(
            "converting %s -> %s as %s (%s)", src_path, out_path, fmt, cfg.mode.value
        )
        try:
            with EncodeSession(
                out_path,
                compression=cfg.compression,
                chunk_limit=cfg.chunk_limit,
                on_failure=cfg.on_failure,
                hooks=hooks,
            ) as session:
                session.begin(desc.width, desc.height, fmt)
                session.write_rows(transcoder.rows())
                session.finalize()
                rows_written = session.rows_written
        finally:
            if isinstance(transcoder, RasterTranscoder):
                transcoder.release()

    return ConversionResult(
        input_path=src_path,
        output_path=out_path,
        fmt=fmt,
        mode=cfg.mode,
        rows_written=rows_written,
    )


def convert_files(
    paths: Iterable[str | Path],
    *,
    config: Optional[ConvertConfig] = None,
) -> list[FileOutcome]:
    """Convert each file in turn; a failure never stops the remaining files."""

    outcomes: list[FileOutcome] = []
    for raw in paths:
        path = Path(raw)
        try:
            result = convert_file(path, config=config)
        except ConversionError as exc:
            logger.debug("conversion of %s failed", path, exc_info=True)
            outcomes.append(FileOutcome(input_path=path, error=exc))
        else:
            outcomes.append(FileOutcome(input_path=path, result=result))
    return outcomes
