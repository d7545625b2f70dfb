"""``tiffpng FILE1 [FILE2 ...]``

Every argument is an input file, including ones that start with ``-``.
Per-file results go to stdout in argument order, one line per file; the
exit code is 0 only when every file converted.
"""

from __future__ import annotations

import logging
import sys
from typing import Optional, Sequence

from tiffpng.config.settings import ConvertConfig
from tiffpng.pipeline import convert_files

_PROG = "tiffpng"


def main(argv: Sequence[str] | None = None, *, config: Optional[ConvertConfig] = None) -> int:
    files = list(sys.argv[1:] if argv is None else argv)
    if not files:
        print(f"Usage: {_PROG} TIFF_FILE1 [TIFF_FILE2 ...]", file=sys.stderr)
        return 1

    logging.basicConfig(level=logging.WARNING, format="%(levelname)s %(name)s: %(message)s")

    exit_code = 0
    for outcome in convert_files(files, config=config):
        if outcome.ok:
            print(f"Converted: {outcome.input_path} -> {outcome.result.output_path}")
        else:
            print(f"Failed to convert: {outcome.input_path}: {outcome.error}")
            exit_code = 1
    sys.stdout.flush()
    return exit_code


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
