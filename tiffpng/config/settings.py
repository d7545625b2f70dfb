from __future__ import annotations

from dataclasses import dataclass

from tiffpng.formats import ConversionMode, parse_conversion_mode
from tiffpng.session import ON_FAILURE_CHOICES


@dataclass(frozen=True)
class ConvertConfig:
    """Knobs for one conversion run.

    ``mode`` accepts a :class:`ConversionMode` or its string value.
    ``on_failure`` decides what happens to an output file that was created
    but never finalized: ``"remove"`` deletes it, ``"keep"`` leaves the stub.
    """

    mode: ConversionMode = ConversionMode.PASSTHROUGH
    compression: int | None = None
    chunk_limit: int = 2**20
    on_failure: str = "remove"

    def __post_init__(self) -> None:
        object.__setattr__(self, "mode", parse_conversion_mode(self.mode))
        if isinstance(self.compression, bool) or isinstance(self.chunk_limit, bool):
            raise ValueError("compression and chunk_limit must be integers, not bool")
        if self.compression is not None and not -1 <= int(self.compression) <= 9:
            raise ValueError(f"compression must be in [-1, 9] or None, got {self.compression!r}")
        if int(self.chunk_limit) <= 0:
            raise ValueError(f"chunk_limit must be positive, got {self.chunk_limit!r}")
        if self.on_failure not in ON_FAILURE_CHOICES:
            raise ValueError(
                f"on_failure must be one of {ON_FAILURE_CHOICES}, got {self.on_failure!r}"
            )
