from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import Sequence

from PIL import Image, UnidentifiedImageError

from image_resizer.error_handling import FeatureFailure
from image_resizer.structured_logging import StructuredLogger


@dataclass(frozen=True)
class ProbedDimensions:
    """Outcome of reading the first file's size; ``size`` is None when unreadable."""

    size: tuple[int, int] | None

    @property
    def known(self) -> bool:
        return self.size is not None


@dataclass
class BatchContext:
    files: tuple[str, ...]
    logger: StructuredLogger | None = field(default=None, repr=False, compare=False)
    _dimensions: ProbedDimensions | None = field(default=None, init=False, repr=False)

    @classmethod
    def from_paths(
        cls,
        paths: Sequence[str | Path],
        logger: StructuredLogger | None = None,
    ) -> "BatchContext":
        return cls(files=tuple(str(path) for path in paths), logger=logger)

    @property
    def count(self) -> int:
        return len(self.files)

    @property
    def has_multiple_files(self) -> bool:
        return self.count > 1

    @property
    def contains_gif(self) -> bool:
        return any(path.lower().endswith(".gif") for path in self.files)

    @property
    def dimensions(self) -> ProbedDimensions | None:
        """Cached probe result, or None while the first file hasn't been read."""
        return self._dimensions

    def load_dimensions(self) -> ProbedDimensions:
        if self._dimensions is None:
            self._dimensions = self._probe_first_file()
        return self._dimensions

    async def load_dimensions_async(self) -> ProbedDimensions:
        if self._dimensions is not None:
            return self._dimensions
        probed = await asyncio.to_thread(self._probe_first_file)
        if self._dimensions is None:
            self._dimensions = probed
        return self._dimensions

    def _probe_first_file(self) -> ProbedDimensions:
        if not self.files:
            return ProbedDimensions(size=None)
        first = Path(self.files[0])
        try:
            with Image.open(first) as image:
                width, height = image.size
        except (OSError, UnidentifiedImageError, ValueError, Image.DecompressionBombError) as exc:
            if self.logger:
                self.logger.log_event(
                    "WARNING",
                    "image_probe_failed",
                    "Could not read image dimensions",
                    path=str(first),
                    error=str(exc),
                    error_code=FeatureFailure.IMAGE_PROBE_FAILED.error_code,
                )
            return ProbedDimensions(size=None)
        return ProbedDimensions(size=(int(width), int(height)))
