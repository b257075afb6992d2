"""Virtual canvas: several same-height images addressed as one panorama."""

from __future__ import annotations

import bisect
import logging
from typing import Iterator, Sequence

import numpy as np

from panozoom.config import DEFAULT_PIXEL_FORMAT, PIXEL_FORMATS
from panozoom.errors import DecodeError, EmptyInputError, HeightMismatchError, OutOfBoundsError

from .cache import SourceCache
from .source import PixelSource, normalize_bands
from .types import Rect

logger = logging.getLogger(__name__)


class VirtualCanvas:
    """Ordered sources laid out left to right with no gaps.

    Use :meth:`build` rather than the constructor so the input is validated.

    Args:
        sources: Sources in horizontal order
        bands: Channels of every buffer returned by :meth:`read_rect`
        source_cache: Bound on decoded sources (a default one is created)
    """

    def __init__(
        self,
        sources: Sequence[PixelSource],
        bands: int = PIXEL_FORMATS[DEFAULT_PIXEL_FORMAT],
        source_cache: SourceCache | None = None,
    ) -> None:
        self._sources = list(sources)
        self._bands = bands
        self._cache = source_cache if source_cache is not None else SourceCache()

        # Ordered offset index: _offsets[i] is the first column of source i
        self._offsets: list[int] = []
        offset = 0
        for source in self._sources:
            source.offset = offset
            self._offsets.append(offset)
            offset += source.width
        self._width = offset
        self._height = self._sources[0].height if self._sources else 0

    @classmethod
    def build(
        cls,
        sources: Sequence[PixelSource],
        bands: int = PIXEL_FORMATS[DEFAULT_PIXEL_FORMAT],
        source_cache: SourceCache | None = None,
    ) -> VirtualCanvas:
        """Validate the sources and lay them out.

        Raises:
            EmptyInputError: If ``sources`` is empty
            DecodeError: If a source has no pixels (zero width or height)
            HeightMismatchError: If any source height differs from the first
        """
        sources = list(sources)
        if not sources:
            raise EmptyInputError()

        for source in sources:
            if source.width < 1 or source.height < 1:
                raise DecodeError(
                    source.identifier, f"image has no pixels ({source.width}x{source.height})"
                )

        height = sources[0].height
        offenders = [(s.identifier, s.height) for s in sources if s.height != height]
        if offenders:
            raise HeightMismatchError(height, offenders)

        canvas = cls(sources, bands=bands, source_cache=source_cache)
        logger.info(
            "Canvas built from %d image(s): %d x %d px",
            len(sources), canvas.width, canvas.height,
        )
        return canvas

    @property
    def width(self) -> int:
        return self._width

    @property
    def height(self) -> int:
        return self._height

    @property
    def bands(self) -> int:
        return self._bands

    @property
    def sources(self) -> list[PixelSource]:
        return list(self._sources)

    @property
    def source_cache(self) -> SourceCache:
        return self._cache

    def __len__(self) -> int:
        return len(self._sources)

    def __iter__(self) -> Iterator[PixelSource]:
        return iter(self._sources)

    def source_index_at(self, x: int) -> int:
        """Index of the source owning global column ``x`` (binary search).

        Raises:
            OutOfBoundsError: If ``x`` is outside [0, width)
        """
        if not 0 <= x < self._width:
            raise OutOfBoundsError(Rect(x, 0, x + 1, 1), (self._width, self._height))
        return bisect.bisect_right(self._offsets, x) - 1

    def sources_in_span(self, x0: int, x1: int) -> list[int]:
        """Indices of the sources whose columns intersect [x0, x1)."""
        if x0 >= x1:
            return []
        first = self.source_index_at(max(x0, 0))
        indices = []
        for index in range(first, len(self._sources)):
            if self._offsets[index] >= x1:
                break
            indices.append(index)
        return indices

    def read_rect(self, x0: int, y0: int, x1: int, y1: int) -> np.ndarray:
        """Read a canvas rectangle, stitching across source seams.

        Returns:
            New (y1 - y0, x1 - x0, bands) uint8 array

        Raises:
            OutOfBoundsError: If the rectangle is empty or leaves the canvas
        """
        rect = Rect(x0, y0, x1, y1)
        if (
            x0 < 0 or y0 < 0
            or x1 > self._width or y1 > self._height
            or x0 >= x1 or y0 >= y1
        ):
            raise OutOfBoundsError(rect, (self._width, self._height))

        out = np.empty((rect.height, rect.width, self._bands), dtype=np.uint8)
        for index in self.sources_in_span(x0, x1):
            source = self._sources[index]
            local_x0 = max(x0 - source.offset, 0)
            local_x1 = min(x1 - source.offset, source.width)
            local = source.read_rect(local_x0, y0, local_x1, y1)
            self._cache.touch(index, source)

            dest = source.offset + local_x0 - x0
            out[:, dest:dest + local.shape[1]] = normalize_bands(local, self._bands)
        return out

    def release(self) -> None:
        """Release every decoded source buffer."""
        self._cache.release_all()
