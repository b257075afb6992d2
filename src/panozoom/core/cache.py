"""Memory bookkeeping for decoded sources and materialized pyramid levels."""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict

import numpy as np

from panozoom.config import MAX_RESIDENT_SOURCES

from .source import PixelSource
from .types import LevelInfo

logger = logging.getLogger(__name__)


class SourceCache:
    """LRU bound on how many sources stay decoded at once.

    The canvas touches a source after every read; once more than
    ``max_resident`` sources are decoded, the least recently used one
    is released. Threads that still hold a view keep their pixels alive.
    """

    def __init__(self, max_resident: int = MAX_RESIDENT_SOURCES) -> None:
        if max_resident < 1:
            raise ValueError(f"max_resident must be >= 1, got {max_resident}")
        self._max_resident = max_resident
        # Use OrderedDict for LRU cache behavior
        self._resident: OrderedDict[int, PixelSource] = OrderedDict()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    @property
    def max_resident(self) -> int:
        return self._max_resident

    @property
    def resident_count(self) -> int:
        with self._lock:
            return len(self._resident)

    def resident_indices(self) -> list[int]:
        """Indices of decoded sources, least recently used first."""
        with self._lock:
            return list(self._resident)

    def touch(self, index: int, source: PixelSource) -> None:
        """Mark a source as just used and evict beyond the bound."""
        evicted: list[PixelSource] = []
        with self._lock:
            if index in self._resident:
                self._resident.move_to_end(index)
                self._hits += 1
            else:
                self._resident[index] = source
                self._misses += 1
            while len(self._resident) > self._max_resident:
                _, old = self._resident.popitem(last=False)
                evicted.append(old)
        for old in evicted:
            old.release()

    def release_all(self) -> None:
        """Release every decoded source."""
        with self._lock:
            sources = list(self._resident.values())
            self._resident.clear()
        for source in sources:
            source.release()
        logger.debug("Released %d decoded sources", len(sources))

    def get_stats(self) -> dict[str, int]:
        with self._lock:
            return {
                "hits": self._hits,
                "misses": self._misses,
                "resident": len(self._resident),
            }


class LevelBuffers:
    """Two-slot rotation of materialized level buffers.

    ``current`` is the level being read (tiles and next reduction);
    ``staged`` is the level being written by the downsampler. Rotating
    discards ``current`` and promotes ``staged``, so at most two levels
    are ever resident.
    """

    def __init__(self) -> None:
        self._current: tuple[LevelInfo, np.ndarray] | None = None
        self._staged: tuple[LevelInfo, np.ndarray] | None = None
        self._lock = threading.Lock()

    def stage(self, info: LevelInfo, pixels: np.ndarray) -> None:
        """Store a fully produced level in the staging slot.

        Raises:
            RuntimeError: If a staged level has not been rotated in yet
            ValueError: If the buffer shape does not match the level
        """
        if pixels.shape[:2] != (info.height, info.width):
            raise ValueError(
                f"Buffer {pixels.shape[1]}x{pixels.shape[0]} does not match "
                f"level {info.level} ({info.width}x{info.height})"
            )
        pixels.flags.writeable = False
        with self._lock:
            if self._staged is not None:
                raise RuntimeError(
                    f"Level {self._staged[0].level} is still staged; rotate first"
                )
            self._staged = (info, pixels)

    def rotate(self) -> int | None:
        """Discard the current level and promote the staged one.

        Returns:
            Index of the discarded level, or None if nothing was current
        """
        with self._lock:
            dropped = self._current[0].level if self._current is not None else None
            self._current = self._staged
            self._staged = None
        if dropped is not None:
            logger.debug("Discarded level %d buffer", dropped)
        return dropped

    @property
    def current(self) -> tuple[LevelInfo, np.ndarray] | None:
        with self._lock:
            return self._current

    def get(self, level: int) -> np.ndarray | None:
        """Return the buffer for ``level`` if it is resident."""
        with self._lock:
            for slot in (self._current, self._staged):
                if slot is not None and slot[0].level == level:
                    return slot[1]
        return None

    @property
    def resident_levels(self) -> list[int]:
        with self._lock:
            return [slot[0].level for slot in (self._current, self._staged) if slot is not None]

    @property
    def nbytes(self) -> int:
        with self._lock:
            return sum(slot[1].nbytes for slot in (self._current, self._staged) if slot is not None)

    def clear(self) -> None:
        with self._lock:
            self._current = None
            self._staged = None
