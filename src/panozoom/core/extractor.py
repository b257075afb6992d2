"""Tile extraction from the canvas or from a materialized level buffer."""

from __future__ import annotations

import numpy as np

from panozoom.config import BACKGROUND_COLOR, DEFAULT_EDGE_POLICY, EDGE_POLICIES
from panozoom.errors import OutOfBoundsError

from .cache import LevelBuffers
from .canvas import VirtualCanvas
from .planner import PyramidPlan
from .types import Tile, TileCoord


class TileExtractor:
    """Cuts tiles out of any pyramid level.

    The full resolution level is read from the canvas per tile; coarser
    levels are sliced from the buffer currently held by ``buffers``.

    Args:
        canvas: Full resolution pixel surface
        plan: Pyramid geometry
        buffers: Materialized coarser levels
        edge_policy: "crop" emits edge tiles at their true size,
            "pad" fills them out to the grid cell with ``background``
        background: RGBA fill colour for padding
    """

    def __init__(
        self,
        canvas: VirtualCanvas,
        plan: PyramidPlan,
        buffers: LevelBuffers,
        edge_policy: str = DEFAULT_EDGE_POLICY,
        background: tuple[int, int, int, int] = BACKGROUND_COLOR,
    ) -> None:
        if edge_policy not in EDGE_POLICIES:
            raise ValueError(f"Unknown edge policy {edge_policy!r}, expected one of {EDGE_POLICIES}")
        self._canvas = canvas
        self._plan = plan
        self._buffers = buffers
        self._edge_policy = edge_policy
        self._background = background

    @property
    def edge_policy(self) -> str:
        return self._edge_policy

    def extract(self, coord: TileCoord) -> Tile:
        """Extract one tile.

        Raises:
            OutOfBoundsError: If the coordinate is outside the level grid or
                the level buffer it needs is not resident
        """
        coord = TileCoord(*coord)
        rect = self._plan.tile_rect(coord)

        if coord.level == self._plan.max_level:
            pixels = self._canvas.read_rect(*rect)
        else:
            buffer = self._buffers.get(coord.level)
            if buffer is None:
                info = self._plan.level(coord.level)
                raise OutOfBoundsError(
                    rect, (info.width, info.height), what=f"non-resident level {coord.level}"
                )
            pixels = buffer[rect.y0:rect.y1, rect.x0:rect.x1].copy()

        if self._edge_policy == "pad":
            pixels = self._pad(coord, pixels)
        return Tile(coord=coord, pixels=pixels)

    def _pad(self, coord: TileCoord, pixels: np.ndarray) -> np.ndarray:
        width, height = self._plan.tile_footprint(coord)
        if pixels.shape[:2] == (height, width):
            return pixels
        bands = pixels.shape[2]
        padded = np.empty((height, width, bands), dtype=np.uint8)
        padded[:] = np.asarray(self._background[:bands], dtype=np.uint8)
        padded[:pixels.shape[0], :pixels.shape[1]] = pixels
        return padded
