"""Pyramid geometry: level sizes, tile grids and tile rectangles.

Levels use the DeepZoom numbering: the highest index is full resolution
and every lower index halves both dimensions (rounding up) until the
level fits in a single pixel.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator

from panozoom.errors import OutOfBoundsError

from .types import LevelInfo, Rect, TileCoord


def level_count(width: int, height: int) -> int:
    """Number of levels from full resolution down to 1x1.

    Equals ceil(log2(max(width, height))) + 1, computed exactly.
    """
    if width < 1 or height < 1:
        raise ValueError(f"Image dimensions must be positive, got {width}x{height}")
    return (max(width, height) - 1).bit_length() + 1


def plan_levels(width: int, height: int, tile_size: int) -> list[LevelInfo]:
    """Compute every pyramid level, full resolution first.

    Args:
        width: Canvas width in pixels
        height: Canvas height in pixels
        tile_size: Tile size in pixels

    Returns:
        List of LevelInfo from the highest level index down to level 0
    """
    if tile_size < 1:
        raise ValueError(f"tile_size must be >= 1, got {tile_size}")

    count = level_count(width, height)
    levels = []
    w, h = width, height
    for i in range(count):
        levels.append(LevelInfo(
            level=count - 1 - i,
            width=w,
            height=h,
            cols=(w + tile_size - 1) // tile_size,
            rows=(h + tile_size - 1) // tile_size,
            downsample=2 ** i,
        ))
        w = (w + 1) // 2
        h = (h + 1) // 2
    return levels


@dataclass
class PyramidPlan:
    """Level geometry plus tile layout for one canvas.

    Attributes:
        width: Full resolution width
        height: Full resolution height
        tile_size: Tile size in pixels, without overlap
        overlap: Extra pixels shared with each neighbouring tile
        levels: Levels ordered full resolution first
    """

    width: int
    height: int
    tile_size: int
    overlap: int = 0
    levels: list[LevelInfo] = field(default_factory=list)

    @classmethod
    def create(cls, width: int, height: int, tile_size: int, overlap: int = 0) -> PyramidPlan:
        if not 0 <= overlap < tile_size:
            raise ValueError(f"overlap must be in [0, tile_size), got {overlap}")
        return cls(
            width=width,
            height=height,
            tile_size=tile_size,
            overlap=overlap,
            levels=plan_levels(width, height, tile_size),
        )

    @property
    def max_level(self) -> int:
        """Index of the full resolution level."""
        return len(self.levels) - 1

    @property
    def total_tiles(self) -> int:
        return sum(info.tile_count for info in self.levels)

    def level(self, index: int) -> LevelInfo:
        """Look up a level by its pyramid index.

        Raises:
            KeyError: If there is no such level
        """
        if not 0 <= index <= self.max_level:
            raise KeyError(f"Level {index} is outside [0, {self.max_level}]")
        return self.levels[self.max_level - index]

    def _check(self, coord: TileCoord) -> LevelInfo:
        info = self.level(coord.level)
        if not (0 <= coord.col < info.cols and 0 <= coord.row < info.rows):
            raise OutOfBoundsError(
                Rect(coord.col, coord.row, coord.col + 1, coord.row + 1),
                (info.cols, info.rows),
                what=f"tile grid of level {coord.level}",
            )
        return info

    def core_rect(self, coord: TileCoord) -> Rect:
        """Tile rectangle in level pixels, without overlap."""
        info = self._check(coord)
        x0 = coord.col * self.tile_size
        y0 = coord.row * self.tile_size
        return Rect(
            x0, y0,
            min(x0 + self.tile_size, info.width),
            min(y0 + self.tile_size, info.height),
        )

    def tile_rect(self, coord: TileCoord) -> Rect:
        """Tile rectangle grown by the overlap on each side, clamped to the level."""
        info = self._check(coord)
        core = self.core_rect(coord)
        return Rect(
            max(core.x0 - self.overlap, 0),
            max(core.y0 - self.overlap, 0),
            min(core.x1 + self.overlap, info.width),
            min(core.y1 + self.overlap, info.height),
        )

    def tile_footprint(self, coord: TileCoord) -> tuple[int, int]:
        """(width, height) of a tile padded to the full grid cell.

        Interior sides carry the overlap; outer sides of the level do not.
        """
        info = self._check(coord)
        width = self.tile_size
        height = self.tile_size
        if coord.col > 0:
            width += self.overlap
        if coord.col < info.cols - 1:
            width += self.overlap
        if coord.row > 0:
            height += self.overlap
        if coord.row < info.rows - 1:
            height += self.overlap
        return width, height

    def iter_coords(self, index: int) -> Iterator[TileCoord]:
        """Every tile coordinate of a level, column by column."""
        info = self.level(index)
        for col in range(info.cols):
            for row in range(info.rows):
                yield TileCoord(index, col, row)
