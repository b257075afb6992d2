"""Shared type definitions for the panozoom core module."""

from __future__ import annotations

from dataclasses import dataclass
from typing import NamedTuple

import numpy as np


class TileCoord(NamedTuple):
    """Coordinate of a tile in the pyramid.

    Attributes:
        level: Pyramid level (0 = lowest resolution)
        col: Column index (0-based)
        row: Row index (0-based)
    """

    level: int
    col: int
    row: int


class Rect(NamedTuple):
    """Half-open pixel rectangle [x0, x1) x [y0, y1)."""

    x0: int
    y0: int
    x1: int
    y1: int

    @property
    def width(self) -> int:
        return self.x1 - self.x0

    @property
    def height(self) -> int:
        return self.y1 - self.y0


@dataclass
class LevelInfo:
    """Information about a pyramid level.

    Attributes:
        level: Level index (0 = lowest resolution, highest = full resolution)
        width: Level width in pixels
        height: Level height in pixels
        cols: Number of tile columns at this level
        rows: Number of tile rows at this level
        downsample: Downsample factor relative to full resolution (1 = full res)
    """

    level: int
    width: int
    height: int
    cols: int
    rows: int
    downsample: int

    @property
    def tile_count(self) -> int:
        return self.cols * self.rows


@dataclass
class Tile:
    """A tile ready to be handed to a sink.

    Attributes:
        coord: Pyramid coordinate of the tile
        pixels: (H, W, C) uint8 array, owned by the tile
    """

    coord: TileCoord
    pixels: np.ndarray

    @property
    def width(self) -> int:
        return self.pixels.shape[1]

    @property
    def height(self) -> int:
        return self.pixels.shape[0]
