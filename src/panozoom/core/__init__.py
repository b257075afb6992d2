"""Tiling engine: virtual canvas, pyramid geometry, reduction and tile extraction."""

from .cache import LevelBuffers, SourceCache
from .canvas import VirtualCanvas
from .downsample import reduce, reduce_canvas
from .extractor import TileExtractor
from .planner import PyramidPlan, level_count, plan_levels
from .source import PixelSource, normalize_bands
from .types import LevelInfo, Rect, Tile, TileCoord

__all__ = [
    "LevelBuffers",
    "SourceCache",
    "VirtualCanvas",
    "reduce",
    "reduce_canvas",
    "TileExtractor",
    "PyramidPlan",
    "level_count",
    "plan_levels",
    "PixelSource",
    "normalize_bands",
    "LevelInfo",
    "Rect",
    "Tile",
    "TileCoord",
]
