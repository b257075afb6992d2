"""Test fixtures for panozoom tests."""

from __future__ import annotations

import tempfile
import threading
from pathlib import Path
from typing import Callable, Generator

import numpy as np
import pytest

from panozoom.core.source import PixelSource
from panozoom.core.types import Tile, TileCoord
from panozoom.preprocess.metadata import PyramidManifest
from panozoom.preprocess.sink import TileSink


def gradient(width: int, height: int, seed: int = 0) -> np.ndarray:
    """Deterministic RGB test pattern where neighbouring pixels differ."""
    y, x = np.mgrid[0:height, 0:width]
    img = np.empty((height, width, 3), dtype=np.uint8)
    img[:, :, 0] = (x + seed * 37) % 256
    img[:, :, 1] = (y * 5 + seed * 11) % 256
    img[:, :, 2] = (x * 7 + y * 3 + seed * 101) % 256
    return img


class CollectingSink(TileSink):
    """In-memory sink recording every tile and the manifest."""

    def __init__(self) -> None:
        self.tiles: dict[TileCoord, Tile] = {}
        self.manifest: PyramidManifest | None = None
        self._lock = threading.Lock()

    def write_tile(self, tile: Tile) -> None:
        with self._lock:
            assert tile.coord not in self.tiles, f"tile {tile.coord} written twice"
            self.tiles[tile.coord] = tile

    def finalize(self, manifest: PyramidManifest) -> None:
        self.manifest = manifest

    def level(self, level: int) -> dict[TileCoord, Tile]:
        return {c: t for c, t in self.tiles.items() if c.level == level}

    def assemble(self, level: int, width: int, height: int, tile_size: int) -> np.ndarray:
        """Stitch a level back together from non-overlapping cropped tiles."""
        first = next(iter(self.level(level).values()))
        out = np.zeros((height, width, first.pixels.shape[2]), dtype=np.uint8)
        for coord, tile in self.level(level).items():
            x0, y0 = coord.col * tile_size, coord.row * tile_size
            out[y0:y0 + tile.height, x0:x0 + tile.width] = tile.pixels
        return out


class CountingDecoder:
    """Decode capability that counts how often it is called."""

    def __init__(self, pixels: np.ndarray) -> None:
        self.pixels = pixels
        self.calls = 0

    def __call__(self) -> np.ndarray:
        self.calls += 1
        return self.pixels


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Provide a temporary directory that's cleaned up after tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def sample_rgb_array() -> np.ndarray:
    """Create a simple RGB test image as numpy array with colored quadrants."""
    img = np.full((64, 64, 3), 255, dtype=np.uint8)
    img[0:32, 0:32] = [200, 50, 50]
    img[0:32, 32:64] = [50, 200, 50]
    img[32:64, 0:32] = [50, 50, 200]
    img[32:64, 32:64] = [150, 50, 150]
    return img


@pytest.fixture
def make_source() -> Callable[..., PixelSource]:
    """Factory for array-backed sources with a gradient pattern."""

    def _make(width: int, height: int, seed: int = 0, name: str | None = None) -> PixelSource:
        return PixelSource.from_array(name or f"img{seed}", gradient(width, height, seed))

    return _make


@pytest.fixture
def three_sources(make_source) -> list[PixelSource]:
    """Three 100x50 images forming a 300x50 panorama."""
    return [make_source(100, 50, seed=i) for i in range(3)]


@pytest.fixture
def panorama_array() -> np.ndarray:
    """Expected 300x50 pixels of ``three_sources`` joined left to right."""
    return np.concatenate([gradient(100, 50, seed=i) for i in range(3)], axis=1)


@pytest.fixture
def collecting_sink() -> CollectingSink:
    return CollectingSink()
