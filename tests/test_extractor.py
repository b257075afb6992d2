"""Tests for tile extraction."""

from __future__ import annotations

import numpy as np
import pytest

from panozoom.core.cache import LevelBuffers
from panozoom.core.canvas import VirtualCanvas
from panozoom.core.downsample import reduce
from panozoom.core.extractor import TileExtractor
from panozoom.core.planner import PyramidPlan
from panozoom.core.types import TileCoord
from panozoom.errors import OutOfBoundsError


@pytest.fixture
def canvas(three_sources) -> VirtualCanvas:
    return VirtualCanvas.build(three_sources)


class TestFinestLevel:
    """Tiles of the full resolution level come straight from the canvas."""

    def test_tiles_match_canvas(self, canvas, panorama_array):
        plan = PyramidPlan.create(canvas.width, canvas.height, 256)
        extractor = TileExtractor(canvas, plan, LevelBuffers())

        first = extractor.extract(TileCoord(9, 0, 0))
        edge = extractor.extract(TileCoord(9, 1, 0))

        assert (first.width, first.height) == (256, 50)
        assert (edge.width, edge.height) == (44, 50)
        np.testing.assert_array_equal(first.pixels, panorama_array[:, :256])
        np.testing.assert_array_equal(edge.pixels, panorama_array[:, 256:])

    def test_accepts_plain_tuples(self, canvas):
        plan = PyramidPlan.create(canvas.width, canvas.height, 64)
        tile = TileExtractor(canvas, plan, LevelBuffers()).extract((9, 1, 0))
        assert tile.coord == TileCoord(9, 1, 0)

    def test_overlap_reads_neighbours(self, canvas, panorama_array):
        plan = PyramidPlan.create(canvas.width, canvas.height, 64, overlap=1)
        tile = TileExtractor(canvas, plan, LevelBuffers()).extract(TileCoord(9, 1, 0))
        assert (tile.width, tile.height) == (66, 50)
        np.testing.assert_array_equal(tile.pixels, panorama_array[:, 63:129])

    def test_outside_grid(self, canvas):
        plan = PyramidPlan.create(canvas.width, canvas.height, 256)
        with pytest.raises(OutOfBoundsError):
            TileExtractor(canvas, plan, LevelBuffers()).extract(TileCoord(9, 2, 0))


class TestCoarserLevels:
    """Tiles of coarser levels come from the resident level buffer."""

    def test_reads_resident_buffer(self, canvas, panorama_array):
        plan = PyramidPlan.create(canvas.width, canvas.height, 64)
        buffers = LevelBuffers()
        half = reduce(panorama_array)
        buffers.stage(plan.level(8), half)
        buffers.rotate()

        extractor = TileExtractor(canvas, plan, buffers)
        tile = extractor.extract(TileCoord(8, 2, 0))
        assert (tile.width, tile.height) == (150 - 128, 25)
        np.testing.assert_array_equal(tile.pixels, half[:, 128:])
        assert tile.pixels.flags.writeable

    def test_non_resident_level(self, canvas):
        plan = PyramidPlan.create(canvas.width, canvas.height, 64)
        extractor = TileExtractor(canvas, plan, LevelBuffers())
        with pytest.raises(OutOfBoundsError, match="non-resident level 7"):
            extractor.extract(TileCoord(7, 0, 0))


class TestEdgePolicy:
    """Tests for crop versus pad."""

    def test_pad_fills_with_background(self, canvas, panorama_array):
        plan = PyramidPlan.create(canvas.width, canvas.height, 256)
        extractor = TileExtractor(canvas, plan, LevelBuffers(), edge_policy="pad")

        tile = extractor.extract(TileCoord(9, 1, 0))
        assert (tile.width, tile.height) == (256, 256)
        np.testing.assert_array_equal(tile.pixels[:50, :44], panorama_array[:, 256:])
        assert (tile.pixels[50:, :] == 255).all()
        assert (tile.pixels[:, 44:] == 255).all()

    def test_pad_uses_given_background(self, three_sources):
        canvas = VirtualCanvas.build(three_sources, bands=4)
        plan = PyramidPlan.create(canvas.width, canvas.height, 256)
        extractor = TileExtractor(
            canvas, plan, LevelBuffers(), edge_policy="pad", background=(0, 0, 0, 0)
        )
        tile = extractor.extract(TileCoord(9, 0, 0))
        assert tile.pixels.shape == (256, 256, 4)
        assert (tile.pixels[50:] == 0).all()
        assert (tile.pixels[:50, :, 3] == 255).all()

    def test_full_tiles_are_unchanged_by_padding(self):
        from panozoom.core.source import PixelSource

        source = PixelSource.from_array("sq", np.full((64, 64, 3), 3, np.uint8))
        canvas = VirtualCanvas.build([source])
        plan = PyramidPlan.create(64, 64, 32)
        tile = TileExtractor(canvas, plan, LevelBuffers(), edge_policy="pad").extract(
            TileCoord(plan.max_level, 1, 1)
        )
        assert tile.pixels.shape == (32, 32, 3)

    def test_unknown_policy(self, canvas):
        plan = PyramidPlan.create(canvas.width, canvas.height, 256)
        with pytest.raises(ValueError):
            TileExtractor(canvas, plan, LevelBuffers(), edge_policy="stretch")
