"""Tests for the virtual canvas."""

from __future__ import annotations

import numpy as np
import pytest

from conftest import CountingDecoder, gradient
from panozoom.core.cache import SourceCache
from panozoom.core.canvas import VirtualCanvas
from panozoom.core.source import PixelSource
from panozoom.errors import DecodeError, EmptyInputError, HeightMismatchError, OutOfBoundsError


class TestBuild:
    """Tests for canvas construction and validation."""

    def test_empty_input(self):
        with pytest.raises(EmptyInputError):
            VirtualCanvas.build([])

    def test_height_mismatch_lists_offenders(self, make_source):
        sources = [
            make_source(10, 20, name="a.jpg"),
            make_source(10, 21, name="b.jpg"),
            make_source(10, 20, name="c.jpg"),
            make_source(10, 19, name="d.jpg"),
        ]
        with pytest.raises(HeightMismatchError) as exc_info:
            VirtualCanvas.build(sources)
        assert exc_info.value.expected == 20
        assert exc_info.value.offenders == [("b.jpg", 21), ("d.jpg", 19)]
        assert "b.jpg" in str(exc_info.value)

    @pytest.mark.parametrize("width,height", [(0, 10), (10, 0)], ids=["zero_width", "zero_height"])
    def test_source_without_pixels_is_rejected(self, make_source, width, height):
        empty = PixelSource("empty.png", width, height, lambda: np.zeros((height, width, 3), np.uint8))
        sources = [make_source(10, 10, seed=0), empty, make_source(10, 10, seed=1)]
        with pytest.raises(DecodeError) as exc_info:
            VirtualCanvas.build(sources)
        assert exc_info.value.identifier == "empty.png"

    def test_all_sources_without_rows(self):
        # Equal zero heights pass the height check
        sources = [PixelSource(f"flat{i}", 10, 0, lambda: np.zeros((0, 10, 3), np.uint8)) for i in range(2)]
        with pytest.raises(DecodeError):
            VirtualCanvas.build(sources)

    def test_dimensions_are_sum_of_widths(self, make_source):
        sources = [make_source(w, 12, seed=i) for i, w in enumerate([5, 17, 1, 30])]
        canvas = VirtualCanvas.build(sources)
        assert canvas.width == 53
        assert canvas.height == 12
        assert len(canvas) == 4

    def test_offsets_are_contiguous(self, make_source):
        sources = [make_source(w, 12, seed=i) for i, w in enumerate([5, 17, 1, 30])]
        canvas = VirtualCanvas.build(sources)
        assert [s.offset for s in canvas] == [0, 5, 22, 23]
        for left, right in zip(canvas.sources, canvas.sources[1:]):
            assert left.span[1] == right.span[0]


class TestReadRect:
    """Tests for reads that may cross seams."""

    def test_full_read_equals_concatenation(self, three_sources, panorama_array):
        canvas = VirtualCanvas.build(three_sources)
        np.testing.assert_array_equal(canvas.read_rect(0, 0, 300, 50), panorama_array)

    def test_rect_inside_one_source_matches_source(self, three_sources):
        canvas = VirtualCanvas.build(three_sources)
        source = three_sources[1]
        result = canvas.read_rect(110, 5, 190, 45)
        np.testing.assert_array_equal(result, source.read_rect(10, 5, 90, 45))

    def test_seam_pixels_are_exact(self, three_sources):
        canvas = VirtualCanvas.build(three_sources)
        result = canvas.read_rect(90, 0, 110, 50)
        left, right = three_sources[0], three_sources[1]
        # Global column 99 is the last column of the left image
        np.testing.assert_array_equal(result[:, 9], left.read_rect(99, 0, 100, 50)[:, 0])
        # Global column 100 is the first column of the right image
        np.testing.assert_array_equal(result[:, 10], right.read_rect(0, 0, 1, 50)[:, 0])

    def test_rect_spanning_three_sources(self, make_source):
        sources = [make_source(w, 8, seed=i) for i, w in enumerate([4, 2, 6])]
        canvas = VirtualCanvas.build(sources)
        expected = np.concatenate([gradient(w, 8, seed=i) for i, w in enumerate([4, 2, 6])], axis=1)
        np.testing.assert_array_equal(canvas.read_rect(3, 2, 8, 7), expected[2:7, 3:8])

    def test_returned_buffer_is_owned(self, three_sources):
        canvas = VirtualCanvas.build(three_sources)
        result = canvas.read_rect(0, 0, 10, 10)
        result[:] = 0
        assert three_sources[0].read_rect(0, 0, 10, 10).any()

    @pytest.mark.parametrize(
        "rect",
        [(-1, 0, 10, 10), (0, -1, 10, 10), (0, 0, 301, 10), (0, 0, 10, 51), (10, 0, 10, 5), (20, 0, 10, 5)],
        ids=["x0<0", "y0<0", "x1>width", "y1>height", "empty", "inverted"],
    )
    def test_out_of_bounds(self, three_sources, rect):
        canvas = VirtualCanvas.build(three_sources)
        with pytest.raises(OutOfBoundsError):
            canvas.read_rect(*rect)

    def test_rgba_canvas_adds_opaque_alpha(self, three_sources):
        canvas = VirtualCanvas.build(three_sources, bands=4)
        result = canvas.read_rect(95, 0, 105, 50)
        assert result.shape == (50, 10, 4)
        assert (result[:, :, 3] == 255).all()


class TestSourceIndex:
    """Tests for the ordered offset index."""

    @pytest.mark.parametrize(
        "x, expected", [(0, 0), (99, 0), (100, 1), (199, 1), (200, 2), (299, 2)]
    )
    def test_owner_of_column(self, three_sources, x, expected):
        canvas = VirtualCanvas.build(three_sources)
        assert canvas.source_index_at(x) == expected

    def test_many_sources(self):
        sources = [PixelSource.from_array(f"s{i}", np.zeros((2, 3, 3), np.uint8)) for i in range(1000)]
        canvas = VirtualCanvas.build(sources)
        assert canvas.source_index_at(0) == 0
        assert canvas.source_index_at(1500) == 500
        assert canvas.source_index_at(2999) == 999
        assert canvas.sources_in_span(1499, 1504) == [499, 500, 501]

    @pytest.mark.parametrize("x", [-1, 300])
    def test_outside_canvas(self, three_sources, x):
        canvas = VirtualCanvas.build(three_sources)
        with pytest.raises(OutOfBoundsError):
            canvas.source_index_at(x)


class TestDecodedSourceBound:
    """Tests for the bound on decoded sources."""

    def test_sweep_keeps_bounded_sources(self):
        decoders = [CountingDecoder(gradient(10, 5, seed=i)) for i in range(6)]
        sources = [PixelSource(f"s{i}", 10, 5, d) for i, d in enumerate(decoders)]
        canvas = VirtualCanvas.build(sources, source_cache=SourceCache(max_resident=2))

        for x0 in range(0, 60, 5):
            canvas.read_rect(x0, 0, x0 + 5, 5)

        assert [s.is_decoded for s in sources] == [False] * 4 + [True] * 2
        assert all(d.calls == 1 for d in decoders)

    def test_release_drops_everything(self, three_sources):
        canvas = VirtualCanvas.build(three_sources)
        canvas.read_rect(0, 0, 300, 50)
        canvas.release()
        assert not any(s.is_decoded for s in three_sources)
