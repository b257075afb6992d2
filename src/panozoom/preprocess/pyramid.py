"""Pyramid generation for multi-image panoramas."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import FIRST_EXCEPTION, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Callable, Sequence

from panozoom.config import (
    BACKGROUND_COLOR,
    DEFAULT_EDGE_POLICY,
    DEFAULT_OUTPUT_NAME,
    DEFAULT_OVERLAP,
    DEFAULT_PIXEL_FORMAT,
    DEFAULT_TILE_SIZE,
    DEFAULT_WORKERS,
    EDGE_POLICIES,
    JPEG_QUALITY,
    MAX_RESIDENT_SOURCES,
    PIXEL_FORMATS,
    STRIP_WIDTH,
    TILE_FORMAT,
    TILE_FORMATS,
)
from panozoom.core.cache import LevelBuffers, SourceCache
from panozoom.core.canvas import VirtualCanvas
from panozoom.core.downsample import reduce, reduce_canvas
from panozoom.core.extractor import TileExtractor
from panozoom.core.planner import PyramidPlan
from panozoom.core.source import PixelSource
from panozoom.core.types import LevelInfo, TileCoord
from panozoom.errors import PyramidCancelled, SinkWriteError

from .metadata import PyramidManifest, SourceEntry, run_signature
from .sink import DeepZoomSink, TileSink
from .sources import open_image_sources

logger = logging.getLogger(__name__)

#: progress_callback(stage, current, total); raising InterruptedError cancels the run
ProgressCallback = Callable[[str, int, int], None]


class RunState(Enum):
    """Lifecycle of a single pyramid build."""

    INIT = "init"
    CANVAS_BUILT = "canvas_built"
    LEVEL_COMPUTING = "level_computing"
    DONE = "done"
    CANCELLED = "cancelled"
    FAILED = "failed"


@dataclass
class TilingConfig:
    """Per-run tiling parameters, defaulting to :mod:`panozoom.config`."""

    tile_size: int = DEFAULT_TILE_SIZE
    overlap: int = DEFAULT_OVERLAP
    edge_policy: str = DEFAULT_EDGE_POLICY
    pixel_format: str = DEFAULT_PIXEL_FORMAT
    tile_format: str = TILE_FORMAT
    background: tuple[int, int, int, int] = BACKGROUND_COLOR
    workers: int = DEFAULT_WORKERS
    max_resident_sources: int = MAX_RESIDENT_SOURCES
    strip_width: int = STRIP_WIDTH

    def __post_init__(self) -> None:
        if self.tile_size < 1:
            raise ValueError(f"tile_size must be >= 1, got {self.tile_size}")
        if not 0 <= self.overlap < self.tile_size:
            raise ValueError(f"overlap must be in [0, tile_size), got {self.overlap}")
        if self.edge_policy not in EDGE_POLICIES:
            raise ValueError(f"Unknown edge policy {self.edge_policy!r}")
        if self.pixel_format not in PIXEL_FORMATS:
            raise ValueError(f"Unknown pixel format {self.pixel_format!r}")
        if self.tile_format not in TILE_FORMATS:
            raise ValueError(f"Unknown tile format {self.tile_format!r}")
        if self.workers < 1:
            raise ValueError(f"workers must be >= 1, got {self.workers}")
        if self.max_resident_sources < 1:
            raise ValueError(
                f"max_resident_sources must be >= 1, got {self.max_resident_sources}"
            )
        if self.strip_width < 2 or self.strip_width % 2:
            raise ValueError(f"strip_width must be even and >= 2, got {self.strip_width}")

    @property
    def bands(self) -> int:
        return PIXEL_FORMATS[self.pixel_format]


class PanoramaPyramidBuilder:
    """Builds a tile pyramid from ordered same-height images.

    Levels are processed from full resolution down to 1x1. The full
    resolution level is served per tile from the virtual canvas; each
    coarser level is reduced from the one before it into a buffer, its
    tiles are emitted, and the previous buffer is dropped. Tiles of one
    level are extracted on a thread pool, which is drained before the
    next level starts.

    Args:
        config: Tiling parameters (defaults from panozoom.config)
    """

    def __init__(self, config: TilingConfig | None = None) -> None:
        self.config = config if config is not None else TilingConfig()
        self._state = RunState.INIT
        self._current_level: int | None = None
        self._state_lock = threading.Lock()

    @property
    def state(self) -> RunState:
        with self._state_lock:
            return self._state

    @property
    def current_level(self) -> int | None:
        """Level being computed, while in LEVEL_COMPUTING."""
        with self._state_lock:
            return self._current_level

    def _set_state(self, state: RunState, level: int | None = None) -> None:
        with self._state_lock:
            self._state = state
            self._current_level = level

    def build(
        self,
        sources: Sequence[PixelSource],
        sink: TileSink,
        progress_callback: ProgressCallback | None = None,
        cancel_event: threading.Event | None = None,
    ) -> PyramidManifest:
        """Tile the panorama formed by ``sources`` into ``sink``.

        Args:
            sources: Images in left-to-right order
            sink: Receives every tile, then the manifest
            progress_callback: Optional callback(stage, current, total)
            cancel_event: Optional event; once set, the run stops at the
                next level boundary and no further tile is written

        Returns:
            Manifest describing the written pyramid

        Raises:
            EmptyInputError, HeightMismatchError: Invalid input
            DecodeError: A source image could not be decoded
            SinkWriteError: The sink failed
            PyramidCancelled: The run was cancelled
        """
        self._set_state(RunState.INIT)
        stop = threading.Event()
        canvas: VirtualCanvas | None = None
        buffers = LevelBuffers()

        def cancelled() -> bool:
            return stop.is_set() or (cancel_event is not None and cancel_event.is_set())

        try:
            canvas = VirtualCanvas.build(
                sources,
                bands=self.config.bands,
                source_cache=SourceCache(self.config.max_resident_sources),
            )
            self._set_state(RunState.CANVAS_BUILT)

            plan = PyramidPlan.create(
                canvas.width, canvas.height, self.config.tile_size, self.config.overlap
            )
            logger.info(
                "Planned %d levels, %d tiles (tile size %d, overlap %d)",
                len(plan.levels), plan.total_tiles, plan.tile_size, plan.overlap,
            )
            extractor = TileExtractor(
                canvas, plan, buffers,
                edge_policy=self.config.edge_policy,
                background=self.config.background,
            )

            done = 0
            with ThreadPoolExecutor(
                max_workers=self.config.workers, thread_name_prefix="panozoom-tile"
            ) as executor:
                for info in plan.levels:
                    if cancelled():
                        raise PyramidCancelled(f"Cancelled before level {info.level}")
                    self._set_state(RunState.LEVEL_COMPUTING, info.level)

                    if info.level < plan.max_level:
                        self._materialize_level(info, plan, canvas, buffers)
                        self._report(progress_callback, "downsample", plan.max_level - info.level, plan.max_level)

                    done = self._emit_level(
                        executor, extractor, plan, info, sink, stop, cancelled,
                        progress_callback, done,
                    )
                    logger.info(
                        "Level %d done: %d x %d px, %d tiles",
                        info.level, info.width, info.height, info.tile_count,
                    )

            manifest = self._make_manifest(plan, canvas)
            try:
                sink.finalize(manifest)
            except Exception as e:
                raise SinkWriteError(None, str(e)) from e

            self._set_state(RunState.DONE)
            return manifest

        except InterruptedError as e:
            self._set_state(RunState.CANCELLED, self.current_level)
            raise PyramidCancelled("Cancelled by progress callback") from e
        except PyramidCancelled:
            self._set_state(RunState.CANCELLED, self.current_level)
            raise
        except Exception:
            self._set_state(RunState.FAILED, self.current_level)
            raise
        finally:
            buffers.clear()
            if canvas is not None:
                canvas.release()

    def _materialize_level(
        self,
        info: LevelInfo,
        plan: PyramidPlan,
        canvas: VirtualCanvas,
        buffers: LevelBuffers,
    ) -> None:
        """Produce ``info``'s buffer from the level above and rotate it in."""
        if info.level == plan.max_level - 1:
            pixels = reduce_canvas(canvas, self.config.strip_width)
            # Full resolution is no longer read past this point
            canvas.release()
        else:
            current = buffers.current
            if current is None or current[0].level != info.level + 1:
                raise RuntimeError(f"Level {info.level + 1} is not resident")
            pixels = reduce(current[1])

        buffers.stage(info, pixels)
        buffers.rotate()
        logger.debug("Level %d materialized: %d bytes resident", info.level, buffers.nbytes)

    def _emit_level(
        self,
        executor: ThreadPoolExecutor,
        extractor: TileExtractor,
        plan: PyramidPlan,
        info: LevelInfo,
        sink: TileSink,
        stop: threading.Event,
        cancelled: Callable[[], bool],
        progress_callback: ProgressCallback | None,
        done: int,
    ) -> int:
        """Extract and write every tile of one level; returns the running tile count."""

        def produce(coord: TileCoord) -> None:
            tile = extractor.extract(coord)
            if cancelled():
                return
            try:
                sink.write_tile(tile)
            except Exception as e:
                raise SinkWriteError(coord, str(e)) from e

        futures: list[Future] = [
            executor.submit(produce, coord) for coord in plan.iter_coords(info.level)
        ]
        pending = set(futures)
        try:
            while pending:
                finished, pending = wait(pending, return_when=FIRST_EXCEPTION)
                for future in finished:
                    future.result()
                    done += 1
                    self._report(progress_callback, "tiles", done, plan.total_tiles)
        except BaseException:
            stop.set()
            for future in pending:
                future.cancel()
            # Barrier: let in-flight tiles settle before unwinding
            wait(pending)
            raise

        if cancelled():
            raise PyramidCancelled(f"Cancelled during level {info.level}")
        return done

    @staticmethod
    def _report(
        progress_callback: ProgressCallback | None, stage: str, current: int, total: int
    ) -> None:
        if progress_callback:
            progress_callback(stage, current, total)

    def _make_manifest(self, plan: PyramidPlan, canvas: VirtualCanvas) -> PyramidManifest:
        return PyramidManifest(
            width=plan.width,
            height=plan.height,
            tile_size=plan.tile_size,
            overlap=plan.overlap,
            tile_format=self.config.tile_format,
            edge_policy=self.config.edge_policy,
            pixel_format=self.config.pixel_format,
            levels=sorted(plan.levels, key=lambda l: l.level),
            sources=[
                SourceEntry(s.identifier, s.width, s.height, s.offset) for s in canvas
            ],
            created_at=datetime.now(timezone.utc).isoformat(),
        )


def build_pyramid(
    image_paths: Sequence[Path],
    output_dir: Path,
    name: str = DEFAULT_OUTPUT_NAME,
    config: TilingConfig | None = None,
    quality: int = JPEG_QUALITY,
    progress_callback: ProgressCallback | None = None,
    force: bool = False,
) -> Path | None:
    """Build a DeepZoom pyramid from image files.

    Args:
        image_paths: Image files in left-to-right order
        output_dir: Directory receiving ``<name>.dzi`` and ``<name>_files/``
        name: Pyramid base name
        config: Tiling parameters
        quality: JPEG quality for written tiles
        progress_callback: Progress callback function
        force: Force rebuild even if a complete pyramid exists
            built from the same inputs and settings

    Returns:
        Path to the written .dzi file, or None if skipped

    Raises:
        DecodeError, EmptyInputError, HeightMismatchError: Bad inputs; any
            existing output is left untouched
    """
    config = config if config is not None else TilingConfig()
    # Probe headers and check the layout before touching an existing output
    sources = open_image_sources(image_paths)
    VirtualCanvas.build(sources, bands=config.bands)
    expected = run_signature(
        ((s.identifier, s.width, s.height) for s in sources),
        config.tile_size,
        config.overlap,
        config.tile_format,
        config.edge_policy,
        config.pixel_format,
    )

    sink = DeepZoomSink(output_dir, name=name, tile_format=config.tile_format, quality=quality)
    if sink.prepare(force=force, expected=expected):
        return None

    manifest = PanoramaPyramidBuilder(config).build(sources, sink, progress_callback)
    logger.info(
        "Generated %d pyramid levels for %d image(s)", manifest.level_count, len(sources)
    )
    return sink.dzi_path
