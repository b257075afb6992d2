"""Tile sinks: where extracted tiles and the pyramid descriptor go."""

from __future__ import annotations

import json
import logging
import shutil
from abc import ABC, abstractmethod
from pathlib import Path

from panozoom.config import DEFAULT_OUTPUT_NAME, JPEG_QUALITY, TILE_FORMAT, TILE_FORMATS
from panozoom.core.types import Tile

from .backends import VIPSBackend
from .metadata import OutputStatus, PyramidManifest, check_output_status

logger = logging.getLogger(__name__)


class TileSink(ABC):
    """Receives tiles as they are produced.

    ``write_tile`` may be called concurrently from worker threads.
    ``finalize`` is called once, after the last tile.
    """

    @abstractmethod
    def write_tile(self, tile: Tile) -> None:
        """Persist one tile."""

    @abstractmethod
    def finalize(self, manifest: PyramidManifest) -> None:
        """Persist the pyramid descriptor."""


class DeepZoomSink(TileSink):
    """Writes a DeepZoom directory layout.

    Output format:
        - <name>_files/<level>/<col>_<row>.<format>
        - <name>.dzi (DeepZoom descriptor)
        - <name>.json (full manifest, including the source layout)

    Args:
        output_dir: Directory to write into (created if missing)
        name: Base name of the pyramid
        tile_format: "jpg" or "png"
        quality: JPEG quality
    """

    def __init__(
        self,
        output_dir: Path,
        name: str = DEFAULT_OUTPUT_NAME,
        tile_format: str = TILE_FORMAT,
        quality: int = JPEG_QUALITY,
    ) -> None:
        if tile_format not in TILE_FORMATS:
            raise ValueError(f"Unsupported tile format {tile_format!r}, expected one of {TILE_FORMATS}")
        self.output_dir = Path(output_dir)
        self.name = name
        self.tile_format = tile_format
        self.quality = quality

    @property
    def tiles_dir(self) -> Path:
        return self.output_dir / f"{self.name}_files"

    @property
    def dzi_path(self) -> Path:
        return self.output_dir / f"{self.name}.dzi"

    @property
    def metadata_path(self) -> Path:
        return self.output_dir / f"{self.name}.json"

    def tile_path(self, level: int, col: int, row: int) -> Path:
        return self.tiles_dir / str(level) / f"{col}_{row}.{self.tile_format}"

    def prepare(self, force: bool = False, expected: dict | None = None) -> bool:
        """Check for an existing output and clean it up if needed.

        Args:
            force: If True, rebuild even if complete
            expected: :func:`run_signature` of the coming run; a complete
                output built from other inputs or settings is rebuilt

        Returns:
            True if the build should be skipped (already complete and not forced)
        """
        status = check_output_status(self.output_dir, self.name, expected)

        if status == OutputStatus.COMPLETE and not force:
            logger.info("Skipping %s: already tiled (use --force to rebuild)", self.dzi_path)
            return True

        if status != OutputStatus.NOT_EXISTS:
            if status == OutputStatus.INCOMPLETE:
                logger.info("Found incomplete output for %s, cleaning up...", self.name)
            elif status == OutputStatus.CORRUPTED:
                logger.warning("Found corrupted output for %s, cleaning up...", self.name)
            elif status == OutputStatus.STALE:
                logger.info("Inputs or settings changed for %s, rebuilding...", self.name)
            elif force:
                logger.info("Force rebuild for %s, removing existing...", self.name)
            self._remove_existing()

        self.output_dir.mkdir(parents=True, exist_ok=True)
        return False

    def _remove_existing(self) -> None:
        if self.tiles_dir.exists():
            shutil.rmtree(self.tiles_dir)
        for path in (self.dzi_path, self.metadata_path):
            if path.exists():
                path.unlink()

    def write_tile(self, tile: Tile) -> None:
        path = self.tile_path(*tile.coord)
        path.parent.mkdir(parents=True, exist_ok=True)
        VIPSBackend.save(tile.pixels, path, self.tile_format, self.quality)

    def finalize(self, manifest: PyramidManifest) -> None:
        self.dzi_path.write_text(manifest.to_dzi_xml(), encoding="utf-8")
        with open(self.metadata_path, "w") as f:
            json.dump(manifest.to_dict(), f, indent=2)
        logger.info("Wrote %s", self.dzi_path)
