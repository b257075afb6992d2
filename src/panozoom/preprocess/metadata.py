"""Pyramid manifest, DeepZoom descriptor and output validation."""

from __future__ import annotations

import json
import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from typing import Iterable
from enum import Enum
from pathlib import Path

from panozoom.config import DZI_NAMESPACE
from panozoom.core.types import LevelInfo

logger = logging.getLogger(__name__)

MANIFEST_VERSION = "1.0"


class OutputStatus(Enum):
    """Status of an existing pyramid output."""

    NOT_EXISTS = "not_exists"  # Neither descriptor nor tiles
    COMPLETE = "complete"  # Valid and complete
    INCOMPLETE = "incomplete"  # Missing required files
    CORRUPTED = "corrupted"  # Invalid metadata or structure
    STALE = "stale"  # Complete, but built from other inputs or settings


@dataclass
class SourceEntry:
    """Placement of one input image on the canvas."""

    identifier: str
    width: int
    height: int
    offset: int


def run_signature(
    sources: Iterable[tuple[str, int, int]],
    tile_size: int,
    overlap: int,
    tile_format: str,
    edge_policy: str,
    pixel_format: str,
) -> dict:
    """Inputs and settings that determine a pyramid's content.

    Sources are compared by identifier and size only, so an image edited
    in place without changing its dimensions is not detected.

    Args:
        sources: (identifier, width, height) of each image, in panorama order
    """
    return {
        "sources": [tuple(s) for s in sources],
        "tile_size": tile_size,
        "overlap": overlap,
        "tile_format": tile_format,
        "edge_policy": edge_policy,
        "pixel_format": pixel_format,
    }


@dataclass
class PyramidManifest:
    """Everything a sink needs to describe a finished pyramid."""

    width: int
    height: int
    tile_size: int
    overlap: int
    tile_format: str
    edge_policy: str
    pixel_format: str
    levels: list[LevelInfo]
    sources: list[SourceEntry] = field(default_factory=list)
    created_at: str = ""
    version: str = MANIFEST_VERSION

    @property
    def level_count(self) -> int:
        return len(self.levels)

    @property
    def tile_count(self) -> int:
        return sum(info.tile_count for info in self.levels)

    def signature(self) -> dict:
        return run_signature(
            ((s.identifier, s.width, s.height) for s in self.sources),
            self.tile_size,
            self.overlap,
            self.tile_format,
            self.edge_policy,
            self.pixel_format,
        )

    def to_dict(self) -> dict:
        return {
            "version": self.version,
            "width": self.width,
            "height": self.height,
            "tile_size": self.tile_size,
            "overlap": self.overlap,
            "tile_format": self.tile_format,
            "edge_policy": self.edge_policy,
            "pixel_format": self.pixel_format,
            "levels": [
                {
                    "level": l.level,
                    "width": l.width,
                    "height": l.height,
                    "cols": l.cols,
                    "rows": l.rows,
                    "downsample": l.downsample,
                }
                for l in self.levels
            ],
            "sources": [
                {
                    "identifier": s.identifier,
                    "width": s.width,
                    "height": s.height,
                    "offset": s.offset,
                }
                for s in self.sources
            ],
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> PyramidManifest:
        return cls(
            version=data["version"],
            width=data["width"],
            height=data["height"],
            tile_size=data["tile_size"],
            overlap=data["overlap"],
            tile_format=data["tile_format"],
            edge_policy=data["edge_policy"],
            pixel_format=data["pixel_format"],
            levels=[LevelInfo(**l) for l in data["levels"]],
            sources=[SourceEntry(**s) for s in data.get("sources", [])],
            created_at=data.get("created_at", ""),
        )

    def to_dzi_xml(self) -> str:
        """Render the Microsoft DeepZoom (2008) descriptor."""
        root = ET.Element("Image", {
            "xmlns": DZI_NAMESPACE,
            "Format": self.tile_format,
            "Overlap": str(self.overlap),
            "TileSize": str(self.tile_size),
        })
        ET.SubElement(root, "Size", {"Width": str(self.width), "Height": str(self.height)})
        body = ET.tostring(root, encoding="unicode")
        return f'<?xml version="1.0" encoding="UTF-8"?>{body}'


def check_output_status(
    output_dir: Path, name: str, expected: dict | None = None
) -> OutputStatus:
    """Check the status of an existing pyramid output.

    The sink writes tiles first, then ``<name>.dzi``, then
    ``<name>.json``; a run that died part way leaves an incomplete output.

    Args:
        output_dir: Directory holding the pyramid
        name: Pyramid name (``<name>.dzi`` + ``<name>_files/``)
        expected: Optional :func:`run_signature` of the run about to start;
            a complete output with a different signature is STALE

    Returns:
        OutputStatus indicating the state
    """
    tiles_dir = output_dir / f"{name}_files"
    dzi_path = output_dir / f"{name}.dzi"
    metadata_path = output_dir / f"{name}.json"

    if not tiles_dir.exists() and not dzi_path.exists() and not metadata_path.exists():
        return OutputStatus.NOT_EXISTS

    if not metadata_path.exists() or not dzi_path.exists():
        return OutputStatus.INCOMPLETE

    try:
        with open(metadata_path) as f:
            manifest = PyramidManifest.from_dict(json.load(f))
    except (json.JSONDecodeError, KeyError, TypeError) as e:
        logger.debug("Unreadable manifest %s: %s", metadata_path, e)
        return OutputStatus.CORRUPTED

    try:
        root = ET.parse(dzi_path).getroot()
        size = root.find(f"{{{DZI_NAMESPACE}}}Size")
        if size is None or (int(size.get("Width")), int(size.get("Height"))) != (
            manifest.width, manifest.height
        ):
            return OutputStatus.CORRUPTED
    except (ET.ParseError, TypeError, ValueError):
        return OutputStatus.CORRUPTED

    for info in manifest.levels:
        level_dir = tiles_dir / str(info.level)
        if not level_dir.exists():
            return OutputStatus.INCOMPLETE
        tiles = list(level_dir.glob(f"*.{manifest.tile_format}"))
        if len(tiles) != info.tile_count:
            return OutputStatus.INCOMPLETE

    if expected is not None and manifest.signature() != expected:
        return OutputStatus.STALE

    return OutputStatus.COMPLETE
