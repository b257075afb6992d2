"""Resolve input paths into ordered pixel sources."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable

from panozoom.config import IMAGE_EXTENSIONS
from panozoom.core.source import PixelSource
from panozoom.errors import DecodeError

from .backends import VIPSBackend

logger = logging.getLogger(__name__)


def is_image_file(path: Path) -> bool:
    """Check if a file has a supported image extension."""
    return path.suffix.lower() in IMAGE_EXTENSIONS


def find_image_files(path: Path) -> list[Path]:
    """Find image files in a path (file or directory).

    Directory contents are returned sorted by file name, which is the
    left-to-right order of the panorama.
    """
    path = Path(path)
    if path.is_file():
        if is_image_file(path):
            return [path]
        return []
    elif path.is_dir():
        return sorted(
            (p for p in path.iterdir() if p.is_file() and is_image_file(p)),
            key=lambda p: p.name,
        )
    return []


def collect_image_files(paths: Iterable[Path]) -> list[Path]:
    """Expand every input path, keeping the order the paths were given in."""
    files: list[Path] = []
    for path in paths:
        found = find_image_files(Path(path))
        if not found:
            logger.warning("No images found in %s", path)
        files.extend(found)
    return files


def open_image_source(path: Path) -> PixelSource:
    """Create a lazily decoded source for one image file.

    Raises:
        DecodeError: If the image header cannot be read
    """
    path = Path(path)
    try:
        width, height = VIPSBackend.probe_size(path)
    except Exception as e:
        raise DecodeError(str(path), str(e)) from e
    logger.debug("%s: %d x %d px", path.name, width, height)
    return PixelSource(str(path), width, height, lambda: VIPSBackend.load(path))


def open_image_sources(paths: Iterable[Path]) -> list[PixelSource]:
    """Create sources for image files, in panorama order."""
    return [open_image_source(path) for path in paths]
