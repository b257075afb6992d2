"""Centralized configuration for panozoom.

All tunable parameters are defined here with sensible defaults.
Values can be overridden via environment variables.

Environment Variables:
    PANOZOOM_TILE_SIZE: Tile edge length in pixels (default: 256)
    PANOZOOM_OVERLAP: Pixels of overlap added on each interior tile side (default: 0)
    PANOZOOM_WORKERS: Tile extraction threads per level (default: 4)
    PANOZOOM_MAX_RESIDENT_SOURCES: Decoded source images kept in memory (default: 4)
    PANOZOOM_STRIP_WIDTH: Column strip width used to reduce the full level (default: 1024)
    PANOZOOM_TILE_FORMAT: Output tile format, "jpg" or "png" (default: jpg)
    PANOZOOM_JPEG_QUALITY: JPEG quality for written tiles (default: 90)
"""

from __future__ import annotations

import logging
import os

logger = logging.getLogger(__name__)


def _get_env_int(name: str, default: int) -> int:
    """Get an integer from environment variable with fallback."""
    value = os.environ.get(name)
    if value is not None:
        try:
            return int(value)
        except ValueError:
            logger.warning(
                "Invalid integer for %s: %r, using default %d", name, value, default
            )
    return default


def _get_env_str(name: str, default: str) -> str:
    """Get a string from environment variable with fallback."""
    return os.environ.get(name, default)


# =============================================================================
# Tiling Defaults
# =============================================================================

#: Default tile size in pixels
DEFAULT_TILE_SIZE: int = _get_env_int("PANOZOOM_TILE_SIZE", 256)

#: Overlap in pixels between adjacent tiles (DeepZoom "Overlap" attribute)
DEFAULT_OVERLAP: int = _get_env_int("PANOZOOM_OVERLAP", 0)

#: Edge tile policies: "crop" keeps the true size, "pad" fills to the tile footprint
EDGE_POLICIES: tuple[str, ...] = ("crop", "pad")

#: Default edge tile policy
DEFAULT_EDGE_POLICY: str = "crop"

#: Supported output pixel formats and their band counts
PIXEL_FORMATS: dict[str, int] = {"RGB": 3, "RGBA": 4}

#: Default output pixel format
DEFAULT_PIXEL_FORMAT: str = "RGB"

#: Background color used when padding edge tiles (white, opaque)
BACKGROUND_COLOR: tuple[int, int, int, int] = (255, 255, 255, 255)


# =============================================================================
# Memory and Concurrency
# =============================================================================

#: Tile extraction threads per level
DEFAULT_WORKERS: int = _get_env_int("PANOZOOM_WORKERS", 4)

#: Decoded source images kept in memory while serving the full-resolution level
MAX_RESIDENT_SOURCES: int = _get_env_int("PANOZOOM_MAX_RESIDENT_SOURCES", 4)

#: Width of the canvas strips reduced into the first coarser level (kept even)
STRIP_WIDTH: int = _get_env_int("PANOZOOM_STRIP_WIDTH", 1024)


# =============================================================================
# Output Configuration
# =============================================================================

#: Tile file format written by the DeepZoom sink
TILE_FORMAT: str = _get_env_str("PANOZOOM_TILE_FORMAT", "jpg")

#: Supported tile file formats
TILE_FORMATS: tuple[str, ...] = ("jpg", "png")

#: JPEG quality for written tiles
JPEG_QUALITY: int = _get_env_int("PANOZOOM_JPEG_QUALITY", 90)

#: Default output pyramid name (<name>.dzi + <name>_files/)
DEFAULT_OUTPUT_NAME: str = "tiles"

#: DeepZoom descriptor XML namespace
DZI_NAMESPACE: str = "http://schemas.microsoft.com/deepzoom/2008"

#: Supported input image file extensions
IMAGE_EXTENSIONS: frozenset[str] = frozenset({
    ".jpg", ".jpeg", ".png", ".tif", ".tiff", ".webp"
})


# =============================================================================
# Validation
# =============================================================================


def _validate_config() -> None:
    """Validate configuration values and log warnings for out-of-range settings."""
    global DEFAULT_TILE_SIZE, DEFAULT_OVERLAP, DEFAULT_WORKERS
    global MAX_RESIDENT_SOURCES, STRIP_WIDTH, TILE_FORMAT, JPEG_QUALITY

    if DEFAULT_TILE_SIZE < 1:
        logger.warning("DEFAULT_TILE_SIZE=%d is too low, using 256", DEFAULT_TILE_SIZE)
        DEFAULT_TILE_SIZE = 256

    if DEFAULT_OVERLAP < 0:
        logger.warning("DEFAULT_OVERLAP=%d is negative, clamping to 0", DEFAULT_OVERLAP)
        DEFAULT_OVERLAP = 0

    if DEFAULT_WORKERS < 1:
        logger.warning("DEFAULT_WORKERS=%d is too low, clamping to 1", DEFAULT_WORKERS)
        DEFAULT_WORKERS = 1

    if MAX_RESIDENT_SOURCES < 1:
        logger.warning(
            "MAX_RESIDENT_SOURCES=%d is too low, clamping to 1", MAX_RESIDENT_SOURCES
        )
        MAX_RESIDENT_SOURCES = 1

    if STRIP_WIDTH < 2 or STRIP_WIDTH % 2:
        clamped = max(2, STRIP_WIDTH + STRIP_WIDTH % 2)
        logger.warning("STRIP_WIDTH=%d must be even and >= 2, using %d", STRIP_WIDTH, clamped)
        STRIP_WIDTH = clamped

    if TILE_FORMAT not in TILE_FORMATS:
        logger.warning("TILE_FORMAT=%r is not supported, using 'jpg'", TILE_FORMAT)
        TILE_FORMAT = "jpg"

    if not 1 <= JPEG_QUALITY <= 100:
        clamped = min(max(JPEG_QUALITY, 1), 100)
        logger.warning("JPEG_QUALITY=%d is out of range, clamping to %d", JPEG_QUALITY, clamped)
        JPEG_QUALITY = clamped


_validate_config()
