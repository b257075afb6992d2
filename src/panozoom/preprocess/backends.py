"""Image codec backend using PyVIPS.

Decodes input images into numpy arrays for the tiling engine and encodes
tiles back to JPEG or PNG. Image sizes are probed from the file header
without decoding pixels, so the canvas can be laid out before any image
is loaded.

Usage:
    from panozoom.preprocess.backends import VIPSBackend

    width, height = VIPSBackend.probe_size(Path("left.jpg"))
    pixels = VIPSBackend.load(Path("left.jpg"))
    VIPSBackend.save(pixels, Path("0_0.jpg"), tile_format="jpg", quality=90)
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import numpy as np

from panozoom.config import JPEG_QUALITY

# pyvips is imported quietly in panozoom/__init__.py first
_HAS_VIPS = False
_vips_import_error: str | None = None
pyvips: Any = None

try:
    import pyvips
    _HAS_VIPS = True
except (ImportError, OSError) as e:
    _vips_import_error = str(e)


def is_vips_available() -> bool:
    """Check if PyVIPS is available.

    Returns:
        True if pyvips is installed and working
    """
    return _HAS_VIPS


def get_vips_import_error() -> str | None:
    """Get the error message if PyVIPS failed to import."""
    return _vips_import_error


# Interpretations whose bands are already RGB(A) or grey(+alpha)
_PASSTHROUGH_INTERPRETATIONS = ("srgb", "rgb", "b-w", "multiband")


def _require_vips() -> None:
    if not _HAS_VIPS:
        raise RuntimeError(f"PyVIPS is not available: {_vips_import_error}")


class VIPSBackend:
    """PyVIPS-based codec for source images and tiles.

    Arrays exchanged with the engine are (H, W, C) uint8 with 1-4 bands.
    """

    @staticmethod
    def probe_size(path: Path) -> tuple[int, int]:
        """Read (width, height) from the image header.

        pyvips opens files lazily, so no pixels are decoded here.
        """
        _require_vips()
        image = pyvips.Image.new_from_file(str(path))
        return image.width, image.height

    @staticmethod
    def load(path: Path) -> np.ndarray:
        """Decode a whole image to an (H, W, C) uint8 array.

        Args:
            path: Path to the image file

        Returns:
            numpy array with the file's bands (1-4), 8 bits per band
        """
        _require_vips()
        # Sequential access is faster for one-pass decoding
        image = pyvips.Image.new_from_file(str(path), access="sequential")
        return VIPSBackend.to_numpy(image)

    @staticmethod
    def from_numpy(arr: np.ndarray) -> "pyvips.Image":
        """Convert a numpy array to pyvips format.

        Args:
            arr: numpy array (H, W) or (H, W, C) uint8

        Returns:
            pyvips.Image with C bands
        """
        _require_vips()

        height, width = arr.shape[:2]
        bands = arr.shape[2] if arr.ndim == 3 else 1

        # Ensure contiguous array
        arr = np.ascontiguousarray(arr)

        return pyvips.Image.new_from_memory(arr.tobytes(), width, height, bands, "uchar")

    @staticmethod
    def to_numpy(image: "pyvips.Image") -> np.ndarray:
        """Convert a pyvips image to an (H, W, C) uint8 numpy array.

        CMYK, Lab and 16-bit images are converted to 8-bit sRGB or grey.
        """
        if image.interpretation not in _PASSTHROUGH_INTERPRETATIONS:
            grey = image.interpretation == "grey16" or image.bands < 3
            image = image.colourspace("b-w" if grey else "srgb")
        if image.format != "uchar":
            image = image.cast("uchar")

        data = image.write_to_memory()
        return np.ndarray(
            buffer=data,
            dtype=np.uint8,
            shape=(image.height, image.width, image.bands),
        )

    @staticmethod
    def encode(
        pixels: np.ndarray, tile_format: str = "jpg", quality: int = JPEG_QUALITY
    ) -> bytes:
        """Encode an array to JPEG or PNG bytes.

        JPEG has no alpha channel, so RGBA tiles are flattened onto white.
        """
        image = VIPSBackend.from_numpy(pixels)
        if tile_format == "jpg":
            if image.bands in (2, 4):
                image = image.flatten(background=[255] * (image.bands - 1))
            return image.write_to_buffer(".jpg", Q=quality)
        if tile_format == "png":
            return image.write_to_buffer(".png")
        raise ValueError(f"Unsupported tile format: {tile_format!r}")

    @staticmethod
    def save(
        pixels: np.ndarray,
        path: Path,
        tile_format: str = "jpg",
        quality: int = JPEG_QUALITY,
    ) -> None:
        """Encode an array and write it to ``path``."""
        Path(path).write_bytes(VIPSBackend.encode(pixels, tile_format, quality))

