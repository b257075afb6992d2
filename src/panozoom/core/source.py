"""Pixel source adapter: one decoded input image addressable by rectangle."""

from __future__ import annotations

import logging
import threading
from typing import Callable

import numpy as np

from panozoom.errors import DecodeError, OutOfBoundsError

from .types import Rect

logger = logging.getLogger(__name__)

#: Decode capability: returns the full image as an (H, W, C) or (H, W) uint8 array
DecodeFn = Callable[[], np.ndarray]


def normalize_bands(pixels: np.ndarray, bands: int) -> np.ndarray:
    """Convert an (H, W, C) uint8 array to ``bands`` channels (3 = RGB, 4 = RGBA).

    Grayscale is replicated, a missing alpha channel is filled opaque and an
    existing alpha channel is dropped for RGB output.
    """
    current = pixels.shape[2]
    if current == bands:
        return pixels
    if current in (1, 2):
        gray = np.repeat(pixels[:, :, :1], 3, axis=2)
        if bands == 3:
            return gray
        alpha = pixels[:, :, 1:2] if current == 2 else _opaque(pixels)
        return np.concatenate([gray, alpha], axis=2)
    if current == 4 and bands == 3:
        return pixels[:, :, :3]
    if current == 3 and bands == 4:
        return np.concatenate([pixels, _opaque(pixels)], axis=2)
    raise ValueError(f"Cannot convert {current}-band pixels to {bands} bands")


def _opaque(pixels: np.ndarray) -> np.ndarray:
    return np.full(pixels.shape[:2] + (1,), 255, dtype=np.uint8)


class PixelSource:
    """One physical input image placed on the virtual canvas.

    The image is decoded on first read and kept until :meth:`release` is
    called. Reads return read-only views into the decoded buffer.

    Args:
        identifier: Path or handle used in log and error messages
        width: Declared width in pixels
        height: Declared height in pixels
        decode: Callable returning the decoded pixels
    """

    def __init__(self, identifier: str, width: int, height: int, decode: DecodeFn) -> None:
        self.identifier = str(identifier)
        self.width = width
        self.height = height
        #: Horizontal position on the virtual canvas, assigned by the canvas
        self.offset = 0
        self._decode = decode
        self._pixels: np.ndarray | None = None
        self._lock = threading.Lock()

    @classmethod
    def from_array(cls, identifier: str, pixels: np.ndarray) -> PixelSource:
        """Wrap an already decoded array."""
        return cls(identifier, pixels.shape[1], pixels.shape[0], lambda: pixels)

    def __repr__(self) -> str:
        return (
            f"PixelSource({self.identifier!r}, {self.width}x{self.height}, "
            f"offset={self.offset})"
        )

    @property
    def is_decoded(self) -> bool:
        return self._pixels is not None

    @property
    def span(self) -> tuple[int, int]:
        """Half-open column span [offset, offset + width) on the canvas."""
        return self.offset, self.offset + self.width

    def pixels(self) -> np.ndarray:
        """Return the decoded image, decoding it on first use."""
        with self._lock:
            if self._pixels is None:
                self._pixels = self._load()
            return self._pixels

    def _load(self) -> np.ndarray:
        logger.debug("Decoding %s", self.identifier)
        try:
            pixels = np.asarray(self._decode())
        except Exception as e:
            raise DecodeError(self.identifier, str(e)) from e

        if pixels.ndim == 2:
            pixels = pixels[:, :, np.newaxis]
        if pixels.ndim != 3 or pixels.dtype != np.uint8:
            raise DecodeError(
                self.identifier,
                f"expected an (H, W, C) uint8 image, got {pixels.dtype} {pixels.shape}",
            )
        if pixels.shape[:2] != (self.height, self.width):
            raise DecodeError(
                self.identifier,
                f"decoded size {pixels.shape[1]}x{pixels.shape[0]} does not match "
                f"declared size {self.width}x{self.height}",
            )
        pixels = pixels.view()
        pixels.flags.writeable = False
        return pixels

    def read_rect(self, x0: int, y0: int, x1: int, y1: int) -> np.ndarray:
        """Read a rectangle in local coordinates, clipped to the image.

        Raises:
            OutOfBoundsError: If the rectangle does not intersect the image
        """
        cx0, cy0 = max(x0, 0), max(y0, 0)
        cx1, cy1 = min(x1, self.width), min(y1, self.height)
        if cx0 >= cx1 or cy0 >= cy1:
            raise OutOfBoundsError(
                Rect(x0, y0, x1, y1), (self.width, self.height), what=self.identifier
            )
        return self.pixels()[cy0:cy1, cx0:cx1]

    def release(self) -> None:
        """Drop the decoded buffer. The next read decodes again."""
        with self._lock:
            if self._pixels is not None:
                logger.debug("Releasing decoded %s", self.identifier)
            self._pixels = None
