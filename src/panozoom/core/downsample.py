"""Area-averaging 2x reduction between pyramid levels."""

from __future__ import annotations

import logging

import numpy as np

from panozoom.config import STRIP_WIDTH

from .canvas import VirtualCanvas

logger = logging.getLogger(__name__)


def reduce(parent: np.ndarray) -> np.ndarray:
    """Halve an (H, W, C) uint8 image by averaging 2x2 blocks.

    Odd trailing rows/columns average the 2x1, 1x2 or 1x1 block that
    exists. Means are taken in integers and rounded half up, so the
    result only depends on the parent pixels.

    Returns:
        New (ceil(H/2), ceil(W/2), C) uint8 array
    """
    height, width = parent.shape[:2]
    child_h, child_w = (height + 1) // 2, (width + 1) // 2

    acc = np.zeros((child_h, child_w) + parent.shape[2:], dtype=np.uint32)
    count = np.zeros((child_h, child_w) + (1,) * (parent.ndim - 2), dtype=np.uint32)
    for dy in (0, 1):
        for dx in (0, 1):
            block = parent[dy::2, dx::2]
            bh, bw = block.shape[:2]
            acc[:bh, :bw] += block
            count[:bh, :bw] += 1

    return ((acc + count // 2) // count).astype(np.uint8)


def reduce_canvas(canvas: VirtualCanvas, strip_width: int = STRIP_WIDTH) -> np.ndarray:
    """Build the first coarser level straight from the canvas.

    The canvas is read in vertical strips of ``strip_width`` columns
    (must be even so 2x2 blocks never straddle two strips), so the full
    resolution panorama is never held in memory at once.
    """
    if strip_width < 2 or strip_width % 2:
        raise ValueError(f"strip_width must be even and >= 2, got {strip_width}")

    width, height = canvas.width, canvas.height
    child = np.empty(((height + 1) // 2, (width + 1) // 2, canvas.bands), dtype=np.uint8)
    for x0 in range(0, width, strip_width):
        x1 = min(x0 + strip_width, width)
        reduced = reduce(canvas.read_rect(x0, 0, x1, height))
        child[:, x0 // 2:x0 // 2 + reduced.shape[1]] = reduced

    logger.debug(
        "Reduced %d x %d canvas to %d x %d", width, height, child.shape[1], child.shape[0]
    )
    return child
