"""Exception types raised by the tiling engine.

Every failure carries enough context (source identifier, level, tile
coordinate or rectangle) to diagnose it without a debugger.
"""

from __future__ import annotations

from typing import Sequence


class PanozoomError(Exception):
    """Base class for all panozoom errors."""


class EmptyInputError(PanozoomError):
    """No source images were given."""

    def __init__(self, message: str = "At least one input image is needed") -> None:
        super().__init__(message)


class HeightMismatchError(PanozoomError):
    """Source images disagree on height.

    Attributes:
        expected: Height of the first source
        offenders: (identifier, height) of every source that differs
    """

    def __init__(self, expected: int, offenders: Sequence[tuple[str, int]]) -> None:
        self.expected = expected
        self.offenders = list(offenders)
        details = ", ".join(f"{name} (height {h})" for name, h in self.offenders)
        super().__init__(
            f"All images must share height {expected}; mismatched: {details}"
        )


class DecodeError(PanozoomError):
    """A source image could not be decoded."""

    def __init__(self, identifier: str, reason: str) -> None:
        self.identifier = identifier
        super().__init__(f"Failed to decode {identifier}: {reason}")


class OutOfBoundsError(PanozoomError):
    """A requested rectangle falls outside the addressable area.

    This signals a broken internal invariant, never a user error.
    """

    def __init__(
        self,
        rect: tuple[int, int, int, int],
        bounds: tuple[int, int],
        what: str = "canvas",
    ) -> None:
        self.rect = rect
        self.bounds = bounds
        super().__init__(
            f"Rectangle {rect} is outside {what} of size {bounds[0]}x{bounds[1]}"
        )


class SinkWriteError(PanozoomError):
    """The output sink failed to persist a tile or the descriptor."""

    def __init__(self, coord: tuple[int, int, int] | None, reason: str) -> None:
        self.coord = coord
        where = f"tile {tuple(coord)}" if coord is not None else "pyramid descriptor"
        super().__init__(f"Failed to write {where}: {reason}")


class PyramidCancelled(PanozoomError):
    """The run was cancelled at a level boundary or before a tile write."""
