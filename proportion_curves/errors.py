from __future__ import annotations


class CurveError(Exception):
    """Base class for all Proportion-Curves errors."""


class CurveInvariantError(CurveError, ValueError):
    """Raised when input or an edit would break a curve invariant."""


class CurveRangeError(CurveError):
    """Raised by strict curve set queries outside the stored key range."""

    def __init__(self, x: float, bound: float, side: str) -> None:
        self.x = x
        self.bound = bound
        self.side = side
        super().__init__(f"x={x} is {side} the stored key range (bound {bound}).")


class CurveDecodeError(CurveError, ValueError):
    """Raised when a compact byte buffer cannot be decoded."""

    def __init__(self, message: str, *, size: int | None = None) -> None:
        self.size = size
        super().__init__(message)
