from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

import numpy as np

from ..errors import CurveInvariantError

EPSILON = 1e-4


@runtime_checkable
class Curve(Protocol):
    """Query contract shared by every curve representation.

    All arguments and results are canonical floats, whatever numeric types
    the curve uses to store its samples.
    """

    def min_x(self) -> float: ...

    def max_x(self) -> float: ...

    def y_at_x(self, x: float) -> float: ...

    def x_at_y(self, y: float) -> float: ...

    def get_x_values(self) -> list[float]: ...

    def get_values_as_pairs(self) -> list[tuple[float, float]]: ...

    def get_values_as_vectors(self) -> tuple[np.ndarray, np.ndarray]: ...


@runtime_checkable
class TypedCurve(Protocol):
    """Query contract expressed in the curve's own storage types."""

    def typed_min_x(self) -> Any: ...

    def typed_max_x(self) -> Any: ...

    def typed_y_at_x(self, x: Any) -> Any: ...

    def typed_x_at_y(self, y: Any) -> Any: ...


def check_fraction(y: float) -> float:
    value = float(y)
    if not 0.0 <= value <= 1.0:
        raise CurveInvariantError(f"y={y} is outside [0, 1]")
    return value
