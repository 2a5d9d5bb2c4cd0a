from __future__ import annotations

import heapq
from itertools import pairwise
from typing import Iterable, Iterator, Sequence

from ..errors import CurveInvariantError
from ..numeric import F32
from .breakpoint import BreakpointCurve
from .contract import Curve


def _dedup(values: Iterable[float]) -> Iterator[float]:
    previous = None
    for value in values:
        if value != previous:
            yield value
            previous = value


def merged_x_values(curves: Iterable[Curve]) -> list[float]:
    """Sorted union of the breakpoints of all curves, without duplicates."""

    return list(_dedup(heapq.merge(*(c.get_x_values() for c in curves))))


def weighted_average(curves: Sequence[Curve], weights: Sequence[float]) -> BreakpointCurve:
    """Blend curves point-wise with the given weights into a new breakpoint curve.

    The result has a breakpoint wherever any input has one and nowhere else;
    points that end up collinear are removed again by ``simplify(0)``.
    Weights are normalised by their sum.
    """

    if len(curves) != len(weights):
        raise CurveInvariantError(
            f"number of curves ({len(curves)}) and weights ({len(weights)}) must be the same"
        )
    if not curves:
        raise CurveInvariantError("weighted_average needs at least one curve")
    total = float(sum(weights))
    if total == 0.0:
        raise CurveInvariantError("weights must not sum to zero")
    f = 1.0 / total

    weighted = list(zip(curves, (float(w) for w in weights)))
    # Breakpoints that collapse onto one f32 value are merged before evaluation.
    xs = _dedup(F32.quantize(x) for x in merged_x_values(curves))
    points = []
    for x in xs:
        y = 0.0
        for curve, w in weighted:
            y += curve.y_at_x(x) * w
        points.append((x, y * f))

    result = BreakpointCurve(points, x_type=F32, y_type=F32)
    result.simplify(0.0)
    return result


def average(curves: Sequence[Curve]) -> BreakpointCurve:
    """Equal-weight average of all curves."""

    return weighted_average(curves, [1.0] * len(curves))


def distance(a: Curve, b: Curve) -> float:
    """Area enclosed between the graphs of two curves.

    Between consecutive breakpoints of either curve both graphs are straight,
    so each slice is a trapezoid, or a pair of triangles when the curves
    cross inside the slice.
    """

    diffs = [(x, a.y_at_x(x) - b.y_at_x(x)) for x in merged_x_values((a, b))]
    area = 0.0
    for (x1, dy1), (x2, dy2) in pairwise(diffs):
        h = x2 - x1
        d1 = abs(dy1)
        d2 = abs(dy2)
        if dy1 * dy2 >= 0.0:
            area += (d1 + d2) * h * 0.5
        else:
            area += h * 0.5 * (d1 * d1 + d2 * d2) / (d1 + d2)
    return area
