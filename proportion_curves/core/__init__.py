from __future__ import annotations

from .breakpoint import BreakpointCurve, Point
from .combine import average, distance, merged_x_values, weighted_average
from .contract import EPSILON, Curve, TypedCurve
from .curve_set import CurveSet
from .fixed_step import FixedStepCurve

__all__ = [
    "EPSILON",
    "BreakpointCurve",
    "Curve",
    "CurveSet",
    "FixedStepCurve",
    "Point",
    "TypedCurve",
    "average",
    "distance",
    "merged_x_values",
    "weighted_average",
]
