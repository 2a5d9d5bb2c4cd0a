from __future__ import annotations

from .codec import COMPACT_HEADER_SIZE, COMPACT_MAX_POINTS, max_points_for_bytes
from .core import (
    EPSILON,
    BreakpointCurve,
    Curve,
    CurveSet,
    FixedStepCurve,
    Point,
    TypedCurve,
    average,
    distance,
    merged_x_values,
    weighted_average,
)
from .errors import CurveDecodeError, CurveError, CurveInvariantError, CurveRangeError
from .logging import get_log_mode, get_logger, set_log_mode
from .numeric import (
    F16,
    F32,
    F64,
    I8,
    U1F7,
    U1F15,
    NumericType,
    get_numeric_type,
    list_numeric_types,
)
from .storage import (
    dumps,
    file_extension,
    get_serde_format,
    load_from_file,
    load_tree,
    loads,
    save_to_file,
    save_tree,
)

__all__ = [
    "COMPACT_HEADER_SIZE",
    "COMPACT_MAX_POINTS",
    "EPSILON",
    "F16",
    "F32",
    "F64",
    "I8",
    "U1F7",
    "U1F15",
    "BreakpointCurve",
    "Curve",
    "CurveDecodeError",
    "CurveError",
    "CurveInvariantError",
    "CurveRangeError",
    "CurveSet",
    "FixedStepCurve",
    "NumericType",
    "Point",
    "TypedCurve",
    "average",
    "distance",
    "dumps",
    "file_extension",
    "get_log_mode",
    "get_logger",
    "get_numeric_type",
    "get_serde_format",
    "list_numeric_types",
    "load_from_file",
    "load_tree",
    "loads",
    "max_points_for_bytes",
    "merged_x_values",
    "save_to_file",
    "save_tree",
    "set_log_mode",
    "weighted_average",
]
