from __future__ import annotations

import math
from bisect import bisect_left, bisect_right
from typing import Any, Iterable, Mapping, NamedTuple

import numpy as np

from ..codec import max_points_for_bytes, pack_compact, unpack_compact
from ..errors import CurveInvariantError
from ..logging import get_logger
from ..numeric import NumericType, get_numeric_type
from .contract import EPSILON, check_fraction


class Point(NamedTuple):
    x: float
    y: float


def _line_distance(
    s: tuple[float, float],
    e: tuple[float, float],
    p: tuple[float, float],
) -> float:
    """Perpendicular distance of ``p`` from the line through ``s`` and ``e``."""

    nx = s[1] - e[1]
    ny = e[0] - s[0]
    return abs((p[0] - s[0]) * nx + (p[1] - s[1]) * ny) / math.hypot(nx, ny)


class BreakpointCurve:
    """Piecewise linear proportion curve through irregular breakpoints.

    Points are strictly increasing in x and non-decreasing in y, starting at
    ``y = 0`` and ending at ``y = 1``. Coordinates are rounded through
    ``x_type``/``y_type`` on the way in, so the cached canonical floats are
    exactly what the storage types can represent.

    Unlike :class:`FixedStepCurve` the point list can be edited in place with
    :meth:`add_point`, :meth:`simplify` and :meth:`simplify_fixed`; every edit
    either keeps all invariants or raises before touching the points.
    """

    def __init__(
        self,
        points: Iterable[tuple[float, float]],
        *,
        x_type: str | NumericType = "f32",
        y_type: str | NumericType = "f32",
    ) -> None:
        self.x_type = get_numeric_type(x_type)
        self.y_type = get_numeric_type(y_type)

        pairs = sorted(((float(p[0]), float(p[1])) for p in points), key=lambda p: p[0])
        if len(pairs) < 2:
            raise CurveInvariantError(
                f"breakpoint curve requires at least two points, got {len(pairs)}"
            )

        xs = self.x_type.to_canonical_array(self.x_type.from_canonical_array([p[0] for p in pairs]))
        ys = self.y_type.to_canonical_array(self.y_type.from_canonical_array([p[1] for p in pairs]))
        self._xs = [float(v) for v in xs]
        self._ys = [float(v) for v in ys]

        # Snap the end points onto the exact bounds.
        if abs(self._ys[0]) < EPSILON:
            self._ys[0] = 0.0
        if abs(self._ys[-1] - 1.0) < EPSILON:
            self._ys[-1] = 1.0

        self._check()

    def _check(self) -> None:
        if self._ys[0] != 0.0:
            raise CurveInvariantError(f"first point does not define y = 0 (y={self._ys[0]})")
        if self._ys[-1] != 1.0:
            raise CurveInvariantError(f"last point does not define y = 1 (y={self._ys[-1]})")
        for i in range(len(self._xs) - 1):
            if not self._xs[i] < self._xs[i + 1]:
                raise CurveInvariantError(
                    f"unsorted or duplicate x value at {self._xs[i + 1]}"
                )
            if not self._ys[i] <= self._ys[i + 1]:
                raise CurveInvariantError(
                    f"y does not increase monotonically between x={self._xs[i]} "
                    f"and x={self._xs[i + 1]}"
                )

    @classmethod
    def _from_canonical(
        cls,
        xs: list[float],
        ys: list[float],
        x_type: NumericType,
        y_type: NumericType,
    ) -> BreakpointCurve:
        curve = cls.__new__(cls)
        curve.x_type = x_type
        curve.y_type = y_type
        curve._xs = list(xs)
        curve._ys = list(ys)
        return curve

    def copy(self) -> BreakpointCurve:
        return self._from_canonical(self._xs, self._ys, self.x_type, self.y_type)

    __copy__ = copy

    def __deepcopy__(self, memo: dict[int, Any]) -> BreakpointCurve:
        return self.copy()

    @property
    def points(self) -> tuple[Point, ...]:
        return tuple(Point(x, y) for x, y in zip(self._xs, self._ys))

    def __len__(self) -> int:
        return len(self._xs)

    def min_x(self) -> float:
        return self._xs[0]

    def max_x(self) -> float:
        return self._xs[-1]

    def _lerp(self, i: int, source: list[float], target: list[float], value: float) -> float:
        a = (value - source[i]) / (source[i + 1] - source[i])
        return target[i] * (1.0 - a) + target[i + 1] * a

    def index_at_x(self, x: float) -> int:
        """Index of the breakpoint starting the segment that contains ``x``."""

        if x <= self._xs[0]:
            return 0
        if x >= self._xs[-1]:
            return len(self._xs) - 1
        return bisect_right(self._xs, x) - 1

    def index_at_y(self, y: float) -> int:
        if y <= 0.0:
            return 0
        if y >= 1.0:
            return len(self._ys) - 1
        return bisect_right(self._ys, y) - 1

    def y_at_x(self, x: float) -> float:
        x = float(x)
        if math.isnan(x):
            return math.nan
        if x <= self._xs[0]:
            return 0.0
        if x >= self._xs[-1]:
            return 1.0
        i = bisect_right(self._xs, x) - 1
        return self._lerp(i, self._xs, self._ys, x)

    def x_at_y(self, y: float) -> float:
        # On a plateau equal to y this lands on the plateau's last point.
        y = self.y_type.quantize(check_fraction(y))
        if y == 0.0:
            return self._xs[0]
        if y == 1.0:
            return self._xs[-1]
        i = bisect_right(self._ys, y) - 1
        return self._lerp(i, self._ys, self._xs, y)

    def typed_min_x(self) -> Any:
        return self.x_type.from_canonical(self._xs[0])

    def typed_max_x(self) -> Any:
        return self.x_type.from_canonical(self._xs[-1])

    def typed_y_at_x(self, x: Any) -> Any:
        return self.y_type.from_canonical(self.y_at_x(self.x_type.to_canonical(x)))

    def typed_x_at_y(self, y: Any) -> Any:
        return self.x_type.from_canonical(self.x_at_y(self.y_type.to_canonical(y)))

    def get_x_values(self) -> list[float]:
        return list(self._xs)

    def get_values_as_pairs(self) -> list[tuple[float, float]]:
        return list(zip(self._xs, self._ys))

    def get_values_as_vectors(self) -> tuple[np.ndarray, np.ndarray]:
        return np.asarray(self._xs, dtype=float), np.asarray(self._ys, dtype=float)

    def __call__(self, x: float | np.ndarray | list[float]) -> float | np.ndarray:
        if np.isscalar(x):
            return self.y_at_x(float(x))
        xs, ys = self.get_values_as_vectors()
        return np.interp(np.asarray(x, dtype=float), xs, ys, left=0.0, right=1.0)

    def add_point(self, x: float, y: float) -> None:
        """Insert one breakpoint, validating only its new neighbours."""

        if math.isnan(float(x)) or math.isnan(float(y)):
            raise CurveInvariantError(f"cannot add point with NaN coordinate: {x},{y}")
        xq = self.x_type.quantize(float(x))
        yq = self.y_type.quantize(float(y))
        n = len(self._xs)
        pos = bisect_left(self._xs, xq)

        if pos < n and self._xs[pos] == xq:
            raise CurveInvariantError(f"duplicate x value: {x}")
        if pos > 0 and yq < self._ys[pos - 1]:
            raise CurveInvariantError(f"new point {x},{y} breaks monotony")
        if pos < n and yq > self._ys[pos]:
            raise CurveInvariantError(f"new point {x},{y} breaks monotony")
        if pos == 0 and yq != 0.0:
            raise CurveInvariantError(f"new first point {x},{y} does not define y = 0")
        if pos == n and yq != 1.0:
            raise CurveInvariantError(f"new last point {x},{y} does not define y = 1")

        self._xs.insert(pos, xq)
        self._ys.insert(pos, yq)

    def _point(self, i: int) -> tuple[float, float]:
        return self._xs[i], self._ys[i]

    def simplify(self, tolerance: float, *, logger: Any | None = None) -> None:
        """Douglas-Peucker reduction with the given perpendicular tolerance.

        ``tolerance = 0`` only drops points lying exactly on the chord of
        their surviving neighbours, e.g. the inner points of flat runs.
        """

        if tolerance < 0:
            raise ValueError(f"simplify tolerance must be >= 0, got {tolerance}")
        n = len(self._xs)
        if n < 3:
            return

        keep = [True] * n
        pending = [(0, n - 1)]
        while pending:
            start, end = pending.pop()
            if end - start < 2:
                continue
            s = self._point(start)
            e = self._point(end)
            max_d = -1.0
            max_i = start
            for i in range(start + 1, end):
                d = _line_distance(s, e, self._point(i))
                if d > max_d:
                    max_d = d
                    max_i = i
            if max_d <= tolerance:
                for i in range(start + 1, end):
                    keep[i] = False
            else:
                pending.append((max_i, end))
                pending.append((start, max_i))

        self._xs = [x for x, k in zip(self._xs, keep) if k]
        self._ys = [y for y, k in zip(self._ys, keep) if k]
        if len(self._xs) != n:
            get_logger(logger, action="simplify").debug(
                "simplified curve from {} to {} points (tolerance={})",
                n,
                len(self._xs),
                tolerance,
            )

    def _triple_distance(self, i: int) -> float:
        return _line_distance(self._point(i - 1), self._point(i + 1), self._point(i))

    def simplify_fixed(self, max_points: int, *, logger: Any | None = None) -> None:
        """Drop the least significant points until at most ``max_points`` remain.

        Each round removes the middle of the consecutive triple whose middle
        point lies closest to its neighbours' chord (first one on ties). The
        end points are never removed.
        """

        if max_points < 2:
            raise CurveInvariantError(f"simplify_fixed needs max_points >= 2, got {max_points}")
        n = len(self._xs)
        if n <= max_points:
            return

        # distances[j] belongs to point j + 1
        distances = [self._triple_distance(i) for i in range(1, n - 1)]
        while len(self._xs) > max_points:
            j = min(range(len(distances)), key=distances.__getitem__)
            del self._xs[j + 1]
            del self._ys[j + 1]
            del distances[j]
            if j > 0:
                distances[j - 1] = self._triple_distance(j)
            if j < len(distances):
                distances[j] = self._triple_distance(j + 1)

        get_logger(logger, action="simplify_fixed").debug(
            "reduced curve from {} to {} points",
            n,
            len(self._xs),
        )

    def encode(self) -> bytes:
        """Quantise every breakpoint into the compact byte layout."""

        return pack_compact(self.get_values_as_pairs())

    def encode_limited(self, max_bytes: int, *, logger: Any | None = None) -> bytes:
        """Encode into at most ``max_bytes``, simplifying a copy when needed."""

        max_points = max_points_for_bytes(max_bytes)
        if max_points < 2:
            raise CurveInvariantError(
                f"{max_bytes} bytes cannot hold a compact curve of two points"
            )
        if len(self._xs) <= max_points:
            return self.encode()

        reduced = self.copy()
        reduced.simplify_fixed(max_points, logger=logger)
        get_logger(logger, action="encode_limited").info(
            "simplified {} points to {} to fit {} bytes",
            len(self._xs),
            len(reduced),
            max_bytes,
        )
        return reduced.encode()

    @classmethod
    def decode(
        cls,
        data: bytes | bytearray | memoryview,
        *,
        x_type: str | NumericType = "f32",
        y_type: str | NumericType = "f32",
    ) -> BreakpointCurve:
        return cls(unpack_compact(data), x_type=x_type, y_type=y_type)

    def describe(self) -> str:
        quantiles = [int(self.x_at_y(q)) for q in (0.0, 0.05, 0.5, 0.95, 1.0)]
        return (
            "BreakpointCurve (min={:>5}, 5%={:>5}, med={:>5}, 95%={:>5}, max={:>5}) "
            "with {} points".format(*quantiles, len(self._xs))
        )

    __str__ = describe

    def __repr__(self) -> str:
        return (
            f"BreakpointCurve(points={len(self._xs)}, x=[{self._xs[0]}, {self._xs[-1]}], "
            f"x_type={self.x_type.name!r}, y_type={self.y_type.name!r})"
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, BreakpointCurve):
            return NotImplemented
        return (
            self.x_type == other.x_type
            and self.y_type == other.y_type
            and self._xs == other._xs
            and self._ys == other._ys
        )

    __hash__ = None  # type: ignore[assignment]

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "breakpoint",
            "x_type": self.x_type.name,
            "y_type": self.y_type.name,
            "points": [[x, y] for x, y in zip(self._xs, self._ys)],
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> BreakpointCurve:
        kind = payload.get("type", "breakpoint")
        if kind != "breakpoint":
            raise ValueError(f"payload describes a '{kind}', not a breakpoint curve")
        raw_points = payload.get("points")
        if not isinstance(raw_points, list):
            raise ValueError("breakpoint curve payload must contain a 'points' list")
        return cls(
            [(float(p[0]), float(p[1])) for p in raw_points],
            x_type=str(payload.get("x_type", "f32")),
            y_type=str(payload.get("y_type", "f32")),
        )
