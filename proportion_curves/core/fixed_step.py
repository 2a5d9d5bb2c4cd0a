from __future__ import annotations

import math
from typing import Any, Iterable, Mapping

import numpy as np

from ..errors import CurveInvariantError
from ..numeric import NumericType, get_numeric_type
from .contract import check_fraction


class FixedStepCurve:
    """Curve sampled at ``origin + i * step`` for every stored sample ``i``.

    Samples are kept in ``y_type`` storage and never change after
    construction; queries run on a cached canonical copy.
    """

    def __init__(
        self,
        origin: float,
        step: float,
        samples: Iterable[float],
        *,
        x_type: str | NumericType = "f32",
        y_type: str | NumericType = "f32",
    ) -> None:
        self.x_type = get_numeric_type(x_type)
        self.y_type = get_numeric_type(y_type)

        raw = self.y_type.from_canonical_array(list(samples))
        if raw.ndim != 1 or raw.size < 2:
            raise CurveInvariantError("fixed-step curve requires at least two samples")

        self._origin = self.x_type.from_canonical(origin)
        self._step = self.x_type.from_canonical(step)
        self._x0 = self.x_type.to_canonical(self._origin)
        self._s = self.x_type.to_canonical(self._step)
        if not self._s > 0.0:
            raise CurveInvariantError(f"fixed-step curve requires a positive step, got {step}")

        ys = self.y_type.to_canonical_array(raw)
        if np.any(np.diff(ys) < 0.0):
            raise CurveInvariantError("fixed-step samples must be non-decreasing")

        raw.setflags(write=False)
        self._samples = raw
        self._ys = [float(v) for v in ys]

    @classmethod
    def from_typed(
        cls,
        origin: Any,
        step: Any,
        samples: Iterable[Any],
        *,
        x_type: str | NumericType = "f32",
        y_type: str | NumericType = "f32",
    ) -> FixedStepCurve:
        """Build a curve from values already in storage representation."""

        xt = get_numeric_type(x_type)
        yt = get_numeric_type(y_type)
        return cls(
            xt.to_canonical(origin),
            xt.to_canonical(step),
            yt.to_canonical_array(list(samples)),
            x_type=xt,
            y_type=yt,
        )

    @property
    def origin(self) -> float:
        return self._x0

    @property
    def step(self) -> float:
        return self._s

    @property
    def samples(self) -> np.ndarray:
        return self._samples

    def __len__(self) -> int:
        return len(self._ys)

    def min_x(self) -> float:
        return self._x0

    def max_x(self) -> float:
        return self._x0 + self._s * (len(self._ys) - 1)

    def y_at_x(self, x: float) -> float:
        x = float(x)
        ys = self._ys
        if math.isnan(x):
            return math.nan
        if x <= self._x0:
            return ys[0]
        if x >= self.max_x():
            return ys[-1]

        i = (x - self._x0) / self._s
        i_min = math.floor(i)
        i_max = min(math.ceil(i), len(ys) - 1)
        if i_min == i_max:
            return ys[i_min]

        a = i - i_min
        return ys[i_min] * (1.0 - a) + ys[i_max] * a

    def x_at_y(self, y: float) -> float:
        # On a plateau of samples equal to y, the first one wins.
        y = self.y_type.quantize(check_fraction(y))
        if y == 0.0:
            return self.min_x()
        if y == 1.0:
            return self.max_x()

        for i, v_r in enumerate(self._ys):
            if v_r == y:
                return self._x0 + i * self._s
            if v_r > y:
                if i == 0:
                    raise CurveInvariantError(
                        f"first sample {v_r} already exceeds y={y}; curve does not start at 0"
                    )
                v_l = self._ys[i - 1]
                a = (y - v_l) / (v_r - v_l)
                return self._x0 + ((i - 1) + a) * self._s

        raise CurveInvariantError(f"did not find y={y} in fixed-step curve")

    def typed_min_x(self) -> Any:
        return self._origin

    def typed_max_x(self) -> Any:
        return self.x_type.from_canonical(self.max_x())

    def typed_y_at_x(self, x: Any) -> Any:
        return self.y_type.from_canonical(self.y_at_x(self.x_type.to_canonical(x)))

    def typed_x_at_y(self, y: Any) -> Any:
        return self.x_type.from_canonical(self.x_at_y(self.y_type.to_canonical(y)))

    def get_x_values(self) -> list[float]:
        return [self._x0 + i * self._s for i in range(len(self._ys))]

    def get_values_as_pairs(self) -> list[tuple[float, float]]:
        return list(zip(self.get_x_values(), self._ys))

    def get_values_as_vectors(self) -> tuple[np.ndarray, np.ndarray]:
        return np.asarray(self.get_x_values(), dtype=float), np.asarray(self._ys, dtype=float)

    def __call__(self, x: float | np.ndarray | list[float]) -> float | np.ndarray:
        if np.isscalar(x):
            return self.y_at_x(float(x))
        xs, ys = self.get_values_as_vectors()
        return np.interp(np.asarray(x, dtype=float), xs, ys)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, FixedStepCurve):
            return NotImplemented
        return (
            self.x_type == other.x_type
            and self.y_type == other.y_type
            and self._x0 == other._x0
            and self._s == other._s
            and self._ys == other._ys
        )

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return (
            f"FixedStepCurve(origin={self._x0}, step={self._s}, samples={len(self._ys)}, "
            f"x_type={self.x_type.name!r}, y_type={self.y_type.name!r})"
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "fixed_step",
            "x_type": self.x_type.name,
            "y_type": self.y_type.name,
            "origin": self._x0,
            "step": self._s,
            "samples": list(self._ys),
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> FixedStepCurve:
        kind = payload.get("type", "fixed_step")
        if kind != "fixed_step":
            raise ValueError(f"payload describes a '{kind}', not a fixed-step curve")
        try:
            return cls(
                float(payload["origin"]),
                float(payload["step"]),
                [float(v) for v in payload["samples"]],
                x_type=str(payload.get("x_type", "f32")),
                y_type=str(payload.get("y_type", "f32")),
            )
        except KeyError as exc:
            raise ValueError(f"fixed-step curve payload is missing field {exc}") from exc
