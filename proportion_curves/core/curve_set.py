from __future__ import annotations

import copy
from bisect import bisect_left, bisect_right
from typing import Any, Callable, Iterator, Mapping

from ..errors import CurveInvariantError, CurveRangeError
from ..logging import get_logger
from ..numeric import NumericType, get_numeric_type
from .breakpoint import BreakpointCurve
from .combine import weighted_average
from .contract import Curve


class CurveSet:
    """Curves keyed by an external parameter, e.g. hour of day.

    Keys are stored through ``key_type`` and kept strictly increasing.
    Querying a key between two stored ones blends the neighbouring curves
    with :func:`weighted_average`.
    """

    def __init__(self, *, key_type: str | NumericType = "f32") -> None:
        self.key_type = get_numeric_type(key_type)
        self._keys: list[float] = []
        self._curves: list[Curve] = []

    def __len__(self) -> int:
        return len(self._keys)

    def __iter__(self) -> Iterator[tuple[float, Curve]]:
        return iter(list(zip(self._keys, self._curves)))

    @property
    def curves(self) -> list[tuple[float, Curve]]:
        return list(zip(self._keys, self._curves))

    def keys(self) -> list[float]:
        return list(self._keys)

    def add_curve(self, key: float, curve: Curve, *, logger: Any | None = None) -> None:
        k = self.key_type.quantize(float(key))
        pos = bisect_left(self._keys, k)
        if pos < len(self._keys) and self._keys[pos] == k:
            raise CurveInvariantError(f"duplicate key value: {key}")
        self._keys.insert(pos, k)
        self._curves.insert(pos, curve)
        get_logger(logger, action="add_curve").debug(
            "added curve at key {} ({} curves)", k, len(self._keys)
        )

    def _require_curves(self, minimum: int = 1) -> None:
        if len(self._keys) < minimum:
            raise CurveInvariantError(
                f"curve set needs at least {minimum} curve(s), has {len(self._keys)}"
            )

    def min_x(self) -> float:
        self._require_curves()
        return self._keys[0]

    def max_x(self) -> float:
        self._require_curves()
        return self._keys[-1]

    def _interpolate(self, x: float) -> BreakpointCurve:
        self._require_curves(2)
        # Outside the key range the first or last pair is used as is.
        i = min(max(bisect_right(self._keys, x) - 1, 0), len(self._keys) - 2)
        lx, rx = self._keys[i], self._keys[i + 1]
        a = (x - lx) / (rx - lx)
        return weighted_average([self._curves[i], self._curves[i + 1]], [1.0 - a, a])

    def curve_at_x_with_extrapolation(self, x: float) -> BreakpointCurve:
        """Curve for ``x``, extrapolated from the two nearest curves when out of range.

        The extrapolation is experimental. Weights outside ``[0, 1]`` may yield
        a non-monotonic blend, which then fails curve construction.
        """

        return self._interpolate(float(x))

    def curve_at_x_with_continuation(self, x: float) -> Curve:
        """Curve for ``x``; outside the key range the boundary curve is returned."""

        x = float(x)
        if x <= self.min_x():
            return copy.deepcopy(self._curves[0])
        if x >= self.max_x():
            return copy.deepcopy(self._curves[-1])
        return self._interpolate(x)

    def curve_at_x(self, x: float) -> BreakpointCurve:
        """Curve for ``x`` strictly inside the key range.

        Raises:
            CurveRangeError: if ``x`` is at or beyond either bound.
        """

        x = float(x)
        if x <= self.min_x():
            raise CurveRangeError(x, self._keys[0], "below")
        if x >= self.max_x():
            raise CurveRangeError(x, self._keys[-1], "above")
        return self._interpolate(x)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "curve_set",
            "key_type": self.key_type.name,
            "curves": [
                {"key": key, "curve": curve.to_dict()}  # type: ignore[attr-defined]
                for key, curve in zip(self._keys, self._curves)
            ],
        }

    @classmethod
    def from_dict(
        cls,
        payload: Mapping[str, Any],
        *,
        curve_from_dict: Callable[[Mapping[str, Any]], Curve] | None = None,
    ) -> CurveSet:
        kind = payload.get("type", "curve_set")
        if kind != "curve_set":
            raise ValueError(f"payload describes a '{kind}', not a curve set")
        raw_curves = payload.get("curves")
        if not isinstance(raw_curves, list):
            raise ValueError("curve set payload must contain a 'curves' list")

        load = curve_from_dict or BreakpointCurve.from_dict
        curve_set = cls(key_type=str(payload.get("key_type", "f32")))
        for idx, item in enumerate(raw_curves):
            if not isinstance(item, Mapping) or "key" not in item or "curve" not in item:
                raise ValueError(f"curve set entry #{idx} must contain 'key' and 'curve'")
            curve_set.add_curve(float(item["key"]), load(item["curve"]))
        return curve_set
