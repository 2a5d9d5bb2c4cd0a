from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import numpy as np


@dataclass(frozen=True)
class NumericType:
    """Lossy bridge between one sample storage encoding and the canonical float.

    Every curve computes in plain Python floats; a ``NumericType`` decides how
    values look while they are stored. Conversions are total: out-of-range
    input saturates (or overflows to infinity for IEEE types) instead of
    raising.
    """

    name: str
    dtype: Any

    def _encode(self, values: np.ndarray) -> np.ndarray:
        with np.errstate(over="ignore", invalid="ignore"):
            return values.astype(self.dtype)

    def _decode(self, raw: np.ndarray) -> np.ndarray:
        return raw.astype(np.float64)

    @property
    def resolution(self) -> float:
        return float(np.finfo(self.dtype).eps)

    def from_canonical(self, value: float) -> Any:
        return self._encode(np.asarray([value], dtype=np.float64))[0]

    def to_canonical(self, value: Any) -> float:
        return float(self._decode(np.asarray([value], dtype=self.dtype))[0])

    def from_canonical_array(self, values: Any) -> np.ndarray:
        return self._encode(np.asarray(values, dtype=np.float64))

    def to_canonical_array(self, values: Any) -> np.ndarray:
        return self._decode(np.asarray(values, dtype=self.dtype))

    def quantize(self, value: float) -> float:
        """Return the canonical value that survives a storage round trip."""

        return self.to_canonical(self.from_canonical(value))


@dataclass(frozen=True)
class FixedPointType(NumericType):
    """Unsigned fixed point with one integer bit (``U1F7``, ``U1F15``).

    Raw storage is ``round(value * 2**frac_bits)`` clamped to the unsigned
    range, so representable values span ``[0, 2 - 2**-frac_bits]``.
    """

    frac_bits: int = 7

    @property
    def _scale(self) -> float:
        return float(1 << self.frac_bits)

    @property
    def resolution(self) -> float:
        return 1.0 / self._scale

    def _encode(self, values: np.ndarray) -> np.ndarray:
        max_raw = (1 << (self.frac_bits + 1)) - 1
        scaled = np.nan_to_num(values * self._scale, nan=0.0, posinf=max_raw, neginf=0.0)
        return np.clip(np.rint(scaled), 0, max_raw).astype(self.dtype)

    def _decode(self, raw: np.ndarray) -> np.ndarray:
        return raw.astype(np.float64) / self._scale


@dataclass(frozen=True)
class TruncatingIntType(NumericType):
    """Signed integer storage; fractions truncate toward zero and saturate."""

    @property
    def resolution(self) -> float:
        return 1.0

    def _encode(self, values: np.ndarray) -> np.ndarray:
        info = np.iinfo(self.dtype)
        cleaned = np.nan_to_num(values, nan=0.0, posinf=info.max, neginf=info.min)
        return np.clip(np.trunc(cleaned), info.min, info.max).astype(self.dtype)


F64 = NumericType("f64", np.float64)
F32 = NumericType("f32", np.float32)
F16 = NumericType("f16", np.float16)
U1F7 = FixedPointType("u1f7", np.uint8, frac_bits=7)
U1F15 = FixedPointType("u1f15", np.uint16, frac_bits=15)
I8 = TruncatingIntType("i8", np.int8)

_NUMERIC_TYPES: dict[str, NumericType] = {
    numeric.name: numeric for numeric in (F64, F32, F16, U1F7, U1F15, I8)
}


def get_numeric_type(numeric: str | NumericType) -> NumericType:
    """Resolve a numeric type from its name (``f32``, ``u1f7``, ...)."""

    if isinstance(numeric, NumericType):
        return numeric
    normalized = str(numeric).strip().lower()
    try:
        return _NUMERIC_TYPES[normalized]
    except KeyError:
        valid = ", ".join(sorted(_NUMERIC_TYPES))
        raise ValueError(f"Unknown numeric type '{numeric}'. Expected one of: {valid}") from None


def list_numeric_types() -> list[str]:
    return sorted(_NUMERIC_TYPES)
