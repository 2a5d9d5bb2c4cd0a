from __future__ import annotations

import math

import numpy as np
import pytest

from proportion_curves.numeric import (
    F16,
    F32,
    F64,
    I8,
    U1F7,
    U1F15,
    get_numeric_type,
    list_numeric_types,
)


def test_list_numeric_types_names_every_storage_type() -> None:
    assert list_numeric_types() == ["f16", "f32", "f64", "i8", "u1f15", "u1f7"]


def test_get_numeric_type_resolves_names_and_instances() -> None:
    assert get_numeric_type("f32") is F32
    assert get_numeric_type(" U1F7 ") is U1F7
    assert get_numeric_type(I8) is I8


def test_get_numeric_type_rejects_unknown_name() -> None:
    with pytest.raises(ValueError, match="Unknown numeric type"):
        get_numeric_type("f128")


def test_float_types_round_to_nearest_representable() -> None:
    assert F64.quantize(0.1) == 0.1
    assert F32.quantize(0.1) == float(np.float32(0.1))
    assert F16.quantize(0.1) == float(np.float16(0.1))
    assert isinstance(F32.from_canonical(0.5), np.float32)


def test_float_types_overflow_to_infinity() -> None:
    assert math.isinf(F16.quantize(1.0e6))


def test_fixed_point_rounds_to_nearest_fraction() -> None:
    raw = U1F7.from_canonical(0.6)
    assert raw == 77
    assert raw.dtype == np.uint8
    assert U1F7.to_canonical(raw) == pytest.approx(77 / 128)
    assert U1F15.quantize(0.6) == pytest.approx(19661 / 32768)


def test_fixed_point_saturates_at_range_limits() -> None:
    assert U1F7.from_canonical(-3.0) == 0
    assert U1F7.from_canonical(5.0) == 255
    assert U1F7.to_canonical(255) == pytest.approx(255 / 128)
    assert U1F7.from_canonical(float("nan")) == 0


def test_fixed_point_resolution() -> None:
    assert U1F7.resolution == 1 / 128
    assert U1F15.resolution == 1 / 32768


def test_integer_type_truncates_and_saturates() -> None:
    assert I8.from_canonical(12.9) == 12
    assert I8.from_canonical(-12.9) == -12
    assert I8.from_canonical(1000.0) == 127
    assert I8.from_canonical(-1000.0) == -128
    assert I8.quantize(3.7) == 3.0
    assert I8.resolution == 1.0


def test_array_conversions_match_scalar_ones() -> None:
    values = [0.0, 0.25, 0.6, 1.0]
    raw = U1F7.from_canonical_array(values)
    assert raw.dtype == np.uint8
    assert U1F7.to_canonical_array(raw).tolist() == [U1F7.quantize(v) for v in values]
