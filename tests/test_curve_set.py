from __future__ import annotations

import pytest

from proportion_curves import BreakpointCurve, CurveInvariantError, CurveRangeError, CurveSet, FixedStepCurve


def _line(start: float, end: float) -> BreakpointCurve:
    return BreakpointCurve([(start, 0.0), (end, 1.0)])


def _two_curve_set() -> CurveSet:
    curve_set = CurveSet()
    curve_set.add_curve(10.0, _line(10.0, 20.0))
    curve_set.add_curve(0.0, _line(0.0, 10.0))
    return curve_set


def test_add_curve_keeps_keys_sorted() -> None:
    curve_set = _two_curve_set()
    curve_set.add_curve(5.0, _line(5.0, 15.0))

    assert curve_set.keys() == [0.0, 5.0, 10.0]
    assert [key for key, _ in curve_set] == [0.0, 5.0, 10.0]
    assert curve_set.curves[1][1] == _line(5.0, 15.0)
    assert len(curve_set) == 3
    assert curve_set.min_x() == 0.0
    assert curve_set.max_x() == 10.0


def test_add_curve_rejects_duplicate_key() -> None:
    curve_set = _two_curve_set()
    with pytest.raises(CurveInvariantError, match="duplicate key"):
        curve_set.add_curve(10.0, _line(0.0, 1.0))


def test_keys_are_quantized_through_key_type() -> None:
    curve_set = CurveSet(key_type="i8")
    curve_set.add_curve(3.7, _line(0.0, 1.0))

    assert curve_set.keys() == [3.0]
    with pytest.raises(CurveInvariantError):
        curve_set.add_curve(3.2, _line(0.0, 1.0))


def test_curve_at_x_blends_neighbouring_curves() -> None:
    result = _two_curve_set().curve_at_x(5.0)

    assert isinstance(result, BreakpointCurve)
    assert result.y_at_x(10.0) == pytest.approx(0.5)
    assert result.min_x() == 0.0
    assert result.max_x() == 20.0


def test_curve_at_x_blends_curves_with_non_integer_steps() -> None:
    curve_set = CurveSet()
    curve_set.add_curve(0.0, FixedStepCurve(0.1, 0.1, [0.0, 0.2, 0.5, 0.8, 1.0]))
    curve_set.add_curve(1.0, BreakpointCurve([(0.1, 0.0), (0.3, 0.5), (0.5, 1.0)]))

    result = curve_set.curve_at_x(0.5)

    assert isinstance(result, BreakpointCurve)
    assert result.y_at_x(0.3) == pytest.approx(0.5, abs=1e-5)


def test_curve_at_x_weights_follow_key_position() -> None:
    result = _two_curve_set().curve_at_x(7.5)
    assert result.y_at_x(10.0) == pytest.approx(0.25 * 1.0 + 0.75 * 0.0)


@pytest.mark.parametrize(("x", "bound", "side"), [(0.0, 0.0, "below"), (-3.0, 0.0, "below"), (10.0, 10.0, "above"), (12.0, 10.0, "above")])
def test_curve_at_x_raises_range_error_at_or_beyond_bounds(x: float, bound: float, side: str) -> None:
    with pytest.raises(CurveRangeError) as exc_info:
        _two_curve_set().curve_at_x(x)

    err = exc_info.value
    assert err.x == x
    assert err.bound == bound
    assert err.side == side
    assert side in str(err)


def test_continuation_returns_copies_of_boundary_curves() -> None:
    curve_set = _two_curve_set()

    below = curve_set.curve_at_x_with_continuation(-5.0)
    above = curve_set.curve_at_x_with_continuation(10.0)

    assert below == _line(0.0, 10.0)
    assert above == _line(10.0, 20.0)
    assert below is not curve_set.curves[0][1]
    assert curve_set.curve_at_x_with_continuation(5.0) == curve_set.curve_at_x(5.0)


def test_extrapolation_inside_range_matches_interpolation() -> None:
    curve_set = _two_curve_set()
    assert curve_set.curve_at_x_with_extrapolation(2.5) == curve_set.curve_at_x(2.5)


def test_extrapolation_extends_the_nearest_pair_linearly() -> None:
    # Experimental behaviour; the blend weights leave [0, 1] outside the range.
    curve_set = CurveSet()
    curve_set.add_curve(0.0, BreakpointCurve([(0.0, 0.0), (10.0, 0.5), (20.0, 1.0)]))
    curve_set.add_curve(1.0, BreakpointCurve([(0.0, 0.0), (10.0, 0.6), (20.0, 1.0)]))

    result = curve_set.curve_at_x_with_extrapolation(2.0)

    assert result.y_at_x(10.0) == pytest.approx(0.7, abs=1e-6)


def test_extrapolation_can_fail_when_blend_is_not_monotonic() -> None:
    with pytest.raises(CurveInvariantError):
        _two_curve_set().curve_at_x_with_extrapolation(15.0)


def test_queries_need_enough_curves() -> None:
    empty = CurveSet()
    with pytest.raises(CurveInvariantError):
        empty.min_x()

    single = CurveSet()
    single.add_curve(1.0, _line(0.0, 1.0))
    assert single.curve_at_x_with_continuation(5.0) == _line(0.0, 1.0)
    with pytest.raises(CurveInvariantError, match="at least 2"):
        single.curve_at_x_with_extrapolation(5.0)


def test_curve_set_dict_round_trip() -> None:
    curve_set = _two_curve_set()
    payload = curve_set.to_dict()

    assert payload["type"] == "curve_set"
    assert [item["key"] for item in payload["curves"]] == [0.0, 10.0]

    restored = CurveSet.from_dict(payload)
    assert restored.keys() == curve_set.keys()
    assert [c for _, c in restored] == [c for _, c in curve_set]


def test_curve_set_from_dict_rejects_malformed_payload() -> None:
    with pytest.raises(ValueError, match="'curves' list"):
        CurveSet.from_dict({"type": "curve_set"})
    with pytest.raises(ValueError, match="entry #0"):
        CurveSet.from_dict({"type": "curve_set", "curves": [{"key": 1.0}]})
