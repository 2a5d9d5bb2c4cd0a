from __future__ import annotations

import pytest

from proportion_curves import (
    BreakpointCurve,
    CurveInvariantError,
    FixedStepCurve,
    average,
    distance,
    merged_x_values,
    weighted_average,
)


def _fixed_pair() -> tuple[FixedStepCurve, FixedStepCurve]:
    c1 = FixedStepCurve(10.0, 10.0, [0.0, 0.6, 0.6, 0.6, 0.7, 1.0])
    c2 = FixedStepCurve(5.0, 3.0, [0.0, 0.2, 0.6, 0.7, 0.7, 1.0])
    return c1, c2


def test_distance_properties_with_midpoint_curve() -> None:
    c1, c2 = _fixed_pair()
    c3 = weighted_average([c1, c2], [0.5, 0.5])

    assert distance(c1, c1) == pytest.approx(0.0)
    assert distance(c1, c2) != 0.0
    assert distance(c1, c2) == pytest.approx(distance(c2, c1))

    # c3 lies exactly between c1 and c2
    assert distance(c1, c3) == pytest.approx(distance(c2, c3), abs=1e-4)
    assert distance(c1, c2) == pytest.approx(distance(c1, c3) + distance(c2, c3), abs=1e-4)

    for a, b in [(c1, c2), (c2, c1), (c1, c3), (c3, c1), (c3, c2), (c2, c3)]:
        assert distance(a, b) > 0.0


def test_distance_handles_crossing_segments() -> None:
    a = BreakpointCurve([(0.0, 0.0), (1.0, 0.5), (2.0, 0.5), (3.0, 1.0)])
    b = BreakpointCurve([(0.0, 0.0), (1.0, 0.0), (2.0, 1.0), (3.0, 1.0)])

    assert distance(a, b) == pytest.approx(0.75)
    assert distance(b, a) == pytest.approx(0.75)


def test_merged_x_values_is_sorted_union_without_duplicates() -> None:
    a = BreakpointCurve([(0.0, 0.0), (5.0, 0.5), (10.0, 1.0)])
    b = FixedStepCurve(5.0, 2.5, [0.0, 0.5, 1.0])

    assert merged_x_values([a, b]) == [0.0, 5.0, 7.5, 10.0]
    assert merged_x_values([a]) == [0.0, 5.0, 10.0]


def test_weighted_average_of_mixed_representations() -> None:
    a = BreakpointCurve([(0.0, 0.0), (10.0, 1.0)])
    b = FixedStepCurve(0.0, 5.0, [0.0, 0.8, 1.0])

    result = weighted_average([a, b], [1.0, 3.0])

    assert isinstance(result, BreakpointCurve)
    assert result.get_x_values() == [0.0, 5.0, 10.0]
    assert result.y_at_x(5.0) == pytest.approx(0.25 * 0.5 + 0.75 * 0.8, abs=1e-6)


def test_weighted_average_merges_breakpoints_that_round_together() -> None:
    # 0.1 + 2 * 0.1 and 0.3 differ in double precision but share one f32 value.
    a = FixedStepCurve(0.1, 0.1, [0.0, 0.2, 0.5, 0.8, 1.0])
    b = BreakpointCurve([(0.1, 0.0), (0.3, 0.5), (0.5, 1.0)])

    result = weighted_average([a, b], [0.5, 0.5])

    assert result.y_at_x(0.3) == pytest.approx(0.5, abs=1e-5)
    assert result.min_x() == pytest.approx(0.1)
    assert result.max_x() == pytest.approx(0.5)


def test_weighted_average_drops_collinear_points() -> None:
    line = BreakpointCurve([(0.0, 0.0), (5.0, 0.5), (10.0, 1.0)])

    result = average([line, line])

    assert result.get_values_as_pairs() == [(0.0, 0.0), (10.0, 1.0)]


def test_average_of_single_curve_keeps_its_shape() -> None:
    c = BreakpointCurve([(12.0, 0.0), (14.0, 0.4), (20.0, 0.4), (30.0, 0.7), (40.0, 1.0)])

    result = average([c])

    assert result == c


def test_weighted_average_rejects_bad_weights() -> None:
    c1, c2 = _fixed_pair()

    with pytest.raises(CurveInvariantError, match="must be the same"):
        weighted_average([c1, c2], [1.0])
    with pytest.raises(CurveInvariantError, match="at least one curve"):
        weighted_average([], [])
    with pytest.raises(CurveInvariantError, match="sum to zero"):
        weighted_average([c1, c2], [1.0, -1.0])
