from __future__ import annotations

import struct

import pytest

from proportion_curves import BreakpointCurve, CurveDecodeError, CurveInvariantError
from proportion_curves.codec import (
    COMPACT_HEADER_SIZE,
    max_points_for_bytes,
    pack_compact,
    quantize_unit,
    unpack_compact,
)


def _header(n: int, min_x: float = 0.0, max_x: float = 10.0, tag: int = 1) -> bytes:
    return struct.pack("<BffB", tag, min_x, max_x, n)


def _curve(n: int) -> BreakpointCurve:
    last = n - 1
    return BreakpointCurve([(float(i), (i / last) ** 2) for i in range(n)])


def test_header_is_ten_bytes() -> None:
    assert COMPACT_HEADER_SIZE == 10


@pytest.mark.parametrize(
    ("value", "expected"),
    [(0.0, 0), (1.0, 255), (0.5, 128), (0.2, 51), (-0.5, 0), (1.5, 255)],
)
def test_quantize_unit_rounds_half_up_and_clamps(value: float, expected: int) -> None:
    assert quantize_unit(value) == expected


def test_max_points_for_bytes() -> None:
    assert max_points_for_bytes(120) == 55
    assert max_points_for_bytes(15) == 2
    assert max_points_for_bytes(10_000) == 255


def test_encode_midpoint_layout() -> None:
    c = BreakpointCurve([(0.0, 0.0), (50.0, 0.5), (100.0, 1.0)])
    data = c.encode()

    assert len(data) == COMPACT_HEADER_SIZE + 2 * 3
    tag, min_x, max_x, n = struct.unpack_from("<BffB", data)
    assert (tag, min_x, max_x, n) == (1, 0.0, 100.0, 3)
    assert list(data[COMPACT_HEADER_SIZE:]) == [0, 0, 128, 128, 255, 255]

    decoded = BreakpointCurve.decode(data)
    assert decoded.y_at_x(50.0) == pytest.approx(0.5, abs=1 / 255)


def test_decode_reproduces_points_within_quantization_error() -> None:
    original = BreakpointCurve(
        [(12.0, 0.0), (13.0, 0.0), (14.0, 0.4), (16.0, 0.4), (20.0, 0.4), (30.0, 0.7), (40.0, 1.0)]
    )
    decoded = BreakpointCurve.decode(original.encode())

    span = original.max_x() - original.min_x()
    assert len(decoded) == len(original)
    for (ox, oy), (dx, dy) in zip(original.points, decoded.points):
        assert dx == pytest.approx(ox, abs=span / 255)
        assert dy == pytest.approx(oy, abs=1 / 255)
    assert decoded.min_x() == 12.0
    assert decoded.max_x() == 40.0


def test_decode_honours_requested_numeric_types() -> None:
    data = BreakpointCurve([(0.0, 0.0), (50.0, 0.5), (100.0, 1.0)]).encode()
    decoded = BreakpointCurve.decode(data, x_type="f64", y_type="u1f15")
    assert decoded.y_type.name == "u1f15"
    assert decoded.x_type.name == "f64"


def test_decode_collapses_repeated_x_bytes_to_first_occurrence() -> None:
    data = _header(4) + bytes([0, 0, 100, 50, 100, 60, 255, 255])
    points = unpack_compact(data)

    assert len(points) == 3
    assert points[1] == pytest.approx((100 / 255 * 10.0, 50 / 255))


def test_decode_keeps_closing_point_when_it_repeats_an_x_byte() -> None:
    data = _header(3) + bytes([0, 0, 255, 200, 255, 255])
    points = unpack_compact(data)

    assert points == [(0.0, 0.0), (10.0, 1.0)]
    assert len(BreakpointCurve.decode(data)) == 2


@pytest.mark.parametrize(
    ("data", "message"),
    [
        (b"\x01\x00", "header needs"),
        (_header(2, tag=2) + bytes([0, 0, 255, 255]), "format tag"),
        (_header(3) + bytes([0, 0, 255, 255]), "too short"),
        (_header(2) + bytes([7, 0, 7, 255]), "distinct points"),
        (_header(0), "distinct points"),
    ],
)
def test_decode_rejects_malformed_buffers(data: bytes, message: str) -> None:
    with pytest.raises(CurveDecodeError, match=message) as exc_info:
        unpack_compact(data)
    assert exc_info.value.size == len(data)


def test_pack_rejects_unencodable_point_lists() -> None:
    with pytest.raises(CurveInvariantError):
        pack_compact([(0.0, 0.0)])
    with pytest.raises(CurveInvariantError, match="max_x > min_x"):
        pack_compact([(5.0, 0.0), (5.0, 1.0)])
    with pytest.raises(CurveInvariantError, match="at most 255"):
        _curve(300).encode()


def test_encode_limited_returns_full_encoding_when_it_fits() -> None:
    c = _curve(20)
    assert c.encode_limited(10_000) == c.encode()


def test_encode_limited_simplifies_a_copy_to_fit_budget() -> None:
    c = _curve(100)
    data = c.encode_limited(60)

    assert len(data) <= 60
    assert data[9] == 25
    assert len(c) == 100
    decoded = BreakpointCurve.decode(data)
    assert len(decoded) <= 25
    assert decoded.y_at_x(50.0) == pytest.approx(c.y_at_x(50.0), abs=0.05)


def test_encode_limited_caps_at_255_points() -> None:
    data = _curve(300).encode_limited(10_000)
    assert data[9] == 255
    assert len(data) == COMPACT_HEADER_SIZE + 2 * 255


def test_encode_limited_rejects_budget_below_two_points() -> None:
    with pytest.raises(CurveInvariantError):
        _curve(5).encode_limited(13)
