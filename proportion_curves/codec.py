"""Compact fixed-layout byte encoding for breakpoint curves.

Layout (little endian)::

    byte 0        format tag, always 1
    bytes 1-4     min_x as float32
    bytes 5-8     max_x as float32
    byte 9        point count n (0-255)
    bytes 10+2i   x_byte of point i, (x - min_x) / (max_x - min_x) scaled to 0..255
    bytes 11+2i   y_byte of point i, y scaled to 0..255

Both axes are quantised with round-half-up, so ``(0, 100)`` with the point
``(50, 0.5)`` stores ``x_byte = 128`` and ``y_byte = 128``.
"""

from __future__ import annotations

import math
import struct
from typing import Sequence

from .errors import CurveDecodeError, CurveInvariantError
from .numeric import F32

COMPACT_FORMAT_TAG = 1
COMPACT_MAX_POINTS = 255
_HEADER = struct.Struct("<BffB")
COMPACT_HEADER_SIZE = _HEADER.size
_LEVELS = 255


def quantize_unit(value: float) -> int:
    """Map a fraction in [0, 1] onto one of 256 byte levels."""

    return min(_LEVELS, max(0, math.floor(value * _LEVELS + 0.5)))


def max_points_for_bytes(max_bytes: int) -> int:
    return min(COMPACT_MAX_POINTS, (max_bytes - COMPACT_HEADER_SIZE) // 2)


def pack_compact(points: Sequence[tuple[float, float]]) -> bytes:
    n = len(points)
    if n < 2:
        raise CurveInvariantError("compact encoding needs at least two points")
    if n > COMPACT_MAX_POINTS:
        raise CurveInvariantError(
            f"compact encoding supports at most {COMPACT_MAX_POINTS} points, curve has {n}"
        )

    min_x = F32.quantize(points[0][0])
    max_x = F32.quantize(points[-1][0])
    span = max_x - min_x
    if not span > 0.0:
        raise CurveInvariantError(f"compact encoding needs max_x > min_x, got {min_x}..{max_x}")

    out = bytearray(_HEADER.pack(COMPACT_FORMAT_TAG, min_x, max_x, n))
    for x, y in points:
        out.append(quantize_unit((x - min_x) / span))
        out.append(quantize_unit(y))
    return bytes(out)


def unpack_compact(data: bytes | bytearray | memoryview) -> list[tuple[float, float]]:
    """Decode a compact buffer back into canonical ``(x, y)`` pairs.

    Consecutive points sharing an x byte collapse onto the first of them,
    except that the closing point of the buffer always survives since it
    carries ``y = 1``. The result can therefore be shorter than ``n``.
    """

    buf = bytes(data)
    if len(buf) < COMPACT_HEADER_SIZE:
        raise CurveDecodeError(
            f"compact buffer has {len(buf)} bytes, header needs {COMPACT_HEADER_SIZE}",
            size=len(buf),
        )
    tag, min_x, max_x, n = _HEADER.unpack_from(buf)
    if tag != COMPACT_FORMAT_TAG:
        raise CurveDecodeError(f"unsupported compact format tag {tag}", size=len(buf))
    expected = COMPACT_HEADER_SIZE + 2 * n
    if len(buf) < expected:
        raise CurveDecodeError(
            f"compact buffer too short for {n} points: {len(buf)} < {expected} bytes",
            size=len(buf),
        )

    span = max_x - min_x
    points: list[tuple[float, float]] = []
    previous_x_byte = -1
    for i in range(n):
        x_byte = buf[COMPACT_HEADER_SIZE + 2 * i]
        y_byte = buf[COMPACT_HEADER_SIZE + 2 * i + 1]
        point = (min_x + x_byte / _LEVELS * span, y_byte / _LEVELS)
        if x_byte == previous_x_byte:
            if i == n - 1:
                points[-1] = point
            continue
        points.append(point)
        previous_x_byte = x_byte

    if len(points) < 2:
        raise CurveDecodeError(
            f"compact buffer decodes to {len(points)} distinct points", size=len(buf)
        )
    return points
