"""Math kernel for the block tree.

Provides:
    - Precision constants shared by geometry, emission and the optimizer
    - 2D vector helpers on plain ``(x, y)`` tuples
    - Rotation with an explicit near-zero-magnitude guard
    - Degree wrapping / snapping helpers
    - Angle-in-arc membership and point-to-angle conversion
    - Segment intersection

All angles are in degrees unless a name says otherwise.  Vectors are
plain tuples so they can be stored on frozen records and compared
directly in tests.
"""

from __future__ import annotations

import math
from typing import Sequence

Vec2 = tuple[float, float]
Vec3 = tuple[float, float, float]

PRECISION = 0.00001
TOLERANCE = 0.00001
ANGULAR_PRECISION = 0.0001
INCH2MM = 25.4
MM2INCH = 1.0 / INCH2MM

# Sentinel used for "tool position unknown".
FLT_MAX = 3.402823466e38


# ---------------------------------------------------------------------------
# Scalars
# ---------------------------------------------------------------------------


def is_equal(a: float, b: float) -> bool:
    """Return True when *a* and *b* differ by less than ``PRECISION``."""
    return math.fabs(a - b) < PRECISION


def wrap_to_360(angle: float) -> float:
    """Wrap *angle* into ``[0, 360)``."""
    angle = math.fmod(angle, 360.0)
    if angle < 0.0:
        angle += 360.0
    return angle


def snap_to_360(angle: float) -> float:
    """Collapse angles within ``ANGULAR_PRECISION`` of 0 or 360 onto 0."""
    if angle > 360.0 - ANGULAR_PRECISION:
        angle = 0.0
    if angle < ANGULAR_PRECISION:
        angle = 0.0
    return angle


def snap_to_720(angle: float) -> float:
    """Snap sweeps that are almost a full turn onto exactly +/-360."""
    if angle > 360.0 - ANGULAR_PRECISION:
        angle = 360.0
    if angle < -360.0 + ANGULAR_PRECISION:
        angle = -360.0
    return angle


def wrap_signed(angle: float) -> float:
    """Fold an angle difference into ``[-180, 180]``."""
    if angle > 180.0:
        angle -= 360.0
    if angle < -180.0:
        angle += 360.0
    return angle


# ---------------------------------------------------------------------------
# Vectors
# ---------------------------------------------------------------------------


def vec2(v: Sequence[float]) -> Vec2:
    """Coerce any two-element sequence to a float tuple."""
    return (float(v[0]), float(v[1]))


def add(a: Sequence[float], b: Sequence[float]) -> Vec2:
    return (a[0] + b[0], a[1] + b[1])


def sub(a: Sequence[float], b: Sequence[float]) -> Vec2:
    return (a[0] - b[0], a[1] - b[1])


def mul(a: Sequence[float], s: float) -> Vec2:
    return (a[0] * s, a[1] * s)


def dot(a: Sequence[float], b: Sequence[float]) -> float:
    return a[0] * b[0] + a[1] * b[1]


def magnitude(v: Sequence[float]) -> float:
    return math.sqrt(v[0] * v[0] + v[1] * v[1])


def distance(a: Sequence[float], b: Sequence[float]) -> float:
    """Euclidean distance between two 2D points."""
    dx = a[0] - b[0]
    dy = a[1] - b[1]
    return math.sqrt(dx * dx + dy * dy)


def manhattan(a: Sequence[float], b: Sequence[float]) -> float:
    """Manhattan distance, used for cheap endpoint-joining tests."""
    return math.fabs(a[0] - b[0]) + math.fabs(a[1] - b[1])


def unit(v: Sequence[float]) -> Vec2:
    """Return *v* scaled to unit length.

    A zero vector is returned unchanged rather than raising, so callers
    working on degenerate segments do not need to special-case it.
    """
    n = magnitude(v)
    if n == 0.0:
        return (float(v[0]), float(v[1]))
    return (v[0] / n, v[1] / n)


def direction(angle: float) -> Vec2:
    """Unit vector pointing at *angle* degrees."""
    rad = math.radians(angle)
    return (math.cos(rad), math.sin(rad))


def rotate(pt: Sequence[float], angle: float) -> Vec2:
    """Rotate *pt* about the origin by *angle* degrees.

    Parameters
    ----------
    pt : sequence of float
        Point ``(x, y)``.
    angle : float
        Counter-clockwise rotation in degrees.

    Returns
    -------
    Vec2
        Rotated point.  Points closer to the origin than ``PRECISION``
        are returned unchanged; their polar angle is meaningless.
    """
    dist = math.sqrt(pt[0] * pt[0] + pt[1] * pt[1])
    if dist < PRECISION:
        return (float(pt[0]), float(pt[1]))

    ratio = max(-1.0, min(1.0, pt[1] / dist))
    theta = math.asin(ratio)
    if pt[0] < 0.0:
        theta += 2.0 * (math.pi / 2.0 - theta)
    if theta < 0.0:
        theta += 2.0 * math.pi
    theta += math.radians(angle)
    return (dist * math.cos(theta), dist * math.sin(theta))


def transform(pt: Sequence[float], rotation: float, origin: Sequence[float]) -> Vec2:
    """Place a local point: ``rotate(pt, rotation) + origin``."""
    x, y = rotate(pt, rotation)
    return (x + origin[0], y + origin[1])


def spin_about(pt: Sequence[float], datum: Sequence[float], angle: float) -> Vec2:
    """Rotate *pt* about *datum* by *angle* degrees."""
    return add(rotate(sub(pt, datum), angle), datum)


def flip_about(pt: Sequence[float], datum: Sequence[float], angle: float) -> Vec2:
    """Mirror *pt* through *datum*.

    ``angle == 0`` mirrors across the horizontal line through the datum
    (negates y); ``angle == 90`` across the vertical one (negates x).
    Other angles leave the point untouched.
    """
    x, y = float(pt[0]), float(pt[1])
    if is_equal(angle, 0.0):
        y = datum[1] - (y - datum[1])
    if is_equal(angle, 90.0):
        x = datum[0] - (x - datum[0])
    return (x, y)


# ---------------------------------------------------------------------------
# Angles
# ---------------------------------------------------------------------------


def angle_within_arc(start_angle: float, sweep_angle: float, test_angle: float) -> bool:
    """Return True when *test_angle* lies on the arc ``start + [0, sweep]``.

    Negative sweeps are normalised by swapping the interval ends.  The
    test is repeated with *test_angle* shifted by +/-360 so arcs that
    straddle the 0/360 boundary are still matched.
    """
    if sweep_angle < 0.0:
        begin = start_angle + sweep_angle
        end = start_angle
    else:
        begin = start_angle
        end = start_angle + sweep_angle

    if begin < 0.0:
        begin += 360.0
        end += 360.0

    lo = begin - ANGULAR_PRECISION
    hi = end + ANGULAR_PRECISION
    for candidate in (test_angle, test_angle - 360.0, test_angle + 360.0):
        if lo <= candidate <= hi:
            return True
    return False


def xy_to_angle(center: Sequence[float], point: Sequence[float]) -> float:
    """Polar angle of *point* around *center*, wrapped into ``[0, 360)``.

    Returns 0 when the two are closer than ``PRECISION``.
    """
    dx = point[0] - center[0]
    dy = point[1] - center[1]
    if math.sqrt(dx * dx + dy * dy) < PRECISION:
        return 0.0
    return wrap_to_360(math.degrees(math.atan2(dy, dx)))



# ---------------------------------------------------------------------------
# Segments
# ---------------------------------------------------------------------------


def segment_intersection(
    a0: Sequence[float], a1: Sequence[float], b0: Sequence[float], b1: Sequence[float],
) -> Vec2 | None:
    """Crossing point of segments ``a0-a1`` and ``b0-b1``.

    Returns ``None`` for parallel segments or when the crossing lies
    outside either of them.
    """
    da = sub(a1, a0)
    db = sub(b1, b0)
    denom = da[0] * db[1] - da[1] * db[0]
    if math.fabs(denom) < PRECISION:
        return None
    w = sub(b0, a0)
    t = (w[0] * db[1] - w[1] * db[0]) / denom
    u = (w[0] * da[1] - w[1] * da[0]) / denom
    if not (-PRECISION <= t <= 1.0 + PRECISION and -PRECISION <= u <= 1.0 + PRECISION):
        return None
    return (a0[0] + t * da[0], a0[1] + t * da[1])
