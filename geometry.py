# geometry.py
"""
Plain 2D helpers shared by the layout model and the simulator.

Points are (x, y) tuples of floats. Nothing here keeps state.
"""

import math
from typing import Iterable, Tuple

Vec = Tuple[float, float]

EPS = 1e-9


def add(a: Vec, b: Vec) -> Vec:
    return (a[0] + b[0], a[1] + b[1])


def sub(a: Vec, b: Vec) -> Vec:
    return (a[0] - b[0], a[1] - b[1])


def scale(v: Vec, k: float) -> Vec:
    return (v[0] * k, v[1] * k)


def dot(a: Vec, b: Vec) -> float:
    return a[0] * b[0] + a[1] * b[1]


def cross(a: Vec, b: Vec) -> float:
    return a[0] * b[1] - a[1] * b[0]


def length(v: Vec) -> float:
    return math.hypot(v[0], v[1])


def distance(a: Vec, b: Vec) -> float:
    return math.hypot(a[0] - b[0], a[1] - b[1])


def normalize(v: Vec) -> Vec:
    n = length(v)
    if n < EPS:
        return (0.0, 0.0)
    return (v[0] / n, v[1] / n)


def heading(v: Vec) -> float:
    return math.atan2(v[1], v[0])


def from_heading(angle: float, magnitude: float = 1.0) -> Vec:
    return (math.cos(angle) * magnitude, math.sin(angle) * magnitude)


def point_along(start: Vec, end: Vec, offset: float) -> Vec:
    """
    Point at `offset` units from `start` towards `end`.
    A zero-length segment returns `start`.
    """
    direction = normalize(sub(end, start))
    return add(start, scale(direction, offset))


def point_segment_distance(p: Vec, a: Vec, b: Vec) -> float:
    """Shortest distance from point p to the closed segment a-b."""
    ab = sub(b, a)
    denom = dot(ab, ab)
    if denom < EPS:
        return distance(p, a)
    t = dot(sub(p, a), ab) / denom
    t = max(0.0, min(1.0, t))
    closest = add(a, scale(ab, t))
    return distance(p, closest)


def segment_intersection_params(p1: Vec, p2: Vec, p3: Vec, p4: Vec):
    """
    Parameters (t, u) of the intersection of the lines through p1-p2 and p3-p4,
    where the point is p1 + t (p2 - p1) = p3 + u (p4 - p3).

    Returns None for parallel (or degenerate) segments.
    """
    r = sub(p2, p1)
    s = sub(p4, p3)
    denom = cross(r, s)
    if abs(denom) < 1e-3:
        return None
    qp = sub(p3, p1)
    t = cross(qp, s) / denom
    u = cross(qp, r) / denom
    return t, u


def segments_intersect(p1: Vec, p2: Vec, p3: Vec, p4: Vec) -> bool:
    """True when the closed segments p1-p2 and p3-p4 cross or touch."""
    params = segment_intersection_params(p1, p2, p3, p4)
    if params is None:
        return False
    t, u = params
    return 0.0 <= t <= 1.0 and 0.0 <= u <= 1.0


def has_line_of_sight(
    observer: Vec,
    target: Vec,
    walls: Iterable[Tuple[Vec, Vec]],
    tolerance: float = 1e-6,
) -> bool:
    """
    True when no wall segment blocks the sight line observer -> target.

    A wall that only touches the sight line at the observer itself does not
    block it: a customer standing in a doorway lies on the wall line.
    """
    for a, b in walls:
        params = segment_intersection_params(observer, target, a, b)
        if params is None:
            continue
        t, u = params
        if tolerance < t <= 1.0 and 0.0 <= u <= 1.0:
            return False
    return True


def clamp_point(p: Vec, width: float, height: float) -> Vec:
    return (max(0.0, min(p[0], width)), max(0.0, min(p[1], height)))
