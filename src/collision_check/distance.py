"""Closest-distance primitives for swept sphere checks."""

import numpy as np

EPS = 1e-12


def point_segment_distance(
    p: np.ndarray, a: np.ndarray, b: np.ndarray,
) -> float:
    """Distance from point *p* to segment a-b (a == b is a point)."""
    ab = b - a
    length_sq = float(ab @ ab)
    if length_sq <= EPS:
        return float(np.linalg.norm(p - a))
    t = min(max(float((p - a) @ ab) / length_sq, 0.0), 1.0)
    return float(np.linalg.norm(p - (a + t * ab)))


def segment_distance(
    p1: np.ndarray, p2: np.ndarray,
    p3: np.ndarray, p4: np.ndarray,
) -> float:
    """Minimum distance between segment p1-p2 and segment p3-p4.

    The squared distance is convex in the two segment parameters. If its
    unconstrained minimum lies inside the unit square it is the answer;
    otherwise the minimum is on the square's border, where one segment is
    reduced to an endpoint.
    """
    u = p2 - p1
    v = p4 - p3
    w = p1 - p3

    uu = float(u @ u)
    vv = float(v @ v)
    uv = float(u @ v)
    det = uu * vv - uv * uv

    # Non-parallel, non-degenerate segments
    if det > EPS * max(uu * vv, EPS):
        uw = float(u @ w)
        vw = float(v @ w)
        s = (uv * vw - vv * uw) / det
        t = (uu * vw - uv * uw) / det
        if 0.0 <= s <= 1.0 and 0.0 <= t <= 1.0:
            return float(np.linalg.norm(w + s * u - t * v))

    return min(
        point_segment_distance(p1, p3, p4),
        point_segment_distance(p2, p3, p4),
        point_segment_distance(p3, p1, p2),
        point_segment_distance(p4, p1, p2),
    )
