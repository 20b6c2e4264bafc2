"""
Contour simplification using the Ramer-Douglas-Peucker algorithm.

Reduces the number of points while keeping every dropped point within
epsilon of the simplified outline.
"""

import numpy as np

from inkfusion.models import to_xy

# Below this, floating point noise on collinear points is treated as zero.
_COLLINEAR_TOLERANCE = 1e-9


def simplify_contour(points, epsilon=0.005):
    """
    Simplify a point sequence with RDP.

    Args:
        points: list of (x, y) pairs or Point models
        epsilon: maximum perpendicular distance a dropped point may have

    Returns:
        list of (x, y) tuples, never longer than the input. Collinear input
        collapses to its two endpoints.
    """
    pts = to_xy(points)
    if len(pts) <= 2:
        return pts

    keep = _rdp_keep_mask(np.asarray(pts, dtype=float), max(0.0, epsilon))
    return [p for p, kept in zip(pts, keep) if kept]


def _rdp_keep_mask(points, epsilon):
    """
    Iterative RDP. Returns a boolean mask of retained points.

    Splitting at the farthest point and keeping both halves is the same as
    recursing and joining the halves without the shared point twice.
    """
    n = len(points)
    keep = np.zeros(n, dtype=bool)
    keep[0] = True
    keep[-1] = True

    stack = [(0, n - 1)]
    while stack:
        first, last = stack.pop()
        if last - first < 2:
            continue

        distances = _perpendicular_distances(points[first + 1:last], points[first], points[last])
        max_idx = int(np.argmax(distances))
        if distances[max_idx] > epsilon + _COLLINEAR_TOLERANCE:
            split = first + 1 + max_idx
            keep[split] = True
            stack.append((first, split))
            stack.append((split, last))

    return keep


def _perpendicular_distances(points, start, end):
    """
    Distance from each point to the infinite line through start and end.

    A zero-length chord falls back to direct distance from start.
    """
    line_vec = end - start
    line_len = np.linalg.norm(line_vec)

    if line_len == 0:
        return np.linalg.norm(points - start, axis=1)

    rel = points - start
    cross = rel[:, 0] * line_vec[1] - rel[:, 1] * line_vec[0]
    return np.abs(cross) / line_len
