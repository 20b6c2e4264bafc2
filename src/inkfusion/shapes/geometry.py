"""
Coordinate geometry primitives for stroke classification.

Every function here is total: short or degenerate input produces zeros or
a safe default instead of raising.
"""

import math

import numpy as np

from inkfusion.models import GeometricFeatures, Point, compute_bbox, compute_centroid, to_xy


def distance(a, b):
    return math.hypot(b[0] - a[0], b[1] - a[1])


def path_length(points):
    """Sum of consecutive segment lengths (no closing segment)."""
    if len(points) < 2:
        return 0.0
    arr = np.asarray(to_xy(points), dtype=float)
    return float(np.linalg.norm(np.diff(arr, axis=0), axis=1).sum())


def mean_segment_length(points):
    if len(points) < 2:
        return 0.0
    return path_length(points) / (len(points) - 1)


def is_closed(points, min_gap=20.0, segment_factor=2.0):
    """
    A stroke is closed when its endpoints are nearer than
    max(min_gap, segment_factor * mean segment length).
    """
    if len(points) < 4:
        return False
    pts = to_xy(points)
    threshold = max(min_gap, segment_factor * mean_segment_length(pts))
    return distance(pts[0], pts[-1]) < threshold


def polygon_area(points):
    """Shoelace area, always non-negative."""
    if len(points) < 3:
        return 0.0
    arr = np.asarray(to_xy(points), dtype=float)
    x = arr[:, 0]
    y = arr[:, 1]
    return float(abs(np.dot(x, np.roll(y, -1)) - np.dot(np.roll(x, -1), y)) / 2.0)


def perimeter(points):
    """Path length plus the closing segment back to the first point."""
    if len(points) < 2:
        return 0.0
    pts = to_xy(points)
    return path_length(pts) + distance(pts[-1], pts[0])


def point_to_segment_distance(point, start, end):
    """
    Distance from point to the segment start-end.

    Projections outside the segment snap to the nearer endpoint; a
    zero-length segment falls back to plain point distance.
    """
    dx = end[0] - start[0]
    dy = end[1] - start[1]
    length_sq = dx * dx + dy * dy
    if length_sq == 0:
        return distance(point, start)

    t = ((point[0] - start[0]) * dx + (point[1] - start[1]) * dy) / length_sq
    t = min(1.0, max(0.0, t))
    return distance(point, (start[0] + t * dx, start[1] + t * dy))


def _turning_angle(prev, curr, nxt):
    """
    Angle between the incoming and outgoing directions at curr.

    Equivalent to how far the interior angle prev-curr-next (law of
    cosines) deviates from a straight line. None for zero-length sides.
    """
    a = distance(prev, curr)
    b = distance(curr, nxt)
    if a == 0 or b == 0:
        return None
    c = distance(prev, nxt)
    cos_interior = (a * a + b * b - c * c) / (2 * a * b)
    interior = math.acos(min(1.0, max(-1.0, cos_interior)))
    return math.pi - interior


def _strip_closing_duplicates(pts):
    ring = list(pts)
    while len(ring) > 1 and distance(ring[0], ring[-1]) < 1e-9:
        ring.pop()
    return ring


def detect_corners(points, closed=False, angle_threshold=0.5, sample_divisor=50,
                   min_spacing=10.0):
    """
    Return the indices of corner points found by sampled turning angles.

    Points are sampled every max(1, N // sample_divisor) entries. A sample
    is a corner when the turning angle exceeds angle_threshold radians and
    it lies at least min_spacing away from every accepted corner. Closed
    strokes also test the start/end junction.
    """
    pts = to_xy(points)
    if len(pts) < 3:
        return []

    if closed:
        pts = _strip_closing_duplicates(pts)
        if len(pts) < 3:
            return []

    n = len(pts)
    step = max(1, n // sample_divisor)
    corners = []

    def accept(index, prev, nxt):
        angle = _turning_angle(prev, pts[index], nxt)
        if angle is None or angle <= angle_threshold:
            return
        if any(distance(pts[index], pts[c]) < min_spacing for c in corners):
            return
        corners.append(index)

    if closed:
        # wrap around so the start/end junction is tested too
        for i in range(0, n, step):
            accept(i, pts[(i - step) % n], pts[(i + step) % n])
    else:
        for i in range(step, n - step, step):
            accept(i, pts[i - step], pts[i + step])

    return corners


def count_corners(points, closed=False, **kwargs):
    return len(detect_corners(points, closed=closed, **kwargs))


def count_direction_changes(points, cos_threshold=0.7):
    """
    Count windowed direction changes sharper than acos(cos_threshold).

    The window is max(2, N // 8) points wide.
    """
    pts = to_xy(points)
    if len(pts) < 4:
        return 0

    window = max(2, len(pts) // 8)
    changes = 0
    for i in range(window, len(pts) - window, window):
        before = (pts[i][0] - pts[i - window][0], pts[i][1] - pts[i - window][1])
        after = (pts[i + window][0] - pts[i][0], pts[i + window][1] - pts[i][1])
        len_before = math.hypot(*before)
        len_after = math.hypot(*after)
        if len_before == 0 or len_after == 0:
            continue
        cos = (before[0] * after[0] + before[1] * after[1]) / (len_before * len_after)
        if cos < cos_threshold:
            changes += 1
    return changes


def triangle_area_score(area, bbox_area):
    """Closeness of area / bbox_area to the 0.5 expected of a triangle."""
    if bbox_area <= 0:
        return 0.0
    return 1.0 - min(1.0, abs(area / bbox_area - 0.5) * 2)


def extract_features(points, closed=None, corner_kwargs=None):
    """Compute GeometricFeatures for a point sequence."""
    pts = to_xy(points)
    cx, cy = compute_centroid(pts)
    min_x, min_y, max_x, max_y = compute_bbox(pts)
    width = max_x - min_x
    height = max_y - min_y
    bbox_area = width * height

    if closed is None:
        closed = is_closed(pts)

    area = polygon_area(pts)
    perim = perimeter(pts)
    circularity = 4 * math.pi * area / (perim * perim) if perim > 0 else 0.0
    rectangularity = area / bbox_area if bbox_area > 0 else 0.0

    return GeometricFeatures(
        centroid=Point(x=cx, y=cy),
        area=area,
        perimeter=perim,
        circularity=min(1.0, circularity),
        rectangularity=min(1.0, rectangularity),
        triangularity=triangle_area_score(area, bbox_area),
        corner_count=count_corners(pts, closed=closed, **(corner_kwargs or {})),
        aspect_ratio=height / width if width > 0 else 1.0,
    )
