"""
Geometric shape classification of ink strokes.

Scores each stroke against a fixed vocabulary (circle, rectangle, triangle,
line, arrow, star) using coordinate geometry only, then groups nearby
strokes into multi-stroke shapes.
"""

import math

from inkfusion.config import ShapeConfig
from inkfusion.models import BoundingBox, ContentType, ShapeMatch, compute_bbox, to_xy
from inkfusion.shapes.geometry import (
    count_corners,
    count_direction_changes,
    distance,
    extract_features,
    is_closed,
    perimeter,
    point_to_segment_distance,
    polygon_area,
    triangle_area_score,
)
from inkfusion.tracer import get_tracer, trace


SHAPE_TYPES = ("circle", "rectangle", "triangle", "line", "arrow", "star")


def _clamp(value):
    return min(1.0, max(0.0, value))


def _ratio(a, b):
    """min(a, b) / max(a, b), 0 when both are zero."""
    high = max(a, b)
    if high <= 0:
        return 0.0
    return min(a, b) / high


def circle_confidence(closed, width, height, area, perim):
    if not closed:
        return 0.0
    side_ratio = _ratio(width, height)
    expected_perimeter = 2 * math.pi * math.sqrt(area / math.pi)
    return _clamp(0.6 * side_ratio + 0.4 * _ratio(perim, expected_perimeter))


def rectangle_confidence(closed, corner_count, width, height, area, perim):
    if not closed:
        return 0.0
    if corner_count < 3 or corner_count > 6:
        return 0.2

    corner_score = {4: 1.0, 3: 0.8, 5: 0.8}.get(corner_count, 0.6)
    fill = _ratio(area, width * height)
    perimeter_ratio = _ratio(perim, 2 * (width + height))

    if fill > 0.85:
        return _clamp((0.6 * fill + 0.2 * perimeter_ratio + 0.2 * corner_score) * 1.1)
    return _clamp(0.4 * fill + 0.3 * perimeter_ratio + 0.3 * corner_score)


def triangle_confidence(closed, corner_count, width, height, area):
    if not closed:
        return 0.0
    if corner_count < 2 or corner_count > 4:
        return 0.2

    corner_score = {3: 1.0, 2: 0.7, 4: 0.6}[corner_count]
    area_score = triangle_area_score(area, width * height)
    confidence = 0.6 * corner_score + 0.4 * area_score
    if corner_count == 3 and area_score > 0.8:
        confidence *= 1.1
    return _clamp(confidence)


def line_confidence(points, min_length=10.0):
    """
    Straightness of a point sequence.

    1 - avg_deviation / (0.1 * chord_length), penalized when the worst
    point strays more than 30% of the chord and boosted past 50 units.
    """
    pts = to_xy(points)
    if len(pts) < 2:
        return 0.0
    if len(pts) == 2:
        return 1.0

    start, end = pts[0], pts[-1]
    length = distance(start, end)
    if length == 0:
        return 0.0
    if length < min_length:
        return 0.3

    deviations = [point_to_segment_distance(p, start, end) for p in pts]
    avg_deviation = sum(deviations) / len(deviations)

    confidence = _clamp(1 - avg_deviation / (0.1 * length))
    if max(deviations) > 0.3 * length:
        confidence *= 0.7
    if length > 50:
        confidence = min(1.0, confidence * 1.2)
    return confidence


def arrow_confidence(points, min_length=10.0):
    """Straight shaft over the first 75% of points plus a turning head."""
    pts = to_xy(points)
    if len(pts) < 5:
        return 0.0

    shaft_end = int(len(pts) * 0.75)
    shaft = pts[:shaft_end]
    if len(shaft) < 3:
        return 0.2

    shaft_confidence = line_confidence(shaft, min_length=min_length)
    if shaft_confidence < 0.6:
        return shaft_confidence * 0.3

    head = pts[max(0, len(pts) - int(len(pts) * 0.4)):]
    changes = count_direction_changes(head)
    shaft_length = distance(pts[0], pts[shaft_end - 1])

    length_score = min(1.0, shaft_length / 50)
    head_score = 1.0 if changes >= 2 else 0.7 if changes == 1 else 0.2

    confidence = 0.5 * shaft_confidence + 0.3 * head_score + 0.2 * length_score
    if changes >= 2 and shaft_confidence > 0.7 and shaft_length > 30:
        confidence = min(1.0, confidence * 1.2)
    return _clamp(confidence)


def star_confidence(closed, corner_count):
    if corner_count < 4:
        return 0.0
    if 5 <= corner_count <= 12:
        confidence = 0.6
    elif corner_count > 12:
        confidence = 0.4
    else:
        confidence = 0.3
    if closed:
        confidence += 0.2
    return _clamp(confidence)


def _corner_kwargs(config):
    return {
        "angle_threshold": config.corner_angle_threshold,
        "sample_divisor": config.corner_sample_divisor,
        "min_spacing": config.corner_min_spacing,
    }


def score_shapes(points, config=None):
    """
    Score one stroke against every shape type.

    Returns a dict of shape type -> confidence in [0, 1]. Strokes with
    fewer than 3 points score 0 everywhere.
    """
    config = config or ShapeConfig()
    pts = to_xy(points)
    if len(pts) < 3:
        return {shape: 0.0 for shape in SHAPE_TYPES}

    closed = is_closed(pts, config.closure_min_gap, config.closure_segment_factor)
    corners = count_corners(pts, closed=closed, **_corner_kwargs(config))
    min_x, min_y, max_x, max_y = compute_bbox(pts)
    width = max_x - min_x
    height = max_y - min_y
    area = polygon_area(pts)
    perim = perimeter(pts)

    return {
        "circle": circle_confidence(closed, width, height, area, perim),
        "rectangle": rectangle_confidence(closed, corners, width, height, area, perim),
        "triangle": triangle_confidence(closed, corners, width, height, area),
        "line": line_confidence(pts, config.min_line_length),
        "arrow": arrow_confidence(pts, config.min_line_length),
        "star": star_confidence(closed, corners),
    }


def classify_stroke(stroke, config=None):
    """
    Classify a single stroke.

    Returns a ShapeMatch, or None when nothing confident is found and the
    stroke is open. Closed strokes without a confident match become
    polygon-<corners> (3+ corners) or freeform.
    """
    config = config or ShapeConfig()
    pts = stroke.coords()
    if len(pts) < 3:
        return None

    closed = is_closed(pts, config.closure_min_gap, config.closure_segment_factor)
    features = extract_features(pts, closed=closed, corner_kwargs=_corner_kwargs(config))
    scores = score_shapes(pts, config)

    # first entry wins ties
    best_type = max(SHAPE_TYPES, key=lambda shape: scores[shape])
    best_confidence = scores[best_type]

    if best_confidence > config.accept_confidence:
        shape_type, confidence = best_type, best_confidence
    elif closed:
        if features.corner_count >= 3:
            shape_type, confidence = f"polygon-{features.corner_count}", 0.6
        else:
            shape_type, confidence = "freeform", 0.5
    else:
        return None

    return ShapeMatch(
        type=shape_type,
        confidence=confidence,
        stroke_ids=[stroke.id],
        bounding_box=BoundingBox.from_list(compute_bbox(pts)),
        features=features,
    )


def _bbox_center(stroke):
    min_x, min_y, max_x, max_y = compute_bbox(stroke.coords())
    return ((min_x + max_x) / 2, (min_y + max_y) / 2)


def group_multi_stroke(strokes, config=None):
    """
    Cluster strokes whose bbox centers lie near a reference stroke's center.

    Each cluster of two or more strokes is reported as multi-stroke-shape
    at a fixed confidence, without sub-classification.
    """
    config = config or ShapeConfig()
    candidates = [s for s in strokes if s.points]
    centers = {s.id: _bbox_center(s) for s in candidates}
    processed = set()
    groups = []

    for ref in candidates:
        if ref.id in processed:
            continue

        cluster = [ref] + [
            s for s in candidates
            if s.id != ref.id
            and distance(centers[ref.id], centers[s.id]) <= config.multi_stroke_distance
        ]
        processed.update(s.id for s in cluster)
        if len(cluster) < 2:
            continue

        all_points = [p for s in cluster for p in s.coords()]
        groups.append(ShapeMatch(
            type="multi-stroke-shape",
            confidence=config.multi_stroke_confidence,
            stroke_ids=[s.id for s in cluster],
            bounding_box=BoundingBox.from_list(compute_bbox(all_points)),
            features=extract_features(all_points, closed=False),
        ))

    return groups


@trace(label="detect_shapes")
def detect_shapes(strokes, config=None):
    """
    Detect single-stroke shapes and multi-stroke clusters.

    Returns a list of ShapeMatch in pixel space: single-stroke matches in
    stroke order followed by multi-stroke clusters.
    """
    tracer = get_tracer()
    config = config or ShapeConfig()

    shapes = []
    for stroke in strokes:
        match = classify_stroke(stroke, config)
        if match is not None:
            shapes.append(match)

    multi = group_multi_stroke(strokes, config) if len(strokes) > 1 else []

    tracer.event(f"Shapes: {len(shapes)} single-stroke, {len(multi)} multi-stroke")
    return shapes + multi


def classify_content(strokes, config=None):
    """
    Guess whether the ink is handwriting or a drawing.

    Many strokes or widely varying stroke lengths suggest text; a confident
    shape suggests a drawing.
    """
    if not strokes:
        return ContentType.UNKNOWN
    if len(strokes) > 5:
        return ContentType.TEXT

    lengths = [len(s.points) for s in strokes]
    mean = sum(lengths) / len(lengths)
    if mean > 0:
        variance = sum((n - mean) ** 2 for n in lengths) / len(lengths)
        if variance / (mean * mean) > 0.5 and len(strokes) > 2:
            return ContentType.TEXT

    best = max(max(score_shapes(s.coords(), config).values()) for s in strokes)
    if best > 0.7:
        return ContentType.DRAWING

    return ContentType.DRAWING if len(strokes) <= 2 else ContentType.TEXT
