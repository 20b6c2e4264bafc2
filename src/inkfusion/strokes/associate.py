"""
Stroke association.

Finds the ink that belongs to a reported position, computes union boxes
over stroke sets, and clusters connected strokes into regions that a sketch
classifier can look at.
"""

import math

import networkx as nx
import numpy as np
from shapely.geometry import box

from inkfusion.config import AssociationConfig
from inkfusion.models import BoundingBox, SketchRegion, Stroke, compute_bbox
from inkfusion.tracer import get_tracer, trace


def stroke_bounding_box(stroke, pad_by_size=False, default_size=4.0):
    """
    Pixel-space box of one stroke, or None for a stroke without points.

    With pad_by_size the box grows by half the stroke's drawn size on every
    side so the ink width is covered.
    """
    if not stroke.points:
        return None
    min_x, min_y, max_x, max_y = compute_bbox(stroke.points)
    pad = (stroke.size or default_size) / 2 if pad_by_size else 0.0
    return BoundingBox.from_corners(min_x - pad, min_y - pad, max_x + pad, max_y + pad)


def union_bounding_box(strokes, pad_by_size=False, default_size=4.0):
    """Componentwise min/max over all points of all strokes. None if empty."""
    boxes = [stroke_bounding_box(s, pad_by_size, default_size) for s in strokes]
    boxes = [b for b in boxes if b is not None]
    if not boxes:
        return None
    return BoundingBox.from_corners(
        min(b.min_x for b in boxes),
        min(b.min_y for b in boxes),
        max(b.max_x for b in boxes),
        max(b.max_y for b in boxes),
    )


def normalize_stroke(stroke, width, height):
    """Copy of a stroke with every point divided by the canvas size."""
    return Stroke(
        id=stroke.id,
        points=[(p.x / width, p.y / height) for p in stroke.points],
        timestamp=stroke.timestamp,
        size=stroke.size,
    )


def _normalized_box(stroke, width, height):
    bbox = stroke_bounding_box(stroke)
    return box(bbox.min_x / width, bbox.min_y / height, bbox.max_x / width, bbox.max_y / height)


@trace(label="find_related_strokes")
def find_related_strokes(strokes, x, y, width, height, radius=0.15, aggressive=False,
                         max_expansions=3):
    """
    Strokes whose own bbox center lies within radius of a normalized point.

    Args:
        strokes: list of pixel-space Stroke
        x, y: target position in normalized canvas units
        width, height: canvas size in pixels
        radius: search radius in normalized units
        aggressive: grow the result by strokes overlapping the current union
            box expanded by radius / 2, for up to max_expansions rounds

    Returns:
        list of Stroke in input order
    """
    tracer = get_tracer()

    if width <= 0 or height <= 0:
        return []

    related_ids = set()
    for stroke in strokes:
        bbox = stroke_bounding_box(stroke)
        if bbox is None:
            continue
        if math.hypot(bbox.center_x / width - x, bbox.center_y / height - y) <= radius:
            related_ids.add(stroke.id)

    if aggressive and related_ids:
        for _ in range(max_expansions):
            current = [s for s in strokes if s.id in related_ids]
            union = union_bounding_box(current)
            search = box(
                union.min_x / width - radius / 2,
                union.min_y / height - radius / 2,
                union.max_x / width + radius / 2,
                union.max_y / height + radius / 2,
            )
            added = {
                s.id for s in strokes
                if s.points and s.id not in related_ids
                and _normalized_box(s, width, height).intersects(search)
            }
            if not added:
                break
            related_ids |= added

    related = [s for s in strokes if s.id in related_ids]
    tracer.event(f"Related strokes: {len(related)} near ({x:.3f}, {y:.3f})")
    return related


def _sample(points, divisor=10):
    step = max(1, len(points) // divisor)
    return np.asarray(points[::step], dtype=float)


def strokes_connected(a, b, threshold):
    """True when sampled points of the two strokes come within threshold."""
    if not a.points or not b.points:
        return False
    pa = _sample(a.coords())
    pb = _sample(b.coords())
    gaps = np.linalg.norm(pa[:, None, :] - pb[None, :, :], axis=2)
    return bool(gaps.min() <= threshold)


def build_stroke_graph(strokes, width, height, link_ratio=0.05):
    """Graph of strokes, linked when they lie within link_ratio of the smaller canvas side."""
    threshold = min(width, height) * link_ratio
    graph = nx.Graph()
    drawn = [s for s in strokes if s.points]
    for index, stroke in enumerate(drawn):
        graph.add_node(stroke.id, order=index)
    for i, a in enumerate(drawn):
        for b in drawn[i + 1:]:
            if strokes_connected(a, b, threshold):
                graph.add_edge(a.id, b.id)
    return graph


@trace(label="identify_sketch_regions")
def identify_sketch_regions(strokes, width, height, config=None):
    """
    Cluster connected strokes into padded pixel regions.

    Padding is max(region_min_padding, region_padding_ratio * side) per
    axis; regions are clipped to the canvas. Returned in order of each
    cluster's first stroke.
    """
    tracer = get_tracer()
    config = config or AssociationConfig()

    if not strokes or width <= 0 or height <= 0:
        return []

    graph = build_stroke_graph(strokes, width, height, config.region_link_ratio)
    order = nx.get_node_attributes(graph, "order")
    by_id = {s.id: s for s in strokes}

    components = sorted(
        (sorted(c, key=order.get) for c in nx.connected_components(graph)),
        key=lambda c: order[c[0]],
    )

    regions = []
    for component in components:
        bbox = union_bounding_box([by_id[sid] for sid in component])
        pad_x = max(config.region_min_padding, bbox.width * config.region_padding_ratio)
        pad_y = max(config.region_min_padding, bbox.height * config.region_padding_ratio)
        x0 = max(0.0, bbox.min_x - pad_x)
        y0 = max(0.0, bbox.min_y - pad_y)
        x1 = min(float(width), bbox.max_x + pad_x)
        y1 = min(float(height), bbox.max_y + pad_y)
        if x1 <= x0 or y1 <= y0:
            continue
        regions.append(SketchRegion(x=x0, y=y0, width=x1 - x0, height=y1 - y0,
                                    stroke_ids=list(component)))

    tracer.event(f"Sketch regions: {len(regions)}", graph=graph)
    return regions
