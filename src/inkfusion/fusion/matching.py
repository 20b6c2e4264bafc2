"""
Pairwise comparison of detections: name similarity, box overlap and the
same-object predicate used for deduplication.
"""

import math
import re

from shapely.geometry import box

from inkfusion.config import FusionConfig


_WORD_SPLIT = re.compile(r"[^a-z0-9]+")


def name_similarity(a, b):
    """
    1.0 for a case-insensitive exact match, 0.7 when one name contains the
    other, 0.5 when they share a word longer than 3 characters, else 0.
    """
    a = (a or "").strip().lower()
    b = (b or "").strip().lower()
    if not a or not b:
        return 0.0
    if a == b:
        return 1.0
    if a in b or b in a:
        return 0.7

    words_a = {w for w in _WORD_SPLIT.split(a) if len(w) > 3}
    words_b = {w for w in _WORD_SPLIT.split(b) if len(w) > 3}
    if words_a & words_b:
        return 0.5
    return 0.0


def iou(a, b):
    """Intersection over union of two BoundingBox; 0 when either is missing or the union is empty."""
    if a is None or b is None:
        return 0.0
    intersection = box(*a.as_list()).intersection(box(*b.as_list())).area
    union = a.area + b.area - intersection
    if union <= 0:
        return 0.0
    return intersection / union


def center_distance(a, b):
    return math.hypot(a.center_x - b.center_x, a.center_y - b.center_y)


def is_same_object(a, b, config=None):
    """
    Whether two located detections describe the same object.

    (exact name match AND (IoU > name_match_iou OR center distance <
    name_match_distance)) OR IoU > overlap_iou. Symmetric in a and b.
    Elements without a box never match here.
    """
    config = config or FusionConfig()
    if a.bounding_box is None or b.bounding_box is None:
        return False

    overlap = iou(a.bounding_box, b.bounding_box)
    if overlap > config.overlap_iou:
        return True

    if name_similarity(a.name, b.name) < 1.0:
        return False
    return (
        overlap > config.name_match_iou
        or center_distance(a.bounding_box, b.bounding_box) < config.name_match_distance
    )


def find_best_match(name, x, y, candidates, config=None):
    """
    Best located candidate for a name reported at a normalized position.

    Only candidates whose box center lies within match_distance are
    considered. Each is scored distance_weight * (1 - distance) +
    name_weight * name_similarity; the top score must exceed
    best_match_threshold.

    Returns:
        (index, score) into candidates, or None.
    """
    config = config or FusionConfig()
    best = None

    for index, candidate in enumerate(candidates):
        bbox = candidate.bounding_box
        if bbox is None:
            continue
        dist = math.hypot(bbox.center_x - x, bbox.center_y - y)
        if dist >= config.match_distance:
            continue

        score = (
            config.best_match_distance_weight * (1 - dist)
            + config.best_match_name_weight * name_similarity(name, candidate.name)
        )
        if score > config.best_match_threshold and (best is None or score > best[1]):
            best = (index, score)

    return best
