"""
Cross-source fusion of detected elements.

Located detections are deduplicated pairwise; the survivor keeps the box of
the highest-priority source and becomes a hybrid. Detections reported with a
name and position only are resolved afterwards, against the located
candidates, then against nearby ink, then with a keyword-sized fallback box.
"""

from dataclasses import dataclass

from inkfusion.config import AnalysisConfig
from inkfusion.detections.normalize import normalize_bbox
from inkfusion.fusion.matching import find_best_match, is_same_object
from inkfusion.models import DetectedElement, ElementSource, BoundingBox, generate_element_id
from inkfusion.shapes.geometry import extract_features
from inkfusion.strokes.associate import find_related_strokes, union_bounding_box
from inkfusion.tracer import get_tracer, trace


@dataclass
class _Candidate:
    element: DetectedElement
    # source that supplied the current box; None while the element has no box
    box_source: ElementSource = None


def source_priority(source, config):
    if source is None:
        return -1
    value = source.value if isinstance(source, ElementSource) else str(source)
    return config.fusion.source_priority.get(value, 0)


def merge_elements(existing, incoming, config):
    """
    Merge incoming into existing and return the new candidate.

    Confidence is the max of both, the box (with its contour and features)
    comes from the higher-priority source with ties keeping the existing
    one, stroke ids are united, and the result is tagged hybrid. The
    existing element's id and name are kept.
    """
    base = existing.element
    other = incoming.element

    update = {
        "confidence": max(base.confidence, other.confidence),
        "stroke_ids": list(dict.fromkeys(base.stroke_ids + other.stroke_ids)),
        "source": ElementSource.HYBRID,
        "position": base.position or other.position,
    }
    box_source = existing.box_source

    if source_priority(incoming.box_source, config) > source_priority(existing.box_source, config):
        update["bounding_box"] = other.bounding_box
        update["contour"] = other.contour
        update["features"] = other.features or base.features
        box_source = incoming.box_source

    merged = base.model_copy(update=update)
    return _Candidate(element=merged, box_source=box_source)


def fallback_size(name, config):
    """(width, height) in normalized units chosen by keyword in the name."""
    lowered = name.lower()
    for keyword, size in config.fusion.fallback_sizes.items():
        if keyword in lowered:
            return float(size[0]), float(size[1])
    default = config.fusion.default_fallback_size
    return float(default[0]), float(default[1])


def fallback_box(name, x, y, config):
    """Keyword-sized box centered at (x, y), clipped to the canvas."""
    w, h = fallback_size(name, config)
    return BoundingBox.from_corners(x - w / 2, y - h / 2, x + w / 2, y + h / 2).clipped()


def shapes_to_elements(shapes, canvas_width, canvas_height):
    """Convert pixel-space ShapeMatch results into stroke-geometry elements."""
    elements = []
    for shape in shapes:
        bbox = normalize_bbox(shape.bounding_box, canvas_width, canvas_height).clipped()
        elements.append(DetectedElement(
            id=generate_element_id(ElementSource.STROKE_GEOMETRY, shape.type, bbox,
                                   salt=":".join(shape.stroke_ids)),
            name=shape.type,
            confidence=shape.confidence,
            bounding_box=bbox,
            source=ElementSource.STROKE_GEOMETRY,
            stroke_ids=shape.stroke_ids,
            features=shape.features,
        ))
    return elements


def _resolve_from_strokes(element, x, y, strokes, canvas_width, canvas_height, config):
    related = find_related_strokes(
        strokes, x, y, canvas_width, canvas_height,
        radius=config.association.search_radius,
        aggressive=config.association.aggressive,
        max_expansions=config.association.max_expansions,
    )
    union = union_bounding_box(
        related,
        pad_by_size=config.association.pad_by_stroke_size,
        default_size=config.association.default_stroke_size,
    )
    if union is None:
        return None

    points = [p for s in related for p in s.coords()]
    resolved = element.model_copy(update={
        "bounding_box": normalize_bbox(union, canvas_width, canvas_height).clipped(),
        "source": ElementSource.STROKE_GEOMETRY,
        "stroke_ids": [s.id for s in related],
        "features": extract_features(points),
    })
    return _Candidate(element=resolved, box_source=ElementSource.STROKE_GEOMETRY)


def _add_located(candidates, incoming, config, eligible=None):
    """
    Merge into the first matching candidate, or append.

    eligible limits which candidate indices may absorb the incoming one.
    """
    for index, candidate in enumerate(candidates):
        if eligible is not None and index not in eligible:
            continue
        if is_same_object(candidate.element, incoming.element, config.fusion):
            candidates[index] = merge_elements(candidate, incoming, config)
            return True
    candidates.append(incoming)
    return False


def _label_targets(candidates, config):
    """Indices of located candidates whose box outranks a vision label's."""
    floor = source_priority(ElementSource.VISION_API, config)
    return [i for i, c in enumerate(candidates) if source_priority(c.box_source, config) > floor]


@trace(label="fuse_elements")
def fuse_elements(elements, strokes, canvas_width, canvas_height, config=None):
    """
    Fuse detections from every source into one deduplicated element list.

    Box-less labels only merge into located detections from a higher
    priority source. Labels never absorb one another, so every label
    without such a match survives as its own element.

    Args:
        elements: normalized DetectedElement list, in priority of identity
            (the first-seen element of a merged pair keeps its id and name)
        strokes: pixel-space Stroke list used to locate box-less detections
        canvas_width, canvas_height: canvas size in pixels
        config: AnalysisConfig

    Returns:
        list of DetectedElement, every one with a normalized bounding box
    """
    tracer = get_tracer()
    config = config or AnalysisConfig()

    candidates = []
    pending = []
    merges = 0

    for element in elements:
        working = element.model_copy(deep=True)
        if working.bounding_box is None:
            pending.append(working)
            continue
        if _add_located(candidates, _Candidate(working, working.source), config):
            merges += 1

    # resolved labels never become targets
    targets = _label_targets(candidates, config)

    resolution = {"matched": 0, "strokes": 0, "fallback": 0}
    default_x, default_y = config.fusion.default_position

    for element in pending:
        x, y = (element.position.x, element.position.y) if element.position else (default_x, default_y)

        match = find_best_match(element.name, x, y, [candidates[i].element for i in targets],
                                config.fusion)
        if match is not None:
            index, score = targets[match[0]], match[1]
            tracer.event(f"Matched '{element.name}' to '{candidates[index].element.name}'",
                         score=score)
            candidates[index] = merge_elements(candidates[index], _Candidate(element), config)
            resolution["matched"] += 1
            continue

        resolved = _resolve_from_strokes(element, x, y, strokes, canvas_width, canvas_height, config)
        if resolved is not None:
            resolution["strokes"] += 1
        else:
            resolved = _Candidate(
                element=element.model_copy(update={
                    "bounding_box": fallback_box(element.name, x, y, config),
                    "source": ElementSource.FALLBACK,
                }),
                box_source=ElementSource.FALLBACK,
            )
            resolution["fallback"] += 1

        if _add_located(candidates, resolved, config, eligible=set(targets)):
            merges += 1

    fused = [c.element for c in candidates]
    tracer.event(
        f"Fused {len(elements)} -> {len(fused)} elements",
        merges=merges, **resolution,
    )
    return fused
