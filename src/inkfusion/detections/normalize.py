"""
Detection normalization.

Converts heterogeneous detector outputs into DetectedElement objects with a
canonical BoundingBox in normalized [0, 1] canvas coordinates.

Recognized payloads:
- object detector: {"bbox": [x, y, w, h], "class": ..., "score": ...}
- face detector: {"topLeft": [x1, y1], "bottomRight": [x2, y2], "probability": [...]}
- localized object: {"name": ..., "score": ..., "boundingPoly": {"vertices": [...]}}
  (or "normalizedVertices")
- pixel region: {"label": ..., "confidence": ..., "x", "y", "width", "height"}
  or the same rectangle nested under "region"
- already normalized: {"name": ..., "boundingBox": {"minX": ..., ...}}
- label only: {"name": ..., "score": ..., "position": {"x": ..., "y": ...}}
  or a bare label string
"""

import math

from inkfusion.models import BoundingBox, DetectedElement, ElementSource, Point, generate_element_id
from inkfusion.tracer import get_tracer, trace


DEFAULT_CONFIDENCE = 0.5
NAME_KEYS = ("name", "class", "label", "description")


def is_valid_canvas(width, height):
    try:
        return math.isfinite(width) and math.isfinite(height) and width > 0 and height > 0
    except TypeError:
        return False


def normalize_point(x, y, width, height):
    return x / width, y / height


def denormalize_point(x, y, width, height):
    return x * width, y * height


def normalize_bbox(bbox, width, height):
    """Divide a pixel-space box by the canvas size."""
    return BoundingBox.from_corners(
        bbox.min_x / width,
        bbox.min_y / height,
        bbox.max_x / width,
        bbox.max_y / height,
    )


def denormalize_bbox(bbox, width, height):
    """Scale a normalized box back to pixel space. Inverse of normalize_bbox."""
    return BoundingBox.from_corners(
        bbox.min_x * width,
        bbox.min_y * height,
        bbox.max_x * width,
        bbox.max_y * height,
    )


def _confidence(value):
    if isinstance(value, (list, tuple)):
        value = value[0] if value else None
    if value is None:
        return DEFAULT_CONFIDENCE
    value = float(value)
    if not math.isfinite(value):
        return DEFAULT_CONFIDENCE
    return min(1.0, max(0.0, value))


def _name(raw, default="object"):
    for key in NAME_KEYS:
        value = raw.get(key)
        if value:
            return str(value)
    return default


def _pixel_box(x1, y1, x2, y2, width, height):
    return normalize_bbox(BoundingBox.from_corners(x1, y1, x2, y2), width, height).clipped()


def _parse_object_detection(raw, width, height):
    x, y, w, h = (float(v) for v in raw["bbox"])
    box = _pixel_box(x, y, x + w, y + h, width, height)
    return _name(raw), _confidence(raw.get("score")), box, None, ElementSource.ML_OBJECT


def _parse_face_detection(raw, width, height):
    x1, y1 = (float(v) for v in raw["topLeft"][:2])
    x2, y2 = (float(v) for v in raw["bottomRight"][:2])
    box = _pixel_box(x1, y1, x2, y2, width, height)
    return _name(raw, "face"), _confidence(raw.get("probability")), box, None, ElementSource.ML_FACE


def _parse_bounding_poly(raw, width, height):
    poly = raw["boundingPoly"] or {}
    if poly.get("normalizedVertices"):
        vertices = poly["normalizedVertices"]
        scale_x, scale_y = 1.0, 1.0
    else:
        vertices = poly.get("vertices") or []
        scale_x, scale_y = float(width), float(height)

    # missing coordinates are zero in the vision wire format
    xs = [float(v.get("x", 0.0)) / scale_x for v in vertices]
    ys = [float(v.get("y", 0.0)) / scale_y for v in vertices]
    if not xs:
        return _parse_label(raw, width, height)

    box = BoundingBox.from_corners(min(xs), min(ys), max(xs), max(ys)).clipped()
    confidence = _confidence(raw.get("score", raw.get("confidence")))
    return _name(raw), confidence, box, None, ElementSource.VISION_API


def _parse_region(raw, width, height):
    rect = raw.get("region") or raw
    x, y = float(rect["x"]), float(rect["y"])
    w, h = float(rect["width"]), float(rect["height"])
    box = _pixel_box(x, y, x + w, y + h, width, height)
    confidence = _confidence(raw.get("confidence", raw.get("score")))
    return _name(raw), confidence, box, None, ElementSource.SKETCH_CNN


def _parse_normalized(raw, width, height):
    data = raw["boundingBox"]
    if "minX" in data:
        box = BoundingBox.from_corners(data["minX"], data["minY"], data["maxX"], data["maxY"])
    else:
        box = BoundingBox.from_corners(data["min_x"], data["min_y"], data["max_x"], data["max_y"])
    confidence = _confidence(raw.get("confidence", raw.get("score")))
    return _name(raw), confidence, box.clipped(), None, ElementSource.VISION_API


def _parse_label(raw, width, height):
    position = None
    if raw.get("position"):
        pos = raw["position"]
        position = Point(x=float(pos["x"]), y=float(pos["y"]))
    confidence = _confidence(raw.get("confidence", raw.get("score")))
    return _name(raw), confidence, None, position, ElementSource.VISION_API


def _select_parser(raw):
    if "bbox" in raw and any(k in raw for k in NAME_KEYS):
        return _parse_object_detection
    if "topLeft" in raw and "bottomRight" in raw:
        return _parse_face_detection
    if "boundingPoly" in raw:
        return _parse_bounding_poly
    if "region" in raw or all(k in raw for k in ("x", "y", "width", "height")):
        return _parse_region
    if "boundingBox" in raw:
        return _parse_normalized
    if any(k in raw for k in NAME_KEYS):
        return _parse_label
    return None


def normalize_detection(raw, width, height, source=None, index=0):
    """
    Normalize one raw detection into a DetectedElement.

    Args:
        raw: detector payload (see module docstring), a bare label string or
            an existing DetectedElement
        width, height: canvas size in pixels
        source: optional ElementSource overriding the format's default
        index: position in the detector output, used to keep ids unique

    Returns:
        DetectedElement, or None when the payload is not recognized.
    """
    if isinstance(raw, DetectedElement):
        return raw.model_copy(deep=True)
    if isinstance(raw, str):
        raw = {"name": raw}
    if not isinstance(raw, dict):
        return None

    parser = _select_parser(raw)
    if parser is None:
        return None

    name, confidence, box, position, default_source = parser(raw, width, height)
    element_source = ElementSource(source) if source else default_source

    return DetectedElement(
        id=generate_element_id(element_source, name, box, salt=f"{index}:{position}"),
        name=name,
        confidence=confidence,
        bounding_box=box,
        position=position,
        source=element_source,
    )


@trace(label="normalize_detections")
def normalize_detections(detections, width, height, source=None):
    """
    Normalize a list of raw detections.

    An invalid canvas size yields no elements. Unrecognized or malformed
    entries are skipped with a warning.
    """
    tracer = get_tracer()

    if not is_valid_canvas(width, height):
        tracer.warn(f"Invalid canvas size {width}x{height}, dropping detections")
        return []

    elements = []
    for index, raw in enumerate(detections or []):
        try:
            element = normalize_detection(raw, width, height, source=source, index=index)
        except (KeyError, TypeError, ValueError, IndexError) as e:
            tracer.warn(f"Malformed detection #{index}: {e}")
            continue
        if element is None:
            tracer.warn(f"Unrecognized detection #{index}", payload=raw)
            continue
        elements.append(element)

    tracer.event(f"Normalized {len(elements)}/{len(detections or [])} detections",
                 source=str(source) if source else "auto")
    return elements
