"""
Input loading for analysis requests.

A request is a JSON document:

    {
      "canvas": {"width": 800, "height": 600},
      "strokes": [{"id": "s1", "points": [{"x": 10, "y": 12}, ...], "size": 4}],
      "detections": {"ml-object": [...], "vision-api": [...]},
      "image": "canvas.png"
    }

"detections" may also be a flat list whose entries carry their own format.
"image" is optional and resolved relative to the request file.
"""

import json
import os

import cv2

from inkfusion.models import ElementSource, Stroke, generate_stroke_id
from inkfusion.tracer import get_tracer, trace


SOURCE_VALUES = {s.value for s in ElementSource}


@trace(label="load_raster")
def load_raster(path):
    """
    Load an image from disk as an RGBA numpy array (H, W, 4).

    Raises FileNotFoundError if path does not exist.
    Raises ValueError if the image cannot be decoded.
    """
    tracer = get_tracer()

    if not os.path.exists(path):
        raise FileNotFoundError(f"Image not found: {path}")

    img = cv2.imread(path, cv2.IMREAD_UNCHANGED)
    if img is None:
        raise ValueError(f"Failed to load image: {path}")

    if img.ndim == 2:
        rgba = cv2.cvtColor(img, cv2.COLOR_GRAY2RGBA)
    elif img.shape[2] == 4:
        rgba = cv2.cvtColor(img, cv2.COLOR_BGRA2RGBA)
    else:
        rgba = cv2.cvtColor(img, cv2.COLOR_BGR2RGBA)

    tracer.event(f"Loaded raster: {rgba.shape[1]}x{rgba.shape[0]}")
    return rgba


def validate_request(data):
    """
    Validate a decoded request.

    Returns list of error messages (empty if valid).
    """
    errors = []

    if not isinstance(data, dict):
        return ["Request must be a JSON object"]

    canvas = data.get("canvas")
    if not isinstance(canvas, dict):
        errors.append("Missing canvas size")
    else:
        for key in ("width", "height"):
            value = canvas.get(key)
            if not isinstance(value, (int, float)) or isinstance(value, bool) or value <= 0:
                errors.append(f"Canvas {key} must be a positive number")

    strokes = data.get("strokes", [])
    if not isinstance(strokes, list):
        errors.append("strokes must be a list")
    else:
        for index, stroke in enumerate(strokes):
            if not isinstance(stroke, dict) or not isinstance(stroke.get("points", []), list):
                errors.append(f"Stroke #{index} must be an object with a points list")

    detections = data.get("detections", {})
    if isinstance(detections, dict):
        for source, group in detections.items():
            if source not in SOURCE_VALUES:
                errors.append(f"Unknown detection source: {source}")
            if not isinstance(group, list):
                errors.append(f"Detections for {source} must be a list")
    elif not isinstance(detections, list):
        errors.append("detections must be an object keyed by source or a list")

    return errors


def parse_strokes(raw_strokes):
    """Build Stroke models, deriving ids from the points when absent."""
    strokes = []
    for raw in raw_strokes:
        points = raw.get("points", [])
        stroke_id = raw.get("id") or generate_stroke_id(
            [(p["x"], p["y"]) if isinstance(p, dict) else p for p in points]
        )
        strokes.append(Stroke(
            id=str(stroke_id),
            points=points,
            timestamp=raw.get("timestamp"),
            size=raw.get("size"),
        ))
    return strokes


@trace(label="load_request")
def load_request(path):
    """
    Load and validate a request file.

    Returns dict with canvas_width, canvas_height, strokes (Stroke list),
    detections (dict source -> raw list, or flat list) and image_path.

    Raises FileNotFoundError if path does not exist.
    Raises ValueError if the request is invalid.
    """
    if not os.path.exists(path):
        raise FileNotFoundError(f"Request not found: {path}")

    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)

    errors = validate_request(data)
    if errors:
        raise ValueError(f"Request validation failed: {errors}")

    image_path = data.get("image")
    if image_path and not os.path.isabs(image_path):
        image_path = os.path.join(os.path.dirname(os.path.abspath(path)), image_path)

    return {
        "canvas_width": data["canvas"]["width"],
        "canvas_height": data["canvas"]["height"],
        "strokes": parse_strokes(data.get("strokes", [])),
        "detections": data.get("detections", {}),
        "image_path": image_path,
    }
