"""
Artifact saving utilities for ink fusion.

Writes JSON results, debug images and element overlays.
"""

import json
import os

import cv2
import numpy as np

from inkfusion.tracer import get_tracer


SOURCE_COLORS = {
    "stroke-geometry": (0, 160, 0),
    "hybrid": (0, 90, 255),
    "ml-object": (255, 140, 0),
    "ml-face": (255, 140, 0),
    "sketch-cnn": (160, 0, 200),
    "vision-api": (0, 180, 180),
    "fallback": (220, 0, 0),
}


def ensure_dir(path):
    """Create directory if it does not exist."""
    if path:
        os.makedirs(path, exist_ok=True)


def save_json(data, path, indent=2):
    """
    Save a dictionary or Pydantic model to JSON.
    """
    tracer = get_tracer()

    ensure_dir(os.path.dirname(path))

    if hasattr(data, "model_dump"):
        data = data.model_dump(mode="json")

    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=indent, default=str)

    tracer.event(f"Saved JSON: {path}")


def save_image(img, path, max_edge=None):
    """
    Save an RGB(A) or grayscale image to disk.

    Optionally downscales so the longer side is at most max_edge.
    """
    tracer = get_tracer()

    if max_edge and max(img.shape[:2]) > max_edge:
        scale = max_edge / max(img.shape[:2])
        new_size = (int(img.shape[1] * scale), int(img.shape[0] * scale))
        img = cv2.resize(img, new_size, interpolation=cv2.INTER_AREA)

    if img.ndim == 3 and img.shape[2] == 4:
        img = cv2.cvtColor(img, cv2.COLOR_RGBA2BGRA)
    elif img.ndim == 3 and img.shape[2] == 3:
        img = cv2.cvtColor(img, cv2.COLOR_RGB2BGR)

    ensure_dir(os.path.dirname(path))
    cv2.imwrite(path, img)
    tracer.event(f"Saved image: {path}")


def render_strokes(strokes, width, height, thickness=2):
    """Rasterize pixel-space strokes as black ink on a white RGBA canvas."""
    canvas = np.full((int(height), int(width), 4), 255, dtype=np.uint8)
    for stroke in strokes:
        if len(stroke.points) < 2:
            continue
        pts = np.array([[round(x), round(y)] for x, y in stroke.coords()], dtype=np.int32)
        size = int(stroke.size) if stroke.size else thickness
        cv2.polylines(canvas, [pts], isClosed=False, color=(0, 0, 0, 255), thickness=max(1, size))
    return canvas


def draw_element_overlay(base_img, elements):
    """
    Draw element boxes, contours and labels over a canvas image.

    Boxes and contours are normalized; they are scaled to the image size.
    Returns an RGB copy.
    """
    if base_img.ndim == 2:
        overlay = cv2.cvtColor(base_img, cv2.COLOR_GRAY2RGB)
    elif base_img.shape[2] == 4:
        overlay = cv2.cvtColor(base_img, cv2.COLOR_RGBA2RGB)
    else:
        overlay = base_img.copy()

    height, width = overlay.shape[:2]
    font = cv2.FONT_HERSHEY_SIMPLEX

    for element in elements:
        color = SOURCE_COLORS.get(element.source.value, (0, 0, 0))
        bbox = element.bounding_box
        if bbox is not None:
            pt1 = (int(bbox.min_x * width), int(bbox.min_y * height))
            pt2 = (int(bbox.max_x * width), int(bbox.max_y * height))
            cv2.rectangle(overlay, pt1, pt2, color, 1)
            label = f"{element.name} {element.confidence:.2f}"
            cv2.putText(overlay, label, (pt1[0], max(10, pt1[1] - 3)), font, 0.4, color, 1)

        if element.contour:
            pts = np.array([[int(p.x * width), int(p.y * height)] for p in element.contour],
                           dtype=np.int32)
            cv2.polylines(overlay, [pts], isClosed=False, color=color, thickness=1)

    return overlay


class DebugArtifactWriter:
    """
    Writes debug artifacts for one analysis run.

    Files land in <out_dir>/debug/<run_id>/<stage>/. Every method is a
    no-op when disabled.
    """

    def __init__(self, out_dir, run_id, enabled=True, max_edge=1600):
        self.out_dir = out_dir
        self.run_id = run_id
        self.enabled = enabled
        self.max_edge = max_edge

    def get_stage_dir(self, stage_name):
        stage_dir = os.path.join(self.out_dir, "debug", self.run_id, stage_name)
        ensure_dir(stage_dir)
        return stage_dir

    def save_json(self, data, stage_name, filename):
        if not self.enabled:
            return
        save_json(data, os.path.join(self.get_stage_dir(stage_name), filename))

    def save_image(self, img, stage_name, filename):
        if not self.enabled:
            return
        save_image(img, os.path.join(self.get_stage_dir(stage_name), filename), max_edge=self.max_edge)

    def save_overlay(self, base_img, elements, stage_name, filename):
        """Draw and save an element overlay."""
        if not self.enabled:
            return
        self.save_image(draw_element_overlay(base_img, elements), stage_name, filename)
