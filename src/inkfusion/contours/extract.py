"""
Contour extraction for fused elements.

Crops each element's box out of the canvas raster, runs edge detection and
the boundary scan, and attaches a simplified contour in normalized canvas
coordinates. The result is a display aid, not a verified simple polygon.
"""

import math

import cv2
import numpy as np

from inkfusion.config import ContourConfig
from inkfusion.contours.edges import boundary_points, detect_edges
from inkfusion.contours.simplify import simplify_contour
from inkfusion.models import Point
from inkfusion.tracer import get_tracer, trace


def is_usable_raster(raster):
    return (
        isinstance(raster, np.ndarray)
        and raster.ndim in (2, 3)
        and raster.shape[0] > 0
        and raster.shape[1] > 0
        and (raster.ndim == 2 or raster.shape[2] in (3, 4))
    )


def element_pixel_region(bbox, raster_width, raster_height):
    """
    Pixel window covering a normalized box, clipped to the raster.

    Returns (x0, y0, x1, y1) with exclusive upper bounds.
    """
    x0 = max(0, int(math.floor(bbox.min_x * raster_width)))
    y0 = max(0, int(math.floor(bbox.min_y * raster_height)))
    x1 = min(raster_width, int(math.ceil(bbox.max_x * raster_width)))
    y1 = min(raster_height, int(math.ceil(bbox.max_y * raster_height)))
    return x0, y0, x1, y1


def extract_region_contour(raster, region, config=None):
    """
    Contour of one pixel region, normalized to the full raster.

    Returns a list of (x, y) tuples, or None when the region is too small or
    holds no edges.
    """
    config = config or ContourConfig()
    height, width = raster.shape[:2]
    x0, y0, x1, y1 = region

    if x1 - x0 < config.min_region_size or y1 - y0 < config.min_region_size:
        return None

    mask = detect_edges(raster[y0:y1, x0:x1], config.edge_threshold)
    points = boundary_points(mask)
    if len(points) < 2:
        return None

    normalized = [((x0 + px) / width, (y0 + py) / height) for px, py in points]
    simplified = simplify_contour(normalized, config.simplify_epsilon)
    if len(simplified) < 2:
        return None
    return simplified


@trace(label="find_contours")
def find_contours(raster, elements, config=None):
    """
    Attach contours to every element with a bounding box.

    Args:
        raster: HxWx4 RGBA (or RGB / grayscale) array covering the canvas
        elements: list of DetectedElement with normalized boxes
        config: ContourConfig

    Returns:
        new list of elements. An unusable raster returns the input
        elements unchanged; a failing region leaves its element unchanged.
    """
    tracer = get_tracer()
    config = config or ContourConfig()

    if not is_usable_raster(raster):
        tracer.warn("Raster unavailable, skipping contour extraction")
        return list(elements)

    height, width = raster.shape[:2]
    result = []
    attached = 0

    for element in elements:
        if element.bounding_box is None:
            result.append(element)
            continue

        region = element_pixel_region(element.bounding_box, width, height)
        try:
            contour = extract_region_contour(raster, region, config)
        except (cv2.error, ValueError) as e:
            tracer.warn(f"Contour extraction failed for {element.id}: {e}")
            contour = None

        if contour is None:
            result.append(element)
            continue

        attached += 1
        result.append(element.model_copy(update={
            "contour": [Point(x=x, y=y) for x, y in contour],
        }))

    tracer.event(f"Contours attached: {attached}/{len(elements)}")
    return result
