"""
Sobel edge detection and boundary pixel extraction on raster regions.
"""

import cv2
import numpy as np


def to_grayscale(raster):
    """
    Convert an RGBA, RGB or single-channel raster to float32 luminance.

    Uses 0.299 R + 0.587 G + 0.114 B.
    """
    if raster.ndim == 2:
        return raster.astype(np.float32)
    if raster.shape[2] == 4:
        gray = cv2.cvtColor(raster, cv2.COLOR_RGBA2GRAY)
    elif raster.shape[2] == 3:
        gray = cv2.cvtColor(raster, cv2.COLOR_RGB2GRAY)
    else:
        raise ValueError(f"Unsupported channel count: {raster.shape[2]}")
    return gray.astype(np.float32)


def sobel_magnitude(gray):
    """
    Gradient magnitude from 3x3 Sobel kernels.

    Border pixels have no full neighbourhood and are left at 0.
    """
    gx = cv2.Sobel(gray, cv2.CV_64F, 1, 0, ksize=3)
    gy = cv2.Sobel(gray, cv2.CV_64F, 0, 1, ksize=3)
    magnitude = np.sqrt(gx * gx + gy * gy)

    magnitude[0, :] = 0
    magnitude[-1, :] = 0
    magnitude[:, 0] = 0
    magnitude[:, -1] = 0
    return magnitude


def detect_edges(raster, threshold=50.0):
    """
    Binary edge mask of a raster region.

    Returns uint8 array with 255 where the Sobel magnitude exceeds threshold.
    """
    magnitude = sobel_magnitude(to_grayscale(raster))
    return np.where(magnitude > threshold, 255, 0).astype(np.uint8)


def boundary_points(mask):
    """
    Foreground pixels with at least one 8-connected background neighbour.

    Pixels on the image border count as touching background. Returns
    (x, y) tuples in row-major scan order.
    """
    foreground = (mask > 0).astype(np.uint8)
    if not foreground.any():
        return []

    eroded = cv2.erode(
        foreground,
        np.ones((3, 3), dtype=np.uint8),
        borderType=cv2.BORDER_CONSTANT,
        borderValue=0,
    )
    boundary = (foreground == 1) & (eroded == 0)
    return [(int(col), int(row)) for row, col in np.argwhere(boundary)]
