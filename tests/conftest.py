"""Pytest fixtures for ink fusion tests."""

import math
import tempfile

import cv2
import numpy as np
import pytest


def _arc(cx, cy, r, start, end, n):
    """n points on a circular arc, endpoints included."""
    return [
        (cx + r * math.cos(start + (end - start) * i / (n - 1)),
         cy + r * math.sin(start + (end - start) * i / (n - 1)))
        for i in range(n)
    ]


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test outputs."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir


@pytest.fixture
def default_config():
    """Create default analysis configuration."""
    from inkfusion.config import AnalysisConfig
    return AnalysisConfig()


@pytest.fixture
def circle_stroke():
    """64 points on a circle of radius 50 centered at (250, 250)."""
    from inkfusion.models import Stroke

    points = [
        (250 + 50 * math.cos(2 * math.pi * i / 64), 250 + 50 * math.sin(2 * math.pi * i / 64))
        for i in range(64)
    ]
    return Stroke(id="circle", points=points)


@pytest.fixture
def square_stroke():
    """Closed 100x100 square, 10 points per side, ending on its start corner."""
    from inkfusion.models import Stroke

    points = []
    points += [(100 + 10 * i, 100) for i in range(10)]
    points += [(200, 100 + 10 * i) for i in range(10)]
    points += [(200 - 10 * i, 200) for i in range(10)]
    points += [(100, 200 - 10 * i) for i in range(10)]
    points.append((100, 100))
    return Stroke(id="square", points=points)


@pytest.fixture
def semicircle_strokes():
    """Top and bottom halves of a circle of radius 50 at (250, 250), 32 points each."""
    from inkfusion.models import Stroke

    top = Stroke(id="top", points=_arc(250, 250, 50, math.pi, 2 * math.pi, 32))
    bottom = Stroke(id="bottom", points=_arc(250, 250, 50, 0, math.pi, 32))
    return [top, bottom]


@pytest.fixture
def line_stroke():
    """Straight horizontal stroke, 20 points over 190 px."""
    from inkfusion.models import Stroke
    return Stroke(id="line", points=[(10 + 10 * i, 50) for i in range(20)])


@pytest.fixture
def rectangle_raster():
    """200x200 white RGBA canvas with a filled black square from (50, 50) to (150, 150)."""
    img = np.full((200, 200, 4), 255, dtype=np.uint8)
    cv2.rectangle(img, (50, 50), (150, 150), (0, 0, 0, 255), -1)
    return img
