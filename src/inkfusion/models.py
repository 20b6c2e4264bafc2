"""
Pydantic data models for ink fusion.

Strokes, boxes and detected elements flow through these validated models so
every stage sees consistent geometry. Content-based ID generation keeps
outputs deterministic across runs.
"""

import hashlib
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


BBOX_TOLERANCE = 1e-6


class ElementSource(str, Enum):
    """Provenance of an element's final geometry."""
    VISION_API = "vision-api"
    ML_OBJECT = "ml-object"
    ML_FACE = "ml-face"
    SKETCH_CNN = "sketch-cnn"
    STROKE_GEOMETRY = "stroke-geometry"
    FALLBACK = "fallback"
    HYBRID = "hybrid"


class ContentType(str, Enum):
    """Coarse classification of what the ink on the canvas is."""
    TEXT = "text"
    DRAWING = "drawing"
    UNKNOWN = "unknown"


class Severity(str, Enum):
    """Severity levels for validation checks."""
    ERROR = "error"
    WARN = "warn"
    INFO = "info"


class Point(BaseModel):
    """A 2D point, in pixel or normalized canvas units depending on stage."""
    x: float
    y: float

    model_config = ConfigDict(extra="forbid", frozen=True)


def _coerce_point(value):
    if isinstance(value, (list, tuple)):
        return {"x": value[0], "y": value[1]}
    return value


class Stroke(BaseModel):
    """One continuous freehand ink path. Never mutated after creation."""
    id: str
    points: List[Point] = Field(default_factory=list)
    timestamp: Optional[float] = None
    size: Optional[float] = None

    model_config = ConfigDict(extra="forbid", frozen=True)

    @field_validator("points", mode="before")
    @classmethod
    def _accept_pairs(cls, value):
        if value is None:
            return []
        return [_coerce_point(p) for p in value]

    def coords(self):
        """Return the points as a list of (x, y) tuples."""
        return [(p.x, p.y) for p in self.points]


class BoundingBox(BaseModel):
    """
    Axis-aligned box with derived dimensions and center.

    Use from_corners() to build one; width, height and center are always
    derived from the same four corner values.
    """
    min_x: float
    min_y: float
    max_x: float
    max_y: float
    width: float
    height: float
    center_x: float
    center_y: float

    model_config = ConfigDict(extra="forbid", frozen=True)

    @model_validator(mode="after")
    def _check_consistency(self):
        tol = BBOX_TOLERANCE
        if self.min_x > self.max_x + tol or self.min_y > self.max_y + tol:
            raise ValueError("bounding box min corner exceeds max corner")
        if abs(self.width - (self.max_x - self.min_x)) > tol:
            raise ValueError("bounding box width does not match its corners")
        if abs(self.height - (self.max_y - self.min_y)) > tol:
            raise ValueError("bounding box height does not match its corners")
        if abs(self.center_x - (self.min_x + self.width / 2)) > tol:
            raise ValueError("bounding box center_x does not match its corners")
        if abs(self.center_y - (self.min_y + self.height / 2)) > tol:
            raise ValueError("bounding box center_y does not match its corners")
        return self

    @classmethod
    def from_corners(cls, x1, y1, x2, y2):
        """Build a box from two opposite corners in any order."""
        min_x, max_x = (x1, x2) if x1 <= x2 else (x2, x1)
        min_y, max_y = (y1, y2) if y1 <= y2 else (y2, y1)
        width = max_x - min_x
        height = max_y - min_y
        return cls(
            min_x=min_x,
            min_y=min_y,
            max_x=max_x,
            max_y=max_y,
            width=width,
            height=height,
            center_x=min_x + width / 2,
            center_y=min_y + height / 2,
        )

    @classmethod
    def from_xywh(cls, x, y, w, h):
        """Build a box from a top-left corner plus width and height."""
        return cls.from_corners(x, y, x + w, y + h)

    @classmethod
    def from_list(cls, bbox):
        """Build a box from [min_x, min_y, max_x, max_y]."""
        return cls.from_corners(bbox[0], bbox[1], bbox[2], bbox[3])

    @property
    def area(self):
        return self.width * self.height

    @property
    def center(self):
        return (self.center_x, self.center_y)

    def as_list(self):
        """Return [min_x, min_y, max_x, max_y]."""
        return [self.min_x, self.min_y, self.max_x, self.max_y]

    def contains_point(self, x, y):
        """Inclusive point-in-box test."""
        return self.min_x <= x <= self.max_x and self.min_y <= y <= self.max_y

    def clipped(self, low=0.0, high=1.0):
        """Return a copy with every corner clamped to [low, high]."""
        def clamp(v):
            return min(high, max(low, v))
        return BoundingBox.from_corners(
            clamp(self.min_x), clamp(self.min_y), clamp(self.max_x), clamp(self.max_y)
        )


class GeometricFeatures(BaseModel):
    """Read-only geometric description of a stroke or stroke group."""
    centroid: Point
    area: float = 0.0
    perimeter: float = 0.0
    circularity: float = 0.0
    rectangularity: float = 0.0
    triangularity: float = 0.0
    corner_count: int = 0
    aspect_ratio: float = 1.0

    model_config = ConfigDict(extra="forbid", frozen=True)


class DetectedElement(BaseModel):
    """A single annotated scene element produced by fusion."""
    id: str
    name: str
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    bounding_box: Optional[BoundingBox] = None
    position: Optional[Point] = None
    source: ElementSource
    stroke_ids: List[str] = Field(default_factory=list)
    contour: Optional[List[Point]] = None
    parent_id: Optional[str] = None
    children: List[str] = Field(default_factory=list)
    is_container: bool = False
    is_child: bool = False
    features: Optional[GeometricFeatures] = None

    model_config = ConfigDict(extra="forbid")

    @field_validator("stroke_ids", "children")
    @classmethod
    def _unique_ids(cls, value):
        return list(dict.fromkeys(value))

    @field_validator("contour", mode="before")
    @classmethod
    def _contour_points(cls, value):
        if value is None:
            return None
        points = [_coerce_point(p) for p in value]
        if len(points) < 2:
            raise ValueError("contour needs at least 2 points")
        return points


class ShapeMatch(BaseModel):
    """A stroke-geometry classification result in pixel space."""
    type: str
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    stroke_ids: List[str] = Field(default_factory=list)
    bounding_box: BoundingBox
    features: Optional[GeometricFeatures] = None

    model_config = ConfigDict(extra="forbid")


class SketchRegion(BaseModel):
    """A padded pixel window around a cluster of connected strokes."""
    x: float
    y: float
    width: float
    height: float
    stroke_ids: List[str] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid")

    def pixel_slice(self):
        """Integer (x0, y0, x1, y1) window with exclusive upper bounds."""
        return (
            int(self.x),
            int(self.y),
            int(round(self.x + self.width)),
            int(round(self.y + self.height)),
        )


class CheckResult(BaseModel):
    """Result of a single validation check."""
    rule_id: str
    severity: Severity
    passed: bool
    message: str
    evidence: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(extra="forbid")


class ValidationReport(BaseModel):
    """Collection of validation check results."""
    checks: List[CheckResult] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid")

    @property
    def has_errors(self):
        return any(c.severity == Severity.ERROR and not c.passed for c in self.checks)

    @property
    def error_count(self):
        return sum(1 for c in self.checks if c.severity == Severity.ERROR and not c.passed)

    @property
    def warning_count(self):
        return sum(1 for c in self.checks if c.severity == Severity.WARN and not c.passed)


class AnalysisResult(BaseModel):
    """Everything one analysis request produces."""
    canvas_width: float
    canvas_height: float
    elements: List[DetectedElement] = Field(default_factory=list)
    shapes: List[ShapeMatch] = Field(default_factory=list)
    content_type: ContentType = ContentType.UNKNOWN
    validation: ValidationReport = Field(default_factory=ValidationReport)

    model_config = ConfigDict(extra="forbid")

    def element_by_id(self, element_id):
        for element in self.elements:
            if element.id == element_id:
                return element
        return None


# ID generation functions for deterministic outputs

def generate_stroke_id(points, round_digits=2):
    """
    Generate deterministic stroke ID from point coordinates.

    Rounds coordinates to avoid floating point instability.
    """
    if not points:
        return "stroke_empty"

    rounded = [[round(p[0], round_digits), round(p[1], round_digits)] for p in to_xy(points)]
    h = hashlib.sha256(str(rounded).encode()).hexdigest()[:12]
    return f"stroke_{h}"


def generate_element_id(source, name, bbox=None, salt="", round_digits=4):
    """
    Generate deterministic element ID from provenance, label and geometry.

    The salt separates otherwise identical detections (e.g. their index in
    the detector output).
    """
    source_value = source.value if isinstance(source, ElementSource) else str(source)
    corners = [round(v, round_digits) for v in bbox.as_list()] if bbox is not None else []
    data = f"{source_value}:{name.lower()}:{corners}:{salt}"
    h = hashlib.sha256(data.encode()).hexdigest()[:12]
    return f"elem_{h}"


def to_xy(points):
    """Convert Point models or [x, y] pairs into a list of float tuples."""
    result = []
    for p in points:
        if isinstance(p, Point):
            result.append((float(p.x), float(p.y)))
        elif isinstance(p, dict):
            result.append((float(p["x"]), float(p["y"])))
        else:
            result.append((float(p[0]), float(p[1])))
    return result


def compute_bbox(points):
    """
    Compute bounding box from a list of points.

    Returns [min_x, min_y, max_x, max_y].
    """
    if not points:
        return [0.0, 0.0, 0.0, 0.0]

    xy = to_xy(points)
    xs = [p[0] for p in xy]
    ys = [p[1] for p in xy]
    return [min(xs), min(ys), max(xs), max(ys)]


def compute_centroid(points):
    """
    Compute centroid of a list of points.
    """
    if not points:
        return [0.0, 0.0]

    xy = to_xy(points)
    xs = [p[0] for p in xy]
    ys = [p[1] for p in xy]
    return [sum(xs) / len(xs), sum(ys) / len(ys)]
