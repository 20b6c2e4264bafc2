"""
Detector provider interface.

External detectors (object/face models, vision services, sketch
classifiers) are injected as providers that return already-normalized
DetectedElement lists. Nothing here loads or runs a model itself.
"""

from abc import ABC, abstractmethod

from inkfusion.config import AssociationConfig
from inkfusion.detections.normalize import normalize_bbox, normalize_detections
from inkfusion.models import BoundingBox, DetectedElement, ElementSource, generate_element_id
from inkfusion.strokes.associate import (
    find_related_strokes,
    identify_sketch_regions,
    union_bounding_box,
)
from inkfusion.tracer import get_tracer, trace


class DetectorProvider(ABC):
    """Abstract interface for external detection providers."""

    @abstractmethod
    def detect(self, image):
        """
        Detect elements in a canvas image.

        Args:
            image: RGBA (or RGB) numpy array of the canvas, may be None

        Returns:
            list of DetectedElement with normalized boxes
        """
        pass

    @abstractmethod
    def is_available(self):
        """Check if this provider is ready to use."""
        pass


class StubProvider(DetectorProvider):
    """Provider that never detects anything."""

    def detect(self, image):
        return []

    def is_available(self):
        return True


class StaticProvider(DetectorProvider):
    """
    Provider wrapping detections that were resolved elsewhere.

    Raw payloads are normalized once, on construction.
    """

    def __init__(self, detections, canvas_width, canvas_height, source=None):
        raw = [d for d in detections if not isinstance(d, DetectedElement)]
        resolved = [d.model_copy(deep=True) for d in detections if isinstance(d, DetectedElement)]
        self._elements = resolved + normalize_detections(raw, canvas_width, canvas_height, source=source)

    def detect(self, image):
        return [e.model_copy(deep=True) for e in self._elements]

    def is_available(self):
        return True


class SketchRegionProvider(DetectorProvider):
    """
    Runs an injected sketch classifier over clusters of connected strokes.

    The classifier is any callable taking an image crop and returning
    (label, confidence) or None. Accepted labels become sketch-cnn
    elements whose box is tightened to the ink found around the region
    center.
    """

    def __init__(self, classifier, strokes, canvas_width, canvas_height,
                 min_confidence=0.7, min_region_size=10, refine_radius=0.1, config=None):
        self.classifier = classifier
        self.strokes = list(strokes)
        self.canvas_width = canvas_width
        self.canvas_height = canvas_height
        self.min_confidence = min_confidence
        self.min_region_size = min_region_size
        self.refine_radius = refine_radius
        self.config = config or AssociationConfig()

    def is_available(self):
        return self.classifier is not None

    def _refine(self, bbox):
        related = find_related_strokes(
            self.strokes, bbox.center_x, bbox.center_y,
            self.canvas_width, self.canvas_height, radius=self.refine_radius,
        )
        union = union_bounding_box(related)
        if union is None:
            return bbox
        return normalize_bbox(union, self.canvas_width, self.canvas_height).clipped()

    def detect(self, image):
        tracer = get_tracer()
        if image is None:
            return []

        scale_x = image.shape[1] / self.canvas_width
        scale_y = image.shape[0] / self.canvas_height
        regions = identify_sketch_regions(self.strokes, self.canvas_width, self.canvas_height,
                                          config=self.config)

        elements = []
        for index, region in enumerate(regions):
            if region.width < self.min_region_size or region.height < self.min_region_size:
                continue

            x0, y0, x1, y1 = region.pixel_slice()
            crop = image[int(y0 * scale_y):int(y1 * scale_y), int(x0 * scale_x):int(x1 * scale_x)]
            if crop.size == 0:
                continue

            prediction = self.classifier(crop)
            if not prediction:
                continue
            label, confidence = prediction
            if confidence <= self.min_confidence:
                tracer.event(f"Region {index} rejected: {label} ({confidence:.2f})", level="DEBUG")
                continue

            region_box = BoundingBox.from_xywh(region.x, region.y, region.width, region.height)
            bbox = self._refine(normalize_bbox(region_box, self.canvas_width, self.canvas_height))
            elements.append(DetectedElement(
                id=generate_element_id(ElementSource.SKETCH_CNN, label, bbox, salt=str(index)),
                name=label,
                confidence=min(1.0, max(0.0, float(confidence))),
                bounding_box=bbox,
                source=ElementSource.SKETCH_CNN,
                stroke_ids=region.stroke_ids,
            ))

        return elements


def get_provider(kind="stub", **kwargs):
    """
    Factory for providers by name.

    "stub" needs no arguments; "static" and "sketch" forward kwargs to
    StaticProvider and SketchRegionProvider.
    """
    if kind == "stub":
        return StubProvider()
    if kind == "static":
        return StaticProvider(**kwargs)
    if kind == "sketch":
        return SketchRegionProvider(**kwargs)
    raise ValueError(f"Unknown provider kind: {kind}")


@trace(label="collect_detections")
def collect_detections(providers, image):
    """
    Query every available provider.

    A provider that raises is reported and skipped so one failing detector
    does not abort the analysis.
    """
    tracer = get_tracer()

    elements = []
    for provider in providers or []:
        name = type(provider).__name__
        if not provider.is_available():
            tracer.warn(f"Provider {name} unavailable, skipping")
            continue
        try:
            found = provider.detect(image)
        except Exception as e:
            tracer.warn(f"Provider {name} failed: {type(e).__name__}: {e}")
            continue
        tracer.event(f"Provider {name}: {len(found)} detections")
        elements.extend(found)

    return elements
