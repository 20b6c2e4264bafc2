"""
Main analysis orchestrator for ink fusion.

Runs shape classification, detection normalization, fusion, contour
extraction and hierarchy construction over one request's private copies of
its inputs.
"""

import hashlib
import os

from inkfusion.config import AnalysisConfig, load_config
from inkfusion.contours.extract import find_contours
from inkfusion.detections.normalize import is_valid_canvas, normalize_detections
from inkfusion.fusion.merge import fuse_elements, shapes_to_elements
from inkfusion.fusion.providers import collect_detections
from inkfusion.hierarchy.build import build_hierarchy
from inkfusion.io.load_inputs import load_raster, load_request
from inkfusion.io.save_artifacts import DebugArtifactWriter, ensure_dir, render_strokes, save_json
from inkfusion.models import AnalysisResult, ContentType, Stroke
from inkfusion.shapes.classify import classify_content, detect_shapes
from inkfusion.tracer import get_tracer, trace
from inkfusion.validate.report import generate_report
from inkfusion.validate.rules import run_validation


def _detection_groups(detections):
    """
    (source, raw list) pairs from a dict keyed by source or a flat list.

    Groups that are not lists are skipped with a warning.
    """
    if not detections:
        return []
    if not isinstance(detections, dict):
        return [(None, list(detections))]

    groups = []
    for source, raw in detections.items():
        if not isinstance(raw, list):
            get_tracer().warn(f"Detections for {source} are not a list, skipping")
            continue
        groups.append((source, raw))
    return groups


@trace(label="analyze_sketch")
def analyze_sketch(strokes, canvas_width, canvas_height, detections=None, raster=None,
                   providers=None, config=None, debug_writer=None):
    """
    Analyze one canvas: fuse ink geometry with external detections.

    Args:
        strokes: list of Stroke (or stroke dicts) in pixel coordinates
        canvas_width, canvas_height: canvas size in pixels
        detections: raw detector output, either a dict keyed by source
            ("ml-object", "vision-api", ...) or a flat list
        raster: optional RGBA canvas array used for contours and providers
        providers: optional list of DetectorProvider
        config: AnalysisConfig
        debug_writer: optional DebugArtifactWriter

    Returns:
        AnalysisResult with normalized, fused elements and their hierarchy
    """
    tracer = get_tracer()
    config = config or AnalysisConfig()

    strokes = [s if isinstance(s, Stroke) else Stroke(**s) for s in strokes or []]

    if not is_valid_canvas(canvas_width, canvas_height):
        tracer.warn(f"Invalid canvas size {canvas_width}x{canvas_height}, nothing to analyze")
        return AnalysisResult(
            canvas_width=0,
            canvas_height=0,
            content_type=classify_content(strokes, config.shape),
            validation=run_validation([], strokes),
        )

    with tracer.span("shapes", module="pipeline"):
        shapes = detect_shapes(strokes, config.shape)
        shape_elements = shapes_to_elements(shapes, canvas_width, canvas_height)

    with tracer.span("detections", module="pipeline"):
        external = []
        for source, raw in _detection_groups(detections):
            external.extend(normalize_detections(raw, canvas_width, canvas_height, source=source))
        if providers:
            external.extend(collect_detections(providers, raster))

    # first-seen element keeps its name on merge
    fused = fuse_elements(external + shape_elements, strokes, canvas_width, canvas_height, config)

    if raster is not None and config.contours_enabled:
        fused = find_contours(raster, fused, config.contour)

    elements = build_hierarchy(fused, config.hierarchy)
    content_type = classify_content(strokes, config.shape) if strokes else ContentType.UNKNOWN
    validation = run_validation(elements, strokes)

    if debug_writer:
        debug_writer.save_json({"shapes": [s.model_dump(mode="json") for s in shapes]},
                               "shapes", "shapes.json")
        debug_writer.save_json({
            "shape_elements": len(shape_elements),
            "external_elements": len(external),
            "fused_elements": len(fused),
            "with_contour": sum(1 for e in elements if e.contour),
            "containers": sum(1 for e in elements if e.is_container),
        }, "fusion", "metrics.json")

    return AnalysisResult(
        canvas_width=canvas_width,
        canvas_height=canvas_height,
        elements=elements,
        shapes=shapes,
        content_type=content_type,
        validation=validation,
    )


def generate_run_id(request_path):
    """Deterministic run id from the request's absolute path."""
    h = hashlib.sha256(os.path.abspath(request_path).encode()).hexdigest()[:12]
    return f"run_{h}"


@trace(label="analyze_request")
def analyze_request(request_path, out_dir, config=None, config_path=None, debug=False,
                    providers=None):
    """
    Analyze a request file and write its outputs.

    Creates in out_dir:
    - result.json: the AnalysisResult
    - validation_report.json / validation_summary.txt
    - debug/<run_id>/...: per-stage artifacts and overlay when debug is set

    Raises FileNotFoundError / ValueError for missing or invalid inputs.
    """
    tracer = get_tracer()

    if config is None:
        config = load_config(config_path)
    debug = debug or config.debug.enabled

    request = load_request(request_path)
    raster = load_raster(request["image_path"]) if request["image_path"] else None

    ensure_dir(out_dir)
    debug_writer = DebugArtifactWriter(
        out_dir, generate_run_id(request_path),
        enabled=True,
        max_edge=config.debug.max_edge_scale,
    ) if debug else None

    result = analyze_sketch(
        request["strokes"],
        request["canvas_width"],
        request["canvas_height"],
        detections=request["detections"],
        raster=raster,
        providers=providers,
        config=config,
        debug_writer=debug_writer,
    )

    save_json(result, os.path.join(out_dir, "result.json"))
    generate_report(result, out_dir, debug_writer)

    if debug_writer:
        base = raster if raster is not None else render_strokes(
            request["strokes"], request["canvas_width"], request["canvas_height"])
        debug_writer.save_overlay(base, result.elements, "overlay", "elements.png")
        if tracer.history:
            debug_writer.save_json(list(tracer.history), "trace", "trace.json")

    tracer.event(f"Analysis written to {out_dir}: {len(result.elements)} elements")
    return result
