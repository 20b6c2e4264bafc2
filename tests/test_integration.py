"""Integration tests for the full analysis."""

import json
import os

import cv2
import pytest


def write_request(temp_dir, strokes, detections, image=None, width=500, height=500):
    request = {
        "canvas": {"width": width, "height": height},
        "strokes": [
            {"id": s.id, "points": [{"x": p.x, "y": p.y} for p in s.points]} for s in strokes
        ],
        "detections": detections,
    }
    if image is not None:
        cv2.imwrite(os.path.join(temp_dir, "canvas.png"), image)
        request["image"] = "canvas.png"

    path = os.path.join(temp_dir, "request.json")
    with open(path, "w") as f:
        json.dump(request, f)
    return path


class TestAnalyzeSketch:
    """End-to-end runs of analyze_sketch."""

    def test_label_resolved_from_split_circle(self, semicircle_strokes):
        """A label with only a position takes the box of the two halves drawn near it."""
        from inkfusion.models import ElementSource
        from inkfusion.pipeline import analyze_sketch

        detections = {"vision-api": [{"name": "circle", "score": 0.9, "position": {"x": 0.5, "y": 0.5}}]}
        result = analyze_sketch(semicircle_strokes, 500, 500, detections=detections)

        assert len(result.elements) == 1
        circle = result.elements[0]
        assert circle.name == "circle"
        assert circle.source == ElementSource.STROKE_GEOMETRY
        assert sorted(circle.stroke_ids) == ["bottom", "top"]
        assert circle.bounding_box.min_x == pytest.approx(0.4)
        assert circle.bounding_box.max_x == pytest.approx(0.6)
        assert not result.validation.has_errors

    def test_two_detectors_fuse(self):
        from inkfusion.models import ElementSource
        from inkfusion.pipeline import analyze_sketch

        detections = {
            "ml-object": [{"bbox": [0, 0, 250, 250], "class": "dog", "score": 0.6}],
            "vision-api": [{"name": "Dog", "score": 0.9, "boundingPoly": {"normalizedVertices": [
                {"x": 0.0, "y": 0.0}, {"x": 0.5, "y": 0.0}, {"x": 0.5, "y": 0.3}, {"x": 0.0, "y": 0.3},
            ]}}],
        }
        result = analyze_sketch([], 500, 500, detections=detections)

        [dog] = result.elements
        assert dog.name == "dog"
        assert dog.source == ElementSource.HYBRID
        assert dog.confidence == pytest.approx(0.9)
        assert dog.bounding_box.as_list() == pytest.approx([0.0, 0.0, 0.5, 0.5])

    def test_drawn_shape_nested_in_detection(self, circle_stroke):
        from inkfusion.models import ContentType, ElementSource
        from inkfusion.pipeline import analyze_sketch

        detections = {"ml-face": [{"topLeft": [150, 150], "bottomRight": [350, 350], "probability": [0.95]}]}
        result = analyze_sketch([circle_stroke], 500, 500, detections=detections)

        face, circle = result.elements
        assert face.name == "face"
        assert circle.name == "circle"
        assert circle.source == ElementSource.STROKE_GEOMETRY
        assert face.children == [circle.id]
        assert circle.parent_id == face.id
        assert [s.type for s in result.shapes] == ["circle"]
        assert result.content_type == ContentType.DRAWING
        assert not result.validation.has_errors

    def test_contours_from_raster(self, rectangle_raster):
        from inkfusion.pipeline import analyze_sketch

        detections = [{"bbox": [40, 40, 120, 120], "class": "box", "score": 0.8}]
        result = analyze_sketch([], 200, 200, detections=detections, raster=rectangle_raster)

        [element] = result.elements
        assert element.contour is not None
        assert result.validation.warning_count == 0

    def test_contours_disabled(self, rectangle_raster, default_config):
        from inkfusion.pipeline import analyze_sketch

        default_config.contours_enabled = False
        detections = [{"bbox": [40, 40, 120, 120], "class": "box", "score": 0.8}]
        result = analyze_sketch([], 200, 200, detections=detections, raster=rectangle_raster,
                                config=default_config)

        assert result.elements[0].contour is None

    def test_providers_contribute(self):
        from inkfusion.fusion.providers import StaticProvider
        from inkfusion.pipeline import analyze_sketch

        provider = StaticProvider([{"bbox": [0, 0, 100, 100], "class": "kite", "score": 0.7}], 500, 500)
        result = analyze_sketch([], 500, 500, providers=[provider])

        assert [e.name for e in result.elements] == ["kite"]

    def test_invalid_canvas_is_empty(self, circle_stroke):
        from inkfusion.pipeline import analyze_sketch

        detections = [{"bbox": [0, 0, 10, 10], "class": "x", "score": 0.5}]
        result = analyze_sketch([circle_stroke], 0, 500, detections=detections)

        assert result.elements == []
        assert result.shapes == []

    def test_detection_group_not_a_list(self):
        from inkfusion.pipeline import analyze_sketch

        result = analyze_sketch([], 500, 500, detections={"vision-api": {"name": "cat"}})

        assert result.elements == []

    def test_nothing_to_analyze(self):
        from inkfusion.models import ContentType
        from inkfusion.pipeline import analyze_sketch

        result = analyze_sketch([], 500, 500)

        assert result.elements == []
        assert result.content_type == ContentType.UNKNOWN


class TestAnalyzeRequest:
    """Runs from a request file on disk."""

    def test_outputs_written(self, temp_dir, circle_stroke):
        from inkfusion.pipeline import analyze_request

        request_path = write_request(temp_dir, [circle_stroke], {})
        out_dir = os.path.join(temp_dir, "output")

        result = analyze_request(request_path, out_dir)

        assert os.path.exists(os.path.join(out_dir, "result.json"))
        assert os.path.exists(os.path.join(out_dir, "validation_report.json"))
        assert os.path.exists(os.path.join(out_dir, "validation_summary.txt"))
        assert not os.path.isdir(os.path.join(out_dir, "debug"))

        with open(os.path.join(out_dir, "result.json")) as f:
            data = json.load(f)
        assert data["elements"][0]["name"] == "circle"
        assert data["elements"][0]["source"] == "stroke-geometry"
        assert len(result.elements) == 1

    def test_debug_artifacts(self, temp_dir, circle_stroke, rectangle_raster):
        from inkfusion.pipeline import analyze_request, generate_run_id

        detections = {"ml-object": [{"bbox": [40, 40, 120, 120], "class": "box", "score": 0.8}]}
        request_path = write_request(temp_dir, [], detections, image=rectangle_raster,
                                     width=200, height=200)
        out_dir = os.path.join(temp_dir, "output")

        result = analyze_request(request_path, out_dir, debug=True)

        run_dir = os.path.join(out_dir, "debug", generate_run_id(request_path))
        for stage, filename in [("shapes", "shapes.json"), ("fusion", "metrics.json"),
                                ("validation", "metrics.json"), ("overlay", "elements.png")]:
            assert os.path.exists(os.path.join(run_dir, stage, filename)), f"Missing {stage}/{filename}"
        assert result.elements[0].contour is not None

    def test_debug_flag_leaves_config_untouched(self, temp_dir, circle_stroke, default_config):
        from inkfusion.pipeline import analyze_request, generate_run_id

        request_path = write_request(temp_dir, [circle_stroke], {})
        out_dir = os.path.join(temp_dir, "output")

        analyze_request(request_path, out_dir, config=default_config, debug=True)

        assert os.path.isdir(os.path.join(out_dir, "debug", generate_run_id(request_path)))
        assert default_config.debug.enabled is False

    def test_detection_group_must_be_list(self, temp_dir):
        from inkfusion.io.load_inputs import validate_request
        from inkfusion.pipeline import analyze_request

        request = {"canvas": {"width": 500, "height": 500}, "detections": {"vision-api": {"name": "cat"}}}
        assert "Detections for vision-api must be a list" in validate_request(request)

        path = os.path.join(temp_dir, "request.json")
        with open(path, "w") as f:
            json.dump(request, f)

        with pytest.raises(ValueError):
            analyze_request(path, temp_dir)

    def test_missing_request(self, temp_dir):
        from inkfusion.pipeline import analyze_request

        with pytest.raises(FileNotFoundError):
            analyze_request(os.path.join(temp_dir, "nope.json"), temp_dir)

    def test_invalid_request(self, temp_dir):
        from inkfusion.pipeline import analyze_request

        path = os.path.join(temp_dir, "bad.json")
        with open(path, "w") as f:
            json.dump({"canvas": {"width": -5, "height": 100}, "detections": {"made-up": []}}, f)

        with pytest.raises(ValueError):
            analyze_request(path, temp_dir)


class TestCli:
    """Tests for the command-line entry point."""

    def test_init_config(self, temp_dir):
        from inkfusion.cli import main

        path = os.path.join(temp_dir, "config.yaml")
        assert main(["init-config", "--out", path]) == 0
        assert os.path.exists(path)

    def test_analyze(self, temp_dir, circle_stroke, capsys):
        from inkfusion.cli import main

        request_path = write_request(temp_dir, [circle_stroke], {})
        out_dir = os.path.join(temp_dir, "output")

        assert main(["analyze", "--request", request_path, "--out", out_dir]) == 0
        assert "Analysis completed" in capsys.readouterr().out

    def test_analyze_missing_request(self, temp_dir, capsys):
        from inkfusion.cli import main

        code = main(["analyze", "--request", os.path.join(temp_dir, "nope.json"), "--out", temp_dir])

        assert code == 1
        assert "Error" in capsys.readouterr().err

    def test_no_command_prints_help(self, capsys):
        from inkfusion.cli import main

        assert main([]) == 0
        assert "analyze" in capsys.readouterr().out
