"""Tests for validation rules and report generation."""

import json
import os


def make_element(element_id, corners=None, **update):
    from inkfusion.models import BoundingBox, DetectedElement, ElementSource

    fields = dict(
        id=element_id,
        name=element_id,
        confidence=0.5,
        bounding_box=BoundingBox.from_corners(*corners) if corners else None,
        source=ElementSource.ML_OBJECT,
    )
    fields.update(update)
    return DetectedElement(**fields)


def check(report, rule_id):
    return next(c for c in report.checks if c.rule_id == rule_id)


class TestRules:
    """Tests for individual validation checks."""

    def test_clean_elements_pass(self, square_stroke):
        from inkfusion.models import ElementSource
        from inkfusion.validate.rules import run_validation

        elements = [
            make_element("a", (0.1, 0.1, 0.4, 0.4)),
            make_element("b", (0.5, 0.5, 0.9, 0.9), source=ElementSource.STROKE_GEOMETRY,
                         stroke_ids=["square"]),
        ]
        report = run_validation(elements, [square_stroke])

        assert not report.has_errors
        assert report.warning_count == 0
        assert all(c.passed for c in report.checks)

    def test_missing_box(self):
        from inkfusion.validate.rules import run_validation

        report = run_validation([make_element("a")])

        assert report.has_errors
        assert check(report, "bbox_present").evidence == {"element_ids": ["a"]}

    def test_box_outside_canvas(self):
        from inkfusion.validate.rules import run_validation

        report = run_validation([make_element("a", (0.5, 0.5, 1.2, 0.9))])
        assert not check(report, "bbox_normalized").passed

    def test_duplicate_ids(self):
        from inkfusion.validate.rules import run_validation

        report = run_validation([make_element("a", (0, 0, 0.1, 0.1)),
                                 make_element("a", (0.5, 0.5, 0.6, 0.6))])

        assert report.error_count == 1
        assert check(report, "unique_ids").evidence == {"duplicates": ["a"]}

    def test_broken_hierarchy(self):
        from inkfusion.validate.rules import run_validation

        orphan = make_element("child", (0.1, 0.1, 0.2, 0.2), parent_id="ghost", is_child=True)
        flagless = make_element("parent", (0, 0, 0.5, 0.5), children=["child"])
        report = run_validation([orphan, flagless])

        problems = check(report, "hierarchy_consistent").evidence["problems"]
        assert "child: unknown parent ghost" in problems
        assert "parent: is_container does not match children" in problems

    def test_contour_outside_canvas_is_warning(self):
        from inkfusion.validate.rules import run_validation

        element = make_element("a", (0.1, 0.1, 0.4, 0.4), contour=[(0.1, 0.1), (1.5, 0.2)])
        report = run_validation([element])

        assert not report.has_errors
        assert report.warning_count == 1
        assert not check(report, "contour_range").passed

    def test_unknown_stroke_reference(self):
        from inkfusion.models import ElementSource
        from inkfusion.validate.rules import run_validation

        element = make_element("a", (0.1, 0.1, 0.4, 0.4), source=ElementSource.STROKE_GEOMETRY,
                               stroke_ids=["gone"])
        report = run_validation([element], [])

        assert not check(report, "stroke_provenance").passed
        assert not report.has_errors


class TestReport:
    """Tests for report files."""

    def test_report_files(self, temp_dir):
        from inkfusion.models import AnalysisResult
        from inkfusion.validate.report import generate_report
        from inkfusion.validate.rules import run_validation

        elements = [make_element("a")]
        result = AnalysisResult(canvas_width=100, canvas_height=100, elements=elements,
                                validation=run_validation(elements))

        report_path, summary_path = generate_report(result, temp_dir)

        with open(report_path) as f:
            data = json.load(f)
        assert any(c["rule_id"] == "bbox_present" and not c["passed"] for c in data["checks"])

        with open(summary_path) as f:
            summary = f.read()
        assert "ISSUES:" in summary
        assert "[FAIL][ERROR] bbox_present" in summary

    def test_debug_metrics(self, temp_dir):
        from inkfusion.io.save_artifacts import DebugArtifactWriter
        from inkfusion.models import AnalysisResult
        from inkfusion.validate.report import generate_report
        from inkfusion.validate.rules import run_validation

        result = AnalysisResult(canvas_width=100, canvas_height=100, validation=run_validation([]))
        writer = DebugArtifactWriter(temp_dir, "run_test")

        generate_report(result, temp_dir, writer)

        metrics_path = os.path.join(temp_dir, "debug", "run_test", "validation", "metrics.json")
        with open(metrics_path) as f:
            assert json.load(f)["errors"] == 0
