"""
Validation rules for analysis results.

Checks the geometric and structural guarantees every returned element set
is expected to honor.
"""

from inkfusion.models import BBOX_TOLERANCE, CheckResult, ElementSource, Severity, ValidationReport
from inkfusion.tracer import get_tracer, trace


@trace(label="run_validation")
def run_validation(elements, strokes=None):
    """
    Run all validation checks on a fused element list.

    Returns ValidationReport with all check results.
    """
    tracer = get_tracer()

    checks = [
        check_boxes_present(elements),
        check_boxes_normalized(elements),
        check_unique_ids(elements),
        check_hierarchy(elements),
        check_contours(elements),
        check_stroke_provenance(elements, strokes or []),
    ]
    report = ValidationReport(checks=checks)

    tracer.event(f"Validation complete: {report.error_count} errors, {report.warning_count} warnings")
    return report


def check_boxes_present(elements):
    """Every fused element carries a bounding box."""
    missing = [e.id for e in elements if e.bounding_box is None]
    if missing:
        return CheckResult(
            rule_id="bbox_present",
            severity=Severity.ERROR,
            passed=False,
            message=f"{len(missing)} element(s) without a bounding box",
            evidence={"element_ids": missing},
        )
    return CheckResult(
        rule_id="bbox_present",
        severity=Severity.ERROR,
        passed=True,
        message="All elements have bounding boxes",
    )


def _in_unit_range(value):
    return -BBOX_TOLERANCE <= value <= 1 + BBOX_TOLERANCE


def check_boxes_normalized(elements):
    """Box corners lie in [0, 1]."""
    outside = [
        e.id for e in elements
        if e.bounding_box is not None
        and not all(_in_unit_range(v) for v in e.bounding_box.as_list())
    ]
    if outside:
        return CheckResult(
            rule_id="bbox_normalized",
            severity=Severity.ERROR,
            passed=False,
            message=f"{len(outside)} box(es) outside normalized canvas range",
            evidence={"element_ids": outside},
        )
    return CheckResult(
        rule_id="bbox_normalized",
        severity=Severity.ERROR,
        passed=True,
        message="All boxes are normalized to [0, 1]",
    )


def check_unique_ids(elements):
    seen = set()
    duplicates = []
    for e in elements:
        if e.id in seen:
            duplicates.append(e.id)
        seen.add(e.id)

    return CheckResult(
        rule_id="unique_ids",
        severity=Severity.ERROR,
        passed=not duplicates,
        message=f"{len(duplicates)} duplicate element id(s)" if duplicates else "Element ids are unique",
        evidence={"duplicates": duplicates} if duplicates else {},
    )


def check_hierarchy(elements):
    """
    Parent and child links agree and the container/child flags match them.
    """
    by_id = {e.id: e for e in elements}
    problems = []

    for e in elements:
        if e.is_container != bool(e.children):
            problems.append(f"{e.id}: is_container does not match children")
        if e.is_child != (e.parent_id is not None):
            problems.append(f"{e.id}: is_child does not match parent_id")
        if e.parent_id is not None:
            parent = by_id.get(e.parent_id)
            if parent is None:
                problems.append(f"{e.id}: unknown parent {e.parent_id}")
            elif e.id not in parent.children:
                problems.append(f"{e.id}: not listed by parent {e.parent_id}")
        for child_id in e.children:
            if child_id not in by_id:
                problems.append(f"{e.id}: unknown child {child_id}")

    return CheckResult(
        rule_id="hierarchy_consistent",
        severity=Severity.ERROR,
        passed=not problems,
        message=f"{len(problems)} hierarchy inconsistencies" if problems else "Hierarchy links are consistent",
        evidence={"problems": problems[:20]} if problems else {},
    )


def check_contours(elements):
    """Contours stay within the canvas."""
    outside = [
        e.id for e in elements
        if e.contour and not all(_in_unit_range(p.x) and _in_unit_range(p.y) for p in e.contour)
    ]
    with_contour = sum(1 for e in elements if e.contour)

    return CheckResult(
        rule_id="contour_range",
        severity=Severity.WARN,
        passed=not outside,
        message=(f"{len(outside)} contour(s) leave the canvas" if outside
                 else f"{with_contour} contour(s) within canvas"),
        evidence={"element_ids": outside} if outside else {"with_contour": with_contour},
    )


def check_stroke_provenance(elements, strokes):
    """Stroke-geometry elements reference ink that exists."""
    stroke_ids = {s.id for s in strokes}
    orphans = []
    for e in elements:
        if e.source != ElementSource.STROKE_GEOMETRY:
            continue
        if not e.stroke_ids or any(sid not in stroke_ids for sid in e.stroke_ids):
            orphans.append(e.id)

    return CheckResult(
        rule_id="stroke_provenance",
        severity=Severity.WARN,
        passed=not orphans,
        message=(f"{len(orphans)} stroke-geometry element(s) with missing strokes" if orphans
                 else "Stroke-geometry elements reference known strokes"),
        evidence={"element_ids": orphans} if orphans else {},
    )
