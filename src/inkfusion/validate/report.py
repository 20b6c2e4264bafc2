"""
Validation report generation.

Writes the JSON report and a human-readable summary next to the result.
"""

import os

from inkfusion.io.save_artifacts import ensure_dir, save_json
from inkfusion.tracer import get_tracer, trace


@trace(label="generate_report")
def generate_report(result, out_dir, debug_writer=None):
    """
    Generate validation report files.

    Creates:
    - validation_report.json: full check results
    - validation_summary.txt: human-readable summary

    Returns the two paths.
    """
    tracer = get_tracer()

    report = result.validation

    report_path = os.path.join(out_dir, "validation_report.json")
    save_json(report, report_path)

    failed = [c for c in report.checks if not c.passed]

    lines = ["Ink Fusion Validation Report", "=" * 40, ""]
    lines.append(f"Elements: {len(result.elements)}")
    lines.append(f"Content type: {result.content_type.value}")
    lines.append(f"Total checks: {len(report.checks)}")
    lines.append(f"Passed: {len(report.checks) - len(failed)}")
    lines.append(f"Failed: {len(failed)}")
    lines.append("")

    if failed:
        lines.append("ISSUES:")
        lines.append("-" * 40)
        for check in failed:
            lines.append(format_check_result(check))
        lines.append("")

    lines.append("ALL CHECKS:")
    lines.append("-" * 40)
    lines.extend(format_check_result(check) for check in report.checks)

    summary_path = os.path.join(out_dir, "validation_summary.txt")
    ensure_dir(os.path.dirname(summary_path))
    with open(summary_path, "w", encoding="utf-8") as f:
        f.write("\n".join(lines))

    tracer.event(f"Report saved: {len(report.checks)} checks, {report.error_count} errors")

    if debug_writer:
        debug_writer.save_json({
            "total_checks": len(report.checks),
            "failed": len(failed),
            "errors": report.error_count,
            "warnings": report.warning_count,
        }, "validation", "metrics.json")

    return report_path, summary_path


def format_check_result(check):
    """Format a single check result for display."""
    status = "PASS" if check.passed else "FAIL"
    return f"[{status}][{check.severity.value.upper()}] {check.rule_id}: {check.message}"
