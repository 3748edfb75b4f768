"""Report artifacts for audit and memory results."""

from perf_harness.reporting.report_generator import (
    ReportGenerator,
    artifact_timestamp,
    build_summary,
    generate_insights,
    generate_reports,
    load_summary,
)

__all__ = [
    "ReportGenerator",
    "artifact_timestamp",
    "build_summary",
    "generate_insights",
    "generate_reports",
    "load_summary",
]
