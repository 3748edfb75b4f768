"""Timestamped report artifacts for audit and memory results.

Every run writes three files under the reports directory:

- ``{base}-{timestamp}.html``: the full report (the engine's HTML passed
  through verbatim, or a rendered table for memory results)
- ``{base}-{timestamp}.json``: the raw result as JSON
- ``{base}-{timestamp}-summary.json``: a compact, diffable summary

Reporting is best-effort: write failures are logged and never abort the
scenario, since the caller already holds the in-memory result.
"""

import html
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from perf_harness.models.perf_models import (
    ActionMonitorResult,
    AuditResult,
    NavigationLeakResult,
    ReportArtifacts,
)

logger = logging.getLogger(__name__)

ReportableResult = Union[AuditResult, NavigationLeakResult, ActionMonitorResult]


def artifact_timestamp(now: Optional[datetime] = None) -> str:
    """ISO-8601 UTC timestamp safe for file names (``:`` and ``.`` replaced)."""
    now = now or datetime.now(timezone.utc)
    iso = now.astimezone(timezone.utc).isoformat(timespec="milliseconds")
    return iso.replace("+00:00", "Z").replace(":", "-").replace(".", "-")


def build_audit_summary(result: AuditResult) -> Dict[str, Any]:
    """Compact summary of an audit: scores, vitals, top opportunities, verdict."""
    return {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "url": result.url,
        "scores": dict(result.category_scores),
        "coreWebVitals": {
            name: {
                "value": vital.value,
                "numericValue": vital.numeric_value,
                "score": vital.score,
            }
            for name, vital in result.core_web_vitals.items()
        },
        "opportunities": [
            {
                "title": o.title,
                "description": o.description,
                "savings": o.savings_display,
                "numericSavings": o.numeric_savings,
                "score": o.score,
            }
            for o in result.opportunities[:5]
        ],
        "thresholds": dict(result.thresholds),
        "passed": result.passed,
    }


def build_navigation_summary(result: NavigationLeakResult) -> Dict[str, Any]:
    return {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "type": "navigation-leak",
        "passed": result.passed,
        "baselineMemoryMB": result.baseline_memory_mb,
        "finalMemoryMB": result.final_memory_mb,
        "totalGrowthMB": result.total_growth_mb,
        "growthBetweenIterationsMB": result.growth_between_iterations_mb,
        "maxAllowedGrowthMB": result.max_allowed_growth_mb,
        "iterations": result.iterations,
        "routesTested": result.routes_tested,
        "memoryLeak": result.memory_leak,
        "severityLevel": result.severity_level.value,
        "avgMemoryPerIteration": list(result.avg_memory_per_iteration),
    }


def build_action_summary(result: ActionMonitorResult) -> Dict[str, Any]:
    return {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "type": "action-memory",
        "initialMemoryMB": result.initial_memory_mb,
        "finalMemoryMB": result.final_memory_mb,
        "peakMemoryMB": result.peak_memory_mb,
        "memoryGrowthMB": result.memory_growth_mb,
        "actionDurationMs": result.action_duration_ms,
        "avgMemoryDuringAction": result.summary.avg_memory_during_action,
        "samples": len(result.snapshots),
        "error": result.error,
    }


def build_summary(result: ReportableResult) -> Dict[str, Any]:
    """Summary for any supported result type."""
    if isinstance(result, AuditResult):
        return build_audit_summary(result)
    if isinstance(result, NavigationLeakResult):
        return build_navigation_summary(result)
    if isinstance(result, ActionMonitorResult):
        return build_action_summary(result)
    raise TypeError(f"Unsupported result type: {type(result).__name__}")


def generate_insights(result: AuditResult) -> List[str]:
    """Human-readable insight lines for an audit result."""
    lines = []
    for name, vital in result.core_web_vitals.items():
        value = vital.value if vital.value is not None else vital.numeric_value
        lines.append(f"{name}: {value} (Score: {vital.score})")

    if result.opportunities:
        for opportunity in result.opportunities:
            lines.append(
                f"{opportunity.title}: {opportunity.savings_display} potential savings"
            )
    else:
        lines.append("No major optimization opportunities found")
    return lines


def load_summary(path: Union[str, Path]) -> Dict[str, Any]:
    """Read a summary artifact back."""
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


class ReportGenerator:
    """Persist timestamped report artifacts for one result per call."""

    def __init__(self, reports_dir: Union[str, Path] = "lighthouse-reports"):
        """Initialize the report generator.

        Args:
            reports_dir: Directory for artifacts, created on first write
        """
        self.reports_dir = Path(reports_dir)

    def generate_reports(self, result: ReportableResult, base_name: str) -> ReportArtifacts:
        """Write the full report, raw JSON and summary for ``result``.

        Args:
            result: Audit, navigation leak or action monitor result
            base_name: Base file name for the artifacts

        Returns:
            Paths of the written artifacts (None for an artifact that failed)
        """
        base = f"{base_name}-{artifact_timestamp()}"

        full_report_path = self._write(f"{base}.html", self._full_report(result))
        raw_data_path = self._write(f"{base}.json", self._raw_json(result))
        summary_path = self._write(
            f"{base}-summary.json", json.dumps(build_summary(result), indent=2)
        )

        return ReportArtifacts(
            full_report_path=full_report_path,
            raw_data_path=raw_data_path,
            summary_path=summary_path,
        )

    def _write(self, filename: str, content: str) -> Optional[str]:
        path = self.reports_dir / filename
        try:
            self.reports_dir.mkdir(parents=True, exist_ok=True)
            with open(path, "w", encoding="utf-8") as f:
                f.write(content)
        except OSError as e:
            logger.warning(f"Could not write report {path}: {e}")
            return None
        logger.info(f"Report saved: {path}")
        return str(path)

    @staticmethod
    def _raw_json(result: ReportableResult) -> str:
        if isinstance(result, AuditResult):
            if result.raw_result:
                return json.dumps(result.raw_result, indent=2)
            return result.model_dump_json(indent=2, exclude={"raw_report"})
        return result.model_dump_json(indent=2)

    def _full_report(self, result: ReportableResult) -> str:
        if isinstance(result, AuditResult) and result.raw_report is not None:
            return result.raw_report
        return self._render_html(build_summary(result))

    @staticmethod
    def _render_html(summary: Dict[str, Any]) -> str:
        rows = []
        for key, value in summary.items():
            if isinstance(value, (dict, list)):
                value = json.dumps(value, indent=2)
            rows.append(
                f"<tr><th>{html.escape(str(key))}</th>"
                f"<td><pre>{html.escape(str(value))}</pre></td></tr>"
            )
        title = html.escape(str(summary.get("url") or summary.get("type") or "report"))
        return f"""<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <title>Performance Report - {title}</title>
    <style>
        body {{ font-family: -apple-system, 'Segoe UI', Roboto, Arial, sans-serif; color: #333; }}
        table {{ border-collapse: collapse; }}
        th, td {{ border: 1px solid #ddd; padding: 6px 12px; text-align: left; vertical-align: top; }}
        pre {{ margin: 0; }}
    </style>
</head>
<body>
    <h1>Performance Report - {title}</h1>
    <table>
        {"".join(rows)}
    </table>
</body>
</html>"""


def generate_reports(
    result: ReportableResult,
    base_name: str,
    reports_dir: Union[str, Path] = "lighthouse-reports",
) -> ReportArtifacts:
    """Persist timestamped artifacts for ``result`` under ``reports_dir``."""
    return ReportGenerator(reports_dir).generate_reports(result, base_name)
