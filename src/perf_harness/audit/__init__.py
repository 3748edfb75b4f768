"""Page-performance audits and threshold evaluation."""

from perf_harness.audit.engine import AuditEngine, EngineResult, LighthouseEngine
from perf_harness.audit.performance_auditor import (
    CORE_WEB_VITALS,
    PerformanceAuditor,
    extract_category_scores,
    extract_core_web_vitals,
    extract_opportunities,
    run_performance_audit,
)
from perf_harness.audit.thresholds import check_thresholds, normalize_score

__all__ = [
    "AuditEngine",
    "EngineResult",
    "LighthouseEngine",
    "CORE_WEB_VITALS",
    "PerformanceAuditor",
    "extract_category_scores",
    "extract_core_web_vitals",
    "extract_opportunities",
    "run_performance_audit",
    "check_thresholds",
    "normalize_score",
]
