"""Browser runtime telemetry and regression detection.

This package provides:
- Scoped Playwright browser sessions with a CDP heap instrumentation channel
- GC-stabilized heap sampling
- Memory monitoring around arbitrary actions
- Navigation memory leak detection with severity classification
- Scripted page-performance audits (Lighthouse)
- Threshold evaluation and timestamped report artifacts
"""

from perf_harness.errors import (
    PerfHarnessError,
    LaunchError,
    InstrumentationUnavailable,
    SamplingError,
    ActionFailedError,
    AuditError,
)
from perf_harness.browser import BrowserSession, SessionOptions
from perf_harness.memory import (
    HeapSampler,
    monitor_memory_during_action,
    test_navigation_memory_leaks,
    classify_severity,
)
from perf_harness.audit import (
    PerformanceAuditor,
    run_performance_audit,
    check_thresholds,
)
from perf_harness.reporting import ReportGenerator, generate_reports

__version__ = "0.1.0"

__all__ = [
    "PerfHarnessError",
    "LaunchError",
    "InstrumentationUnavailable",
    "SamplingError",
    "ActionFailedError",
    "AuditError",
    "BrowserSession",
    "SessionOptions",
    "HeapSampler",
    "monitor_memory_during_action",
    "test_navigation_memory_leaks",
    "classify_severity",
    "PerformanceAuditor",
    "run_performance_audit",
    "check_thresholds",
    "ReportGenerator",
    "generate_reports",
]
