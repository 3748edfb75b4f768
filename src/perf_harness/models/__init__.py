"""Models package for the performance harness."""

from .perf_models import (
    BYTES_PER_MB,
    bytes_to_mb,
    BrowserType,
    SnapshotPhase,
    SeverityLevel,
    FormFactor,
    Viewport,
    MemorySample,
    MemorySnapshot,
    ActionMonitorOptions,
    ActionMonitorSummary,
    ActionMonitorResult,
    NavigationLeakOptions,
    NavigationLeakResult,
    CoreWebVital,
    Opportunity,
    ThresholdVerdict,
    ThresholdReport,
    AuditSettings,
    AuditResult,
    ReportArtifacts,
)

__all__ = [
    "BYTES_PER_MB",
    "bytes_to_mb",
    # Enums
    "BrowserType",
    "SnapshotPhase",
    "SeverityLevel",
    "FormFactor",
    # Browser
    "Viewport",
    # Memory
    "MemorySample",
    "MemorySnapshot",
    "ActionMonitorOptions",
    "ActionMonitorSummary",
    "ActionMonitorResult",
    "NavigationLeakOptions",
    "NavigationLeakResult",
    # Audit
    "CoreWebVital",
    "Opportunity",
    "ThresholdVerdict",
    "ThresholdReport",
    "AuditSettings",
    "AuditResult",
    # Reporting
    "ReportArtifacts",
]
