"""Data models for heap telemetry, navigation leak detection and page audits.

This module defines the Pydantic models shared by the browser session, the
memory monitors, the performance auditor and the report generator. Result
models are frozen: every run produces a fresh result and nothing mutates it
afterwards.
"""

from pydantic import BaseModel, Field, model_validator
from typing import Dict, List, Any, Optional
from enum import Enum
from datetime import datetime

BYTES_PER_MB = 1024 * 1024


def bytes_to_mb(value: float) -> float:
    """Convert bytes to megabytes rounded to 2 decimals."""
    return round(value / BYTES_PER_MB, 2)


class BrowserType(str, Enum):
    """Supported browser engines."""

    CHROMIUM = "chromium"
    FIREFOX = "firefox"
    WEBKIT = "webkit"


class SnapshotPhase(str, Enum):
    """Point in a scenario at which a heap sample was taken."""

    BASELINE = "baseline"
    DURING = "during"
    FINAL = "final"
    NAVIGATION = "navigation"


class SeverityLevel(str, Enum):
    """Coarse classification of total memory growth."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class FormFactor(str, Enum):
    """Audit device emulation."""

    DESKTOP = "desktop"
    MOBILE = "mobile"


class Viewport(BaseModel):
    """Browser viewport configuration."""

    width: int = Field(default=1280, description="Viewport width")
    height: int = Field(default=720, description="Viewport height")
    device_scale_factor: float = Field(default=1.0, description="Device pixel ratio")
    is_mobile: bool = Field(default=False, description="Mobile viewport")
    has_touch: bool = Field(default=False, description="Touch support")


class MemorySample(BaseModel):
    """Point-in-time reading of JavaScript heap counters."""

    used_heap_bytes: int = Field(ge=0, description="usedJSHeapSize")
    total_heap_bytes: int = Field(ge=0, description="totalJSHeapSize")
    heap_limit_bytes: int = Field(ge=0, description="jsHeapSizeLimit")
    timestamp: datetime = Field(default_factory=datetime.now)

    class Config:
        """Pydantic config."""

        frozen = True

    @model_validator(mode="after")
    def _check_ordering(self) -> "MemorySample":
        if not self.used_heap_bytes <= self.total_heap_bytes <= self.heap_limit_bytes:
            raise ValueError(
                "heap counters must satisfy used <= total <= limit, got "
                f"{self.used_heap_bytes} / {self.total_heap_bytes} / {self.heap_limit_bytes}"
            )
        return self

    @property
    def used_mb(self) -> float:
        return bytes_to_mb(self.used_heap_bytes)


class MemorySnapshot(BaseModel):
    """A heap sample tagged with the scenario context it was captured in."""

    phase: SnapshotPhase = Field(description="Scenario phase")
    memory: MemorySample = Field(description="Heap counters")
    iteration: Optional[int] = Field(default=None, description="Navigation iteration")
    route: Optional[str] = Field(default=None, description="Navigated route")
    sample_index: Optional[int] = Field(
        default=None, description="Index of a periodic sample during an action"
    )
    degraded_reason: Optional[str] = Field(
        default=None, description="Why GC could not be forced before sampling"
    )

    class Config:
        """Pydantic config."""

        frozen = True


class ActionMonitorOptions(BaseModel):
    """Configuration for monitoring memory around one action."""

    enable_gc: bool = Field(default=True, description="Force GC before samples")
    sample_interval_ms: int = Field(default=500, gt=0, description="Sampling period")
    max_samples: int = Field(default=20, ge=0, description="Maximum periodic samples")
    gc_settle_ms: int = Field(default=100, ge=0, description="Wait after initial GC")
    during_gc_settle_ms: int = Field(
        default=50, ge=0, description="Wait after GC for periodic samples"
    )
    cleanup_grace_ms: int = Field(
        default=100, ge=0, description="Grace period after the action settles"
    )
    final_settle_ms: int = Field(default=500, ge=0, description="Wait after final GC")
    raise_on_error: bool = Field(
        default=True, description="Re-raise action failures with the partial result"
    )


class ActionMonitorSummary(BaseModel):
    """Compact statistics for a monitored action."""

    memory_growth_mb: float
    peak_memory_mb: float
    avg_memory_during_action: float

    class Config:
        """Pydantic config."""

        frozen = True


class ActionMonitorResult(BaseModel):
    """Heap behavior measured around one action."""

    initial_memory_mb: float = Field(description="Used heap before the action")
    final_memory_mb: float = Field(description="Used heap after the action")
    peak_memory_mb: float = Field(description="Highest used heap of all samples")
    memory_growth_mb: float = Field(description="final - initial")
    action_duration_ms: float = Field(description="Wall-clock duration of the action")
    snapshots: List[MemorySnapshot] = Field(default_factory=list)
    summary: ActionMonitorSummary
    error: Optional[str] = Field(default=None, description="Action failure, if any")
    timestamp: datetime = Field(default_factory=datetime.now)

    class Config:
        """Pydantic config."""

        frozen = True


class NavigationLeakOptions(BaseModel):
    """Configuration for the repeated-navigation leak scenario."""

    iterations: int = Field(default=3, ge=1, description="Sweeps over the route list")
    wait_between_navigations_ms: int = Field(
        default=500, ge=0, description="Settle time after each navigation"
    )
    enable_gc: bool = Field(default=True, description="Force GC before samples")
    max_allowed_growth_mb: float = Field(default=50.0, description="Pass threshold")
    baseline_settle_ms: int = Field(
        default=1000, ge=0, description="Wait after GC for baseline and final samples"
    )
    gc_settle_ms: int = Field(default=200, ge=0, description="Wait after per-route GC")
    wait_until: str = Field(default="networkidle", description="Load state to await")


class NavigationLeakResult(BaseModel):
    """Outcome of the repeated-navigation leak scenario."""

    passed: bool
    baseline_memory_mb: float
    final_memory_mb: float
    total_growth_mb: float
    growth_between_iterations_mb: float
    max_allowed_growth_mb: float
    iterations: int
    routes_tested: int
    memory_leak: bool
    severity_level: SeverityLevel
    avg_memory_per_iteration: List[float] = Field(default_factory=list)
    snapshots: List[MemorySnapshot] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=datetime.now)

    class Config:
        """Pydantic config."""

        frozen = True


class CoreWebVital(BaseModel):
    """A timing metric reported by the audit engine."""

    value: Optional[str] = Field(default=None, description="Display value")
    numeric_value: Optional[float] = Field(default=None, description="Raw value")
    score: int = Field(default=0, description="0-100 score")


class Opportunity(BaseModel):
    """An audit finding with quantified potential savings."""

    title: str
    description: str = ""
    savings_display: str = Field(description="Human-readable savings")
    numeric_savings: float = Field(description="Savings used for ranking")
    score: int = Field(default=0, description="0-100 score")


class ThresholdVerdict(BaseModel):
    """Pass/fail of one category against its threshold."""

    category: str
    score: float
    threshold: float
    passed: bool

    class Config:
        """Pydantic config."""

        frozen = True


class ThresholdReport(BaseModel):
    """All verdicts of a threshold check."""

    verdicts: List[ThresholdVerdict] = Field(default_factory=list)
    all_passed: bool

    class Config:
        """Pydantic config."""

        frozen = True

    def failed(self) -> List[ThresholdVerdict]:
        return [v for v in self.verdicts if not v.passed]


class AuditSettings(BaseModel):
    """Settings handed to the audit engine."""

    only_categories: List[str] = Field(
        default_factory=lambda: [
            "performance",
            "accessibility",
            "best-practices",
            "seo",
        ]
    )
    form_factor: FormFactor = Field(default=FormFactor.DESKTOP)
    throttling: Dict[str, float] = Field(
        default_factory=lambda: {
            "rttMs": 40,
            "throughputKbps": 10240,
            "cpuSlowdownMultiplier": 1,
            "requestLatencyMs": 0,
            "downloadThroughputKbps": 0,
            "uploadThroughputKbps": 0,
        }
    )
    screen_width: int = Field(default=1350)
    screen_height: int = Field(default=940)
    device_scale_factor: float = Field(default=1.0)
    extra_flags: List[str] = Field(
        default_factory=list, description="Additional engine command-line flags"
    )

    @classmethod
    def mobile(cls) -> "AuditSettings":
        """Mobile preset (Pixel 5 sized screen, simulated slow 4G)."""
        return cls(
            form_factor=FormFactor.MOBILE,
            throttling={
                "rttMs": 150,
                "throughputKbps": 1638.4,
                "cpuSlowdownMultiplier": 4,
                "requestLatencyMs": 0,
                "downloadThroughputKbps": 0,
                "uploadThroughputKbps": 0,
            },
            screen_width=393,
            screen_height=851,
            device_scale_factor=2.75,
        )


class AuditResult(BaseModel):
    """Scores, metrics and opportunities for one audited URL."""

    url: str
    category_scores: Dict[str, int] = Field(default_factory=dict)
    core_web_vitals: Dict[str, CoreWebVital] = Field(default_factory=dict)
    opportunities: List[Opportunity] = Field(default_factory=list)
    thresholds: Dict[str, float] = Field(default_factory=dict)
    passed: bool = False
    threshold_verdicts: List[ThresholdVerdict] = Field(default_factory=list)
    raw_report: Optional[str] = Field(default=None, description="Opaque HTML report")
    raw_result: Dict[str, Any] = Field(default_factory=dict, description="Raw lhr")
    timestamp: datetime = Field(default_factory=datetime.now)

    class Config:
        """Pydantic config."""

        frozen = True


class ReportArtifacts(BaseModel):
    """Paths of the files persisted for one run."""

    full_report_path: Optional[str] = None
    raw_data_path: Optional[str] = None
    summary_path: Optional[str] = None

    class Config:
        """Pydantic config."""

        frozen = True
