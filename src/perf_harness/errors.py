"""Error taxonomy for the performance harness.

Every error carries the ``stage`` that failed so scenario-level failures
surface as a single descriptive error (launch, instrumentation, sampling,
action, audit).
"""

from typing import Any, Optional


class PerfHarnessError(Exception):
    """Base class for all harness errors."""

    stage: str = "harness"

    def __init__(self, message: str, stage: Optional[str] = None):
        if stage is not None:
            self.stage = stage
        super().__init__(f"[{self.stage}] {message}")


class LaunchError(PerfHarnessError):
    """Raised when the browser process, context or page cannot be started."""

    stage = "launch"


class InstrumentationUnavailable(PerfHarnessError):
    """Raised when the CDP channel cannot be enabled or a GC request fails.

    Callers treat this as degraded mode: they log and keep sampling.
    """

    stage = "instrumentation"


class SamplingError(PerfHarnessError):
    """Raised when a scenario cannot reach the state it needs to sample."""

    stage = "sampling"


class ActionFailedError(PerfHarnessError):
    """Raised when a monitored action fails.

    The partial memory measurement is kept on ``result``.
    """

    stage = "action"

    def __init__(self, message: str, result: Any = None):
        super().__init__(message)
        self.result = result


class AuditError(PerfHarnessError):
    """Raised when the audit engine errors or returns no categories."""

    stage = "audit"
