"""Per-test memory logging helper."""

import logging
import time
from typing import Optional

from perf_harness.models.perf_models import (
    MemorySample,
    NavigationLeakResult,
    bytes_to_mb,
)

logger = logging.getLogger(__name__)


class MemoryReporter:
    """Log heap readings for one named test with elapsed time."""

    def __init__(self, test_name: str, log: Optional[logging.Logger] = None):
        self.test_name = test_name
        self.log = log or logger
        self._start = time.monotonic()

    def _elapsed_ms(self) -> int:
        return int((time.monotonic() - self._start) * 1000)

    def log_memory_usage(self, phase: str, memory: MemorySample) -> str:
        message = (
            f"[{self.test_name}] {phase}: {memory.used_mb}MB "
            f"({self._elapsed_ms()}ms elapsed)"
        )
        self.log.info(message)
        return message

    def log_memory_difference(
        self, before: MemorySample, after: MemorySample, phase: str = "operation"
    ) -> str:
        diff_mb = bytes_to_mb(after.used_heap_bytes - before.used_heap_bytes)
        change = f"+{diff_mb}MB" if diff_mb > 0 else f"{diff_mb}MB"
        message = (
            f"[{self.test_name}] {phase}: {before.used_mb}MB -> {after.used_mb}MB ({change})"
        )
        self.log.info(message)
        return message

    def log_test_result(self, result: NavigationLeakResult) -> str:
        status = "PASSED" if result.passed else "FAILED"
        message = (
            f"[{self.test_name}] {status}: Memory growth {result.total_growth_mb}MB "
            f"({result.severity_level.value} severity)"
        )
        if result.passed:
            self.log.info(message)
        else:
            self.log.warning(message)
        return message
