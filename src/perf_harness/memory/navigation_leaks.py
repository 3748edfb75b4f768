"""Memory leak detection across repeated navigation.

Navigating the same routes several times and sampling after each navigation
separates a genuinely accumulating leak (route-scoped listeners or timers not
released on unmount) from one-time warm-up allocation: warm-up shows up in
total growth but not in growth between iterations.
"""

import asyncio
import logging
from collections import defaultdict
from typing import Any, Dict, List, Optional, Sequence

from perf_harness.browser.instrumentation import (
    InstrumentationChannel,
    try_attach_instrumentation,
)
from perf_harness.errors import SamplingError
from perf_harness.memory.heap_sampler import HeapSampler
from perf_harness.models.perf_models import (
    BYTES_PER_MB,
    MemorySnapshot,
    NavigationLeakOptions,
    NavigationLeakResult,
    SeverityLevel,
    SnapshotPhase,
    bytes_to_mb,
)

logger = logging.getLogger(__name__)

# Lower bound (inclusive) of each severity band, highest first
SEVERITY_BANDS = (
    (100.0, SeverityLevel.CRITICAL),
    (50.0, SeverityLevel.HIGH),
    (20.0, SeverityLevel.MEDIUM),
)


def classify_severity(total_growth_mb: float) -> SeverityLevel:
    """Classify total memory growth into a severity level.

    Bands are inclusive on their lower bound: 50.0 is HIGH, 49.999 is MEDIUM.
    """
    for lower_bound, level in SEVERITY_BANDS:
        if total_growth_mb >= lower_bound:
            return level
    return SeverityLevel.LOW


def average_memory_per_iteration(snapshots: Sequence[MemorySnapshot]) -> List[float]:
    """Mean used heap (bytes) of the navigation samples of each iteration."""
    groups: Dict[int, List[int]] = defaultdict(list)
    for snapshot in snapshots:
        if snapshot.iteration is not None:
            groups[snapshot.iteration].append(snapshot.memory.used_heap_bytes)
    return [sum(groups[i]) / len(groups[i]) for i in sorted(groups)]


class NavigationLeakDetector:
    """Navigate a fixed route list N times and measure heap growth."""

    def __init__(
        self,
        page: Any,
        routes: Sequence[str],
        options: Optional[NavigationLeakOptions] = None,
        channel: Optional[InstrumentationChannel] = None,
    ):
        """Initialize the detector.

        Args:
            page: Page to navigate
            routes: Routes or URLs visited in order on every iteration
            options: Scenario options
            channel: Already attached instrumentation channel (optional)

        Raises:
            ValueError: If no routes are given
        """
        if not routes:
            raise ValueError("At least one route is required")
        self.page = page
        self.routes = list(routes)
        self.options = options or NavigationLeakOptions()
        self.channel = channel

    async def run(self) -> NavigationLeakResult:
        """Run the navigation sweep and analyze heap growth.

        Raises:
            SamplingError: If a navigation fails or the heap cannot be read
        """
        opts = self.options
        channel = self.channel
        owns_channel = False
        if opts.enable_gc and channel is None:
            channel = await try_attach_instrumentation(self.page)
            owns_channel = channel is not None

        sampler = HeapSampler(
            self.page, channel, enable_gc=opts.enable_gc, settle_ms=opts.gc_settle_ms
        )
        snapshots: List[MemorySnapshot] = []

        logger.info(
            f"Testing navigation leaks over {len(self.routes)} routes x {opts.iterations} iterations"
        )
        try:
            baseline = await sampler.sample_with_outcome(settle_ms=opts.baseline_settle_ms)
            snapshots.append(
                MemorySnapshot(
                    phase=SnapshotPhase.BASELINE,
                    memory=baseline.sample,
                    route="initial",
                    degraded_reason=baseline.degraded_reason,
                )
            )

            for iteration in range(opts.iterations):
                for route in self.routes:
                    await self._navigate(route, iteration)
                    outcome = await sampler.sample_with_outcome()
                    snapshots.append(
                        MemorySnapshot(
                            phase=SnapshotPhase.NAVIGATION,
                            memory=outcome.sample,
                            route=route,
                            iteration=iteration,
                            degraded_reason=outcome.degraded_reason,
                        )
                    )
                    logger.debug(
                        f"Memory at {route} (iteration {iteration}): {outcome.sample.used_mb}MB"
                    )

            final = await sampler.sample_with_outcome(settle_ms=opts.baseline_settle_ms)
            snapshots.append(
                MemorySnapshot(
                    phase=SnapshotPhase.FINAL,
                    memory=final.sample,
                    degraded_reason=final.degraded_reason,
                )
            )
        finally:
            if owns_channel:
                await channel.detach()

        result = self._analyze(snapshots)
        status = "PASSED" if result.passed else "FAILED"
        logger.info(
            f"Navigation leak test {status}: growth {result.total_growth_mb}MB "
            f"({result.severity_level.value} severity), "
            f"between iterations {result.growth_between_iterations_mb}MB"
        )
        return result

    async def _navigate(self, route: str, iteration: int) -> None:
        opts = self.options
        try:
            await self.page.goto(route)
            await self.page.wait_for_load_state(opts.wait_until)
        except Exception as e:
            logger.error(f"Navigation to {route} failed (iteration {iteration}): {e}")
            raise SamplingError(f"Navigation to {route} failed (iteration {iteration}): {e}")

        if opts.wait_between_navigations_ms > 0:
            await asyncio.sleep(opts.wait_between_navigations_ms / 1000)

    def _analyze(self, snapshots: List[MemorySnapshot]) -> NavigationLeakResult:
        opts = self.options
        baseline = snapshots[0].memory.used_heap_bytes
        final = snapshots[-1].memory.used_heap_bytes

        # Verdicts use the same rounded growth the record reports
        total_growth_mb = bytes_to_mb(final - baseline)

        per_iteration = average_memory_per_iteration(snapshots)
        if len(per_iteration) > 1:
            growth_between = (per_iteration[-1] - per_iteration[0]) / BYTES_PER_MB
        else:
            growth_between = 0.0

        return NavigationLeakResult(
            passed=total_growth_mb < opts.max_allowed_growth_mb,
            baseline_memory_mb=bytes_to_mb(baseline),
            final_memory_mb=bytes_to_mb(final),
            total_growth_mb=total_growth_mb,
            growth_between_iterations_mb=round(growth_between, 2),
            max_allowed_growth_mb=opts.max_allowed_growth_mb,
            iterations=opts.iterations,
            routes_tested=len(self.routes),
            memory_leak=total_growth_mb > opts.max_allowed_growth_mb,
            severity_level=classify_severity(total_growth_mb),
            avg_memory_per_iteration=[bytes_to_mb(m) for m in per_iteration],
            snapshots=snapshots,
        )


async def test_navigation_memory_leaks(
    page: Any,
    routes: Sequence[str],
    options: Optional[NavigationLeakOptions] = None,
    channel: Optional[InstrumentationChannel] = None,
) -> NavigationLeakResult:
    """Navigate ``routes`` repeatedly and report heap growth and severity."""
    return await NavigationLeakDetector(page, routes, options, channel).run()


# Public API name starts with "test_"; keep pytest from collecting it on import
test_navigation_memory_leaks.__test__ = False
