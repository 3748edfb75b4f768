"""Memory monitoring around a single caller-supplied action.

The monitor samples the heap before the action, keeps a periodic sampling
task running while the action is in flight (both are pending on the same
event loop), and samples again once the action has settled.
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, List, Optional

from perf_harness.browser.instrumentation import (
    InstrumentationChannel,
    try_attach_instrumentation,
)
from perf_harness.errors import ActionFailedError, SamplingError
from perf_harness.memory.heap_sampler import HeapSampler, SampleOutcome
from perf_harness.models.perf_models import (
    ActionMonitorOptions,
    ActionMonitorResult,
    ActionMonitorSummary,
    MemorySnapshot,
    SnapshotPhase,
    bytes_to_mb,
)

logger = logging.getLogger(__name__)

Action = Callable[[], Awaitable[Any]]

MAX_CONSECUTIVE_SAMPLE_FAILURES = 5


def _snapshot(phase: SnapshotPhase, outcome: SampleOutcome, **context: Any) -> MemorySnapshot:
    return MemorySnapshot(
        phase=phase,
        memory=outcome.sample,
        degraded_reason=outcome.degraded_reason,
        **context,
    )


class ActionMemoryMonitor:
    """Measure heap behavior around one asynchronous action.

    PATTERN: The periodic sampler is an asyncio task interleaved with the
    action, never a thread. It is stopped before the final sample so the
    snapshot sequence stays in capture order.
    """

    def __init__(
        self,
        page: Any,
        options: Optional[ActionMonitorOptions] = None,
        channel: Optional[InstrumentationChannel] = None,
    ):
        """Initialize the monitor.

        Args:
            page: Page whose heap is measured
            options: Monitoring options
            channel: Already attached instrumentation channel; when omitted and
                GC is enabled the monitor attaches (and detaches) its own
        """
        self.page = page
        self.options = options or ActionMonitorOptions()
        self.channel = channel

    async def run(self, action: Action) -> ActionMonitorResult:
        """Execute the action while sampling heap usage.

        Args:
            action: Zero-argument coroutine function to measure

        Returns:
            ActionMonitorResult with growth and peak statistics

        Raises:
            ActionFailedError: If the action raised and ``raise_on_error`` is
                set; the partial result is available as ``error.result``
            SamplingError: If the heap cannot be read at all
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
        sampling_task: Optional[asyncio.Task] = None

        try:
            initial = await sampler.sample_with_outcome()
            snapshots.append(_snapshot(SnapshotPhase.BASELINE, initial))

            sampling_task = asyncio.create_task(self._sample_periodically(sampler, snapshots))

            action_error: Optional[Exception] = None
            action_start = time.perf_counter()
            try:
                await action()
            except Exception as e:
                action_error = e
                logger.warning(f"Monitored action failed: {e}; completing measurement")
            action_duration_ms = (time.perf_counter() - action_start) * 1000

            # Allow a moment for any async cleanup
            if opts.cleanup_grace_ms > 0:
                await asyncio.sleep(opts.cleanup_grace_ms / 1000)
            await self._stop(sampling_task)

            final = await sampler.sample_with_outcome(settle_ms=opts.final_settle_ms)
            snapshots.append(_snapshot(SnapshotPhase.FINAL, final))
        finally:
            if sampling_task is not None and not sampling_task.done():
                await self._stop(sampling_task)
            if owns_channel:
                await channel.detach()

        result = self._build_result(snapshots, action_duration_ms, action_error)
        logger.info(
            f"Action memory: {result.initial_memory_mb}MB -> {result.final_memory_mb}MB "
            f"(growth {result.memory_growth_mb}MB, peak {result.peak_memory_mb}MB)"
        )

        if action_error is not None and opts.raise_on_error:
            raise ActionFailedError(
                f"Monitored action failed: {action_error}", result=result
            ) from action_error
        return result

    async def _sample_periodically(
        self, sampler: HeapSampler, snapshots: List[MemorySnapshot]
    ) -> None:
        opts = self.options
        consecutive_failures = 0
        for sample_index in range(opts.max_samples):
            await asyncio.sleep(opts.sample_interval_ms / 1000)
            try:
                outcome = await sampler.sample_with_outcome(settle_ms=opts.during_gc_settle_ms)
            except SamplingError as e:
                # Navigations inside the action briefly destroy the execution context
                consecutive_failures += 1
                if consecutive_failures >= MAX_CONSECUTIVE_SAMPLE_FAILURES:
                    logger.warning(
                        f"Stopping periodic sampling after {consecutive_failures} "
                        f"consecutive failures: {e}"
                    )
                    return
                logger.debug(f"Skipping periodic sample {sample_index}: {e}")
                continue
            consecutive_failures = 0
            snapshots.append(
                _snapshot(SnapshotPhase.DURING, outcome, sample_index=sample_index)
            )

    @staticmethod
    async def _stop(task: asyncio.Task) -> None:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    @staticmethod
    def _build_result(
        snapshots: List[MemorySnapshot],
        action_duration_ms: float,
        action_error: Optional[Exception],
    ) -> ActionMonitorResult:
        initial = snapshots[0].memory.used_heap_bytes
        final = snapshots[-1].memory.used_heap_bytes
        peak = max(s.memory.used_heap_bytes for s in snapshots)

        during = [
            s.memory.used_heap_bytes for s in snapshots if s.phase == SnapshotPhase.DURING
        ]
        avg_during = sum(during) / max(1, len(during))

        growth_mb = bytes_to_mb(final - initial)
        peak_mb = bytes_to_mb(peak)

        return ActionMonitorResult(
            initial_memory_mb=bytes_to_mb(initial),
            final_memory_mb=bytes_to_mb(final),
            peak_memory_mb=peak_mb,
            memory_growth_mb=growth_mb,
            action_duration_ms=round(action_duration_ms, 2),
            snapshots=snapshots,
            summary=ActionMonitorSummary(
                memory_growth_mb=growth_mb,
                peak_memory_mb=peak_mb,
                avg_memory_during_action=bytes_to_mb(avg_during),
            ),
            error=str(action_error) if action_error is not None else None,
        )


async def monitor_memory_during_action(
    page: Any,
    action: Action,
    options: Optional[ActionMonitorOptions] = None,
    channel: Optional[InstrumentationChannel] = None,
) -> ActionMonitorResult:
    """Measure heap usage before, during and after ``action``."""
    return await ActionMemoryMonitor(page, options, channel).run(action)
