"""Tests for memory monitoring around a single action."""

import asyncio

import pytest
from unittest.mock import AsyncMock, MagicMock

from perf_harness.errors import ActionFailedError, InstrumentationUnavailable
from perf_harness.memory.action_monitor import (
    MAX_CONSECUTIVE_SAMPLE_FAILURES,
    ActionMemoryMonitor,
    monitor_memory_during_action,
)
from perf_harness.memory.heap_sampler import IN_PAGE_GC_SCRIPT, READ_HEAP_SCRIPT
from perf_harness.models.perf_models import ActionMonitorOptions, SnapshotPhase

MB = 1024 * 1024


class FakeHeapPage:
    """Page double that reports a scripted sequence of used-heap readings (MB)."""

    def __init__(self, readings, cdp_available=True):
        self.readings = list(readings)
        self.reads = 0
        self.evaluate = AsyncMock(side_effect=self._evaluate)
        self.goto = AsyncMock()
        self.wait_for_load_state = AsyncMock()
        self.cdp_session = AsyncMock()
        self.context = MagicMock()
        if cdp_available:
            self.context.new_cdp_session = AsyncMock(return_value=self.cdp_session)
        else:
            self.context.new_cdp_session = AsyncMock(side_effect=Exception("not chromium"))

    async def _evaluate(self, script):
        if script == READ_HEAP_SCRIPT:
            used = self.readings[min(self.reads, len(self.readings) - 1)]
            self.reads += 1
            return {
                "used": int(used * MB),
                "total": int((used + 10) * MB),
                "limit": 4096 * MB,
            }
        if script == IN_PAGE_GC_SCRIPT:
            return False
        raise AssertionError(f"unexpected script: {script}")


class FlakyHeapPage(FakeHeapPage):
    """FakeHeapPage whose heap reads fail at the given read indices."""

    def __init__(self, readings, failing_reads):
        super().__init__(readings)
        self.failing_reads = set(failing_reads)

    async def _evaluate(self, script):
        if script == READ_HEAP_SCRIPT and self.reads in self.failing_reads:
            self.reads += 1
            raise Exception("Execution context was destroyed")
        return await super()._evaluate(script)


def fast_options(**overrides):
    values = dict(
        enable_gc=False,
        sample_interval_ms=1,
        max_samples=3,
        gc_settle_ms=0,
        during_gc_settle_ms=0,
        cleanup_grace_ms=0,
        final_settle_ms=0,
    )
    values.update(overrides)
    return ActionMonitorOptions(**values)


class TestActionMonitor:
    """Tests for ActionMemoryMonitor.run."""

    @pytest.mark.asyncio
    async def test_noop_action_has_no_growth(self):
        """Test that an action that allocates nothing reports zero growth."""
        page = FakeHeapPage([40, 40])

        async def noop():
            return None

        result = await monitor_memory_during_action(page, noop, fast_options())

        assert result.memory_growth_mb == 0.0
        assert result.initial_memory_mb == 40.0
        assert result.error is None
        assert result.snapshots[0].phase == SnapshotPhase.BASELINE
        assert result.snapshots[-1].phase == SnapshotPhase.FINAL

    @pytest.mark.asyncio
    async def test_peak_and_growth_with_periodic_samples(self):
        """Test that samples taken while the action runs feed the peak."""
        page = FakeHeapPage([40, 45, 60, 50, 42])

        async def slow_action():
            await asyncio.sleep(0.2)

        result = await monitor_memory_during_action(page, slow_action, fast_options())

        phases = [s.phase for s in result.snapshots]
        assert phases == [
            SnapshotPhase.BASELINE,
            SnapshotPhase.DURING,
            SnapshotPhase.DURING,
            SnapshotPhase.DURING,
            SnapshotPhase.FINAL,
        ]
        assert [s.sample_index for s in result.snapshots[1:-1]] == [0, 1, 2]
        assert result.peak_memory_mb == 60.0
        assert result.memory_growth_mb == 2.0
        assert result.final_memory_mb == 42.0
        assert result.summary.avg_memory_during_action == pytest.approx(51.67)
        assert result.action_duration_ms >= 200 * 0.9

    @pytest.mark.asyncio
    async def test_peak_is_at_least_initial_and_final(self):
        page = FakeHeapPage([40, 30])

        async def shrink():
            return None

        result = await monitor_memory_during_action(page, shrink, fast_options())

        assert result.peak_memory_mb >= result.initial_memory_mb
        assert result.peak_memory_mb >= result.final_memory_mb
        assert result.memory_growth_mb == -10.0

    @pytest.mark.asyncio
    async def test_action_failure_raises_with_partial_result(self):
        """Test that a failing action surfaces with the measurement attached."""
        page = FakeHeapPage([40, 48])

        async def failing():
            raise ValueError("button not found")

        with pytest.raises(ActionFailedError) as exc_info:
            await monitor_memory_during_action(page, failing, fast_options())

        error = exc_info.value
        assert isinstance(error.__cause__, ValueError)
        assert error.result.error == "button not found"
        assert error.result.memory_growth_mb == 8.0
        assert error.stage == "action"

    @pytest.mark.asyncio
    async def test_action_failure_returned_when_not_raising(self):
        page = FakeHeapPage([40, 48])

        async def failing():
            raise RuntimeError("timeout")

        result = await monitor_memory_during_action(
            page, failing, fast_options(raise_on_error=False)
        )

        assert result.error == "timeout"
        assert result.snapshots[-1].phase == SnapshotPhase.FINAL


class TestActionMonitorInstrumentation:
    """Tests for GC handling during monitoring."""

    @pytest.mark.asyncio
    async def test_owns_and_detaches_channel(self):
        """Test that a self-attached channel is used for GC and released."""
        page = FakeHeapPage([40, 40])

        async def noop():
            return None

        await ActionMemoryMonitor(page, fast_options(enable_gc=True)).run(noop)

        page.context.new_cdp_session.assert_called_once()
        page.cdp_session.send.assert_any_call("HeapProfiler.collectGarbage")
        page.cdp_session.detach.assert_called_once()

    @pytest.mark.asyncio
    async def test_supplied_channel_is_not_detached(self):
        page = FakeHeapPage([40, 40])
        channel = MagicMock()
        channel.collect_garbage = AsyncMock()
        channel.detach = AsyncMock()

        async def noop():
            return None

        await ActionMemoryMonitor(page, fast_options(enable_gc=True), channel).run(noop)

        assert channel.collect_garbage.call_count == 2
        channel.detach.assert_not_called()
        page.context.new_cdp_session.assert_not_called()

    @pytest.mark.asyncio
    async def test_degraded_mode_still_measures(self):
        """Test that GC failures are recorded but do not abort the run."""
        page = FakeHeapPage([40, 44])
        channel = MagicMock()
        channel.collect_garbage = AsyncMock(side_effect=InstrumentationUnavailable("detached"))

        async def noop():
            return None

        result = await ActionMemoryMonitor(
            page, fast_options(enable_gc=True), channel
        ).run(noop)

        assert result.memory_growth_mb == 4.0
        assert all("detached" in s.degraded_reason for s in result.snapshots)

    @pytest.mark.asyncio
    async def test_no_cdp_falls_back_to_in_page_gc(self):
        page = FakeHeapPage([40, 40], cdp_available=False)

        async def noop():
            return None

        result = await ActionMemoryMonitor(page, fast_options(enable_gc=True)).run(noop)

        page.evaluate.assert_any_call(IN_PAGE_GC_SCRIPT)
        assert result.snapshots[0].degraded_reason == "no gc hook available"


class TestPeriodicSamplingFailures:
    """Tests for transient heap read failures while the action runs."""

    @pytest.mark.asyncio
    async def test_single_failed_read_does_not_stop_sampling(self):
        """Test that sampling resumes after the page context is briefly destroyed."""
        page = FlakyHeapPage([40, 45, 50, 55, 60, 58, 56, 54, 52, 50, 44], failing_reads={2})

        async def navigating_action():
            await asyncio.sleep(0.2)

        result = await monitor_memory_during_action(
            page,
            navigating_action,
            fast_options(sample_interval_ms=10, max_samples=10),
        )

        during = [s for s in result.snapshots if s.phase == SnapshotPhase.DURING]
        assert len(during) >= 5
        assert 1 not in [s.sample_index for s in during]
        assert result.snapshots[-1].phase == SnapshotPhase.FINAL

    @pytest.mark.asyncio
    async def test_sampling_stops_after_consecutive_failures(self):
        page = FlakyHeapPage([40, 42], failing_reads=range(1, 1 + MAX_CONSECUTIVE_SAMPLE_FAILURES))

        async def slow_action():
            await asyncio.sleep(0.2)

        result = await monitor_memory_during_action(
            page, slow_action, fast_options(max_samples=20)
        )

        assert [s.phase for s in result.snapshots] == [SnapshotPhase.BASELINE, SnapshotPhase.FINAL]
        # baseline, the failed reads, then the final sample
        assert page.reads == MAX_CONSECUTIVE_SAMPLE_FAILURES + 2
        assert result.final_memory_mb == 42.0
