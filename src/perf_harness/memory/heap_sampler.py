"""GC-stabilized heap sampling.

The HeapSampler reads ``performance.memory`` counters from the page after
forcing a garbage collection through the instrumentation channel. Forcing GC
is best-effort: when it cannot be done the sampler logs a warning and samples
anyway, recording why on the SampleOutcome.
"""

import asyncio
import logging
from typing import Any, Optional

from pydantic import BaseModel

from perf_harness.browser.instrumentation import InstrumentationChannel
from perf_harness.errors import InstrumentationUnavailable, SamplingError
from perf_harness.models.perf_models import MemorySample

logger = logging.getLogger(__name__)

READ_HEAP_SCRIPT = """
() => {
    // performance.memory is only available in Chromium-based browsers
    const memory = performance.memory;
    if (!memory) {
        return null;
    }
    return {
        used: memory.usedJSHeapSize,
        total: memory.totalJSHeapSize,
        limit: memory.jsHeapSizeLimit
    };
}
"""

# Fallback when no CDP channel is attached; window.gc only exists with --expose-gc
IN_PAGE_GC_SCRIPT = """
() => {
    if (typeof window.gc === 'function') {
        window.gc();
        return true;
    }
    return false;
}
"""

COUNT_DOM_NODES_SCRIPT = "() => document.querySelectorAll('*').length"


class SampleOutcome(BaseModel):
    """A sample plus the reason GC could not be forced, if any."""

    sample: MemorySample
    degraded_reason: Optional[str] = None

    @property
    def degraded(self) -> bool:
        return self.degraded_reason is not None


class HeapSampler:
    """Take single, GC-stabilized heap measurements of one page."""

    def __init__(
        self,
        page: Any,
        channel: Optional[InstrumentationChannel] = None,
        enable_gc: bool = True,
        settle_ms: int = 100,
    ):
        """Initialize the sampler.

        Args:
            page: Page to read heap counters from
            channel: Instrumentation channel used to force GC (optional)
            enable_gc: Force GC before each sample
            settle_ms: Default delay between GC and reading counters
        """
        self.page = page
        self.channel = channel
        self.enable_gc = enable_gc
        self.settle_ms = settle_ms
        self._warned_no_hook = False

    async def force_gc(self) -> Optional[str]:
        """Request a garbage collection.

        Returns:
            None when GC was forced (or is disabled), otherwise the reason it
            could not be forced
        """
        if not self.enable_gc:
            return None

        if self.channel is not None:
            try:
                await self.channel.collect_garbage()
                return None
            except InstrumentationUnavailable as e:
                logger.warning(f"{e}; sampling without forced GC")
                return str(e)

        try:
            collected = await self.page.evaluate(IN_PAGE_GC_SCRIPT)
        except Exception as e:
            logger.warning(f"In-page GC request failed: {e}; sampling without forced GC")
            return f"in-page gc failed: {e}"

        if collected:
            return None

        if not self._warned_no_hook:
            logger.warning("No GC hook available; heap samples may be noisier")
            self._warned_no_hook = True
        return "no gc hook available"

    async def read_counters(self) -> MemorySample:
        """Read heap counters without forcing GC.

        Raises:
            SamplingError: If the page cannot be evaluated
        """
        try:
            counters = await self.page.evaluate(READ_HEAP_SCRIPT)
        except Exception as e:
            logger.error(f"Failed to read heap counters: {e}")
            raise SamplingError(f"Could not read heap counters: {e}")

        if not counters:
            logger.warning("performance.memory not available; reporting zero heap usage")
            counters = {}

        # Chromium quantizes these values, so enforce used <= total <= limit
        used = max(0, int(counters.get("used") or 0))
        total = max(used, int(counters.get("total") or 0))
        limit = max(total, int(counters.get("limit") or 0))

        return MemorySample(
            used_heap_bytes=used,
            total_heap_bytes=total,
            heap_limit_bytes=limit,
        )

    async def sample_with_outcome(self, settle_ms: Optional[int] = None) -> SampleOutcome:
        """Force GC (best-effort), wait for the heap to settle and sample.

        Args:
            settle_ms: Override for the settle delay after GC

        Returns:
            Sample and degraded reason
        """
        degraded_reason = await self.force_gc()
        if self.enable_gc and degraded_reason is None:
            delay = self.settle_ms if settle_ms is None else settle_ms
            if delay > 0:
                await asyncio.sleep(delay / 1000)

        sample = await self.read_counters()
        logger.debug(
            f"Heap sample: {sample.used_mb}MB used"
            + (f" (degraded: {degraded_reason})" if degraded_reason else "")
        )
        return SampleOutcome(sample=sample, degraded_reason=degraded_reason)

    async def sample(self, settle_ms: Optional[int] = None) -> MemorySample:
        """Take one heap sample; never fails because GC was unavailable."""
        outcome = await self.sample_with_outcome(settle_ms)
        return outcome.sample

    async def count_dom_nodes(self) -> int:
        """Count the elements currently in the document."""
        try:
            return int(await self.page.evaluate(COUNT_DOM_NODES_SCRIPT))
        except Exception as e:
            raise SamplingError(f"Could not count DOM nodes: {e}")
