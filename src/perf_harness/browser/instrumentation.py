"""Heap instrumentation channel over the Chrome DevTools Protocol.

The channel is an explicit capability object handed to the heap sampler. It
exposes the two things the memory scenarios need: forcing a garbage
collection and (optionally) taking a heap snapshot. Heap counters themselves
are read in-page from ``performance.memory``.
"""

from typing import Any, Optional, Protocol
import logging

from perf_harness.errors import InstrumentationUnavailable

logger = logging.getLogger(__name__)


class PageHandle(Protocol):
    """Page capability used by the scenarios and pre-audit scripts.

    Playwright's ``Page`` satisfies this protocol; tests substitute mocks.
    """

    async def goto(self, url: str, **kwargs: Any) -> Any: ...

    async def evaluate(self, expression: str, arg: Any = None) -> Any: ...

    async def wait_for_load_state(self, state: str = "load", **kwargs: Any) -> None: ...

    async def wait_for_timeout(self, timeout: float) -> None: ...


class InstrumentationChannel:
    """CDP session with Runtime and HeapProfiler domains enabled."""

    def __init__(self, session: Any):
        """Initialize the channel.

        Args:
            session: Enabled Playwright CDPSession
        """
        self._session = session
        self._detached = False

    @property
    def is_attached(self) -> bool:
        return not self._detached

    async def collect_garbage(self) -> None:
        """Request a full garbage collection.

        Raises:
            InstrumentationUnavailable: If the channel is detached or the request fails
        """
        if self._detached:
            raise InstrumentationUnavailable("channel already detached")
        try:
            await self._session.send("HeapProfiler.collectGarbage")
        except Exception as e:
            raise InstrumentationUnavailable(f"Could not force garbage collection: {e}")

    async def take_heap_snapshot(self) -> bool:
        """Take a heap snapshot. Best-effort.

        Returns:
            True if the snapshot request succeeded
        """
        if self._detached:
            logger.warning("Cannot take heap snapshot: channel detached")
            return False
        try:
            await self._session.send("HeapProfiler.takeHeapSnapshot")
            return True
        except Exception as e:
            logger.warning(f"Could not take heap snapshot: {e}")
            return False

    async def detach(self) -> None:
        """Detach from the page. Safe to call more than once."""
        if self._detached:
            return
        self._detached = True
        try:
            await self._session.detach()
            logger.debug("Instrumentation channel detached")
        except Exception as e:
            logger.warning(f"Error detaching instrumentation channel: {e}")


async def attach_instrumentation(page: Any) -> InstrumentationChannel:
    """Open a CDP session for the page and enable heap introspection.

    Args:
        page: Playwright page

    Returns:
        Attached instrumentation channel

    Raises:
        InstrumentationUnavailable: If the CDP session cannot be created or enabled
    """
    try:
        session = await page.context.new_cdp_session(page)
    except Exception as e:
        raise InstrumentationUnavailable(f"CDP session unavailable: {e}")

    try:
        await session.send("Runtime.enable")
        await session.send("HeapProfiler.enable")
    except Exception as e:
        try:
            await session.detach()
        except Exception as detach_error:
            logger.debug(f"Ignoring detach failure after enable error: {detach_error}")
        raise InstrumentationUnavailable(f"Could not enable heap profiler: {e}")

    logger.debug("Instrumentation channel attached")
    return InstrumentationChannel(session)


async def try_attach_instrumentation(page: Any) -> Optional[InstrumentationChannel]:
    """Attach instrumentation, degrading to ``None`` when it is unavailable."""
    try:
        return await attach_instrumentation(page)
    except InstrumentationUnavailable as e:
        logger.warning(f"Proceeding without forced GC: {e}")
        return None
