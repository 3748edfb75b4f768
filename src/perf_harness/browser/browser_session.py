"""Scoped browser session for measurement scenarios.

A BrowserSession owns one browser process, one isolated context and one page,
plus an optional instrumentation channel. It is released on every exit path.
"""

from typing import Optional, List, Any
import logging

from pydantic import BaseModel, Field
from playwright.async_api import Page

from perf_harness.browser.playwright_integration import PlaywrightManager
from perf_harness.browser.instrumentation import (
    InstrumentationChannel,
    attach_instrumentation,
    try_attach_instrumentation,
)
from perf_harness.config.harness_config import DEFAULT_LAUNCH_ARGS, HarnessConfig
from perf_harness.models.perf_models import BrowserType, Viewport

logger = logging.getLogger(__name__)


class SessionOptions(BaseModel):
    """Options for opening a browser session."""

    browser_type: BrowserType = Field(default=BrowserType.CHROMIUM)
    headless: bool = Field(default=True)
    viewport: Viewport = Field(default_factory=Viewport)
    launch_args: List[str] = Field(default_factory=lambda: list(DEFAULT_LAUNCH_ARGS))
    debugging_port: Optional[int] = Field(
        default=None, description="Expose a remote debugging port for the audit engine"
    )
    user_agent: Optional[str] = Field(default=None)
    base_url: Optional[str] = Field(default=None)
    ignore_https_errors: bool = Field(default=True)
    default_timeout_ms: int = Field(default=30000)

    @classmethod
    def from_config(cls, config: HarnessConfig, **overrides: Any) -> "SessionOptions":
        """Build session options from harness configuration."""
        values = {
            "browser_type": config.browser_type,
            "headless": config.headless,
            "launch_args": list(config.launch_args),
            "base_url": config.base_url,
            "default_timeout_ms": config.navigation_timeout_ms,
        }
        values.update(overrides)
        return cls(**values)


class BrowserSession:
    """One browser process, context and page used sequentially by a scenario.

    Example:
        async with await BrowserSession.open(options) as session:
            channel = await session.try_attach_instrumentation()
            await session.page.goto("/")
        # Browser and channel released, even on error
    """

    def __init__(self, options: Optional[SessionOptions] = None, manager=None):
        self.options = options or SessionOptions()
        self.manager = manager or PlaywrightManager()
        self.page: Optional[Page] = None
        self.channel: Optional[InstrumentationChannel] = None
        self._closed = False

    @classmethod
    async def open(
        cls, options: Optional[SessionOptions] = None, manager=None
    ) -> "BrowserSession":
        """Launch the browser and open an isolated page.

        Raises:
            LaunchError: If any launch step fails (resources already acquired
                are released before the error propagates)
        """
        session = cls(options, manager)
        try:
            await session._start()
        except Exception:
            await session.close()
            raise
        return session

    async def _start(self) -> None:
        opts = self.options
        browser = await self.manager.launch_browser(
            browser_type=opts.browser_type,
            headless=opts.headless,
            args=opts.launch_args,
            debugging_port=opts.debugging_port,
        )
        context = await self.manager.create_context(
            browser,
            viewport=opts.viewport,
            user_agent=opts.user_agent,
            base_url=opts.base_url,
            ignore_https_errors=opts.ignore_https_errors,
        )
        self.page = await self.manager.create_page(context)
        self.page.set_default_timeout(opts.default_timeout_ms)
        logger.info(
            f"Browser session opened ({opts.browser_type.value}, headless={opts.headless})"
        )

    async def __aenter__(self) -> "BrowserSession":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def attach_instrumentation(self) -> InstrumentationChannel:
        """Attach the heap instrumentation channel to the session page.

        Raises:
            InstrumentationUnavailable: If the channel cannot be enabled
        """
        if self.channel is not None and self.channel.is_attached:
            return self.channel
        self.channel = await attach_instrumentation(self.page)
        return self.channel

    async def try_attach_instrumentation(self) -> Optional[InstrumentationChannel]:
        """Attach instrumentation, returning None in degraded mode."""
        if self.channel is not None and self.channel.is_attached:
            return self.channel
        self.channel = await try_attach_instrumentation(self.page)
        return self.channel

    async def close(self) -> None:
        """Release channel, page, context, browser and Playwright.

        Idempotent and tolerant of a partially opened session.
        """
        if self._closed:
            return
        self._closed = True

        if self.channel is not None:
            await self.channel.detach()
            self.channel = None

        await self.manager.cleanup()
        self.page = None
        logger.info("Browser session closed")
