"""Playwright browser automation integration.

This module provides the PlaywrightManager class which manages Playwright
browser instances, contexts, and pages for measurement runs. It handles
browser lifecycle and resource management.

CRITICAL: Proper cleanup is essential. A harness that measures leaks must not
leak browser processes itself.
"""

from playwright.async_api import (
    async_playwright,
    Browser,
    BrowserContext,
    Page,
    Playwright,
)
from typing import Optional, Dict, Any, List
import logging

from perf_harness.errors import LaunchError
from perf_harness.models.perf_models import BrowserType, Viewport

logger = logging.getLogger(__name__)


class PlaywrightManager:
    """Manage Playwright browser instances and contexts.

    PATTERN: One browser per session, one isolated context per scenario so
    heap measurements are not polluted by other scenarios' allocations.

    CRITICAL: Always call cleanup() or use as async context manager.
    """

    def __init__(self):
        """Initialize the Playwright manager."""
        self.playwright: Optional[Playwright] = None
        self.browsers: Dict[str, Browser] = {}
        self.contexts: Dict[str, BrowserContext] = {}
        self.pages: Dict[str, Page] = {}
        self._initialized = False

    async def __aenter__(self):
        """Async context manager entry."""
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.cleanup()

    async def initialize(self) -> None:
        """Start Playwright.

        Raises:
            LaunchError: If Playwright cannot be started
        """
        if self._initialized:
            return

        try:
            self.playwright = await async_playwright().start()
            self._initialized = True
            logger.info("Playwright initialized successfully")
        except Exception as e:
            logger.error(f"Failed to initialize Playwright: {e}")
            raise LaunchError(f"Playwright initialization failed: {e}")

    async def launch_browser(
        self,
        browser_type: BrowserType = BrowserType.CHROMIUM,
        headless: bool = True,
        args: Optional[List[str]] = None,
        debugging_port: Optional[int] = None,
        **options: Any,
    ) -> Browser:
        """Launch a browser instance.

        Args:
            browser_type: Type of browser to launch
            headless: Whether to run in headless mode
            args: Browser command-line flags
            debugging_port: Expose a remote debugging port (Chromium only)
            **options: Additional browser launch options

        Returns:
            Browser instance

        Raises:
            LaunchError: If the browser fails to launch
        """
        if not self._initialized:
            await self.initialize()

        browser_key = browser_type.value
        if browser_key in self.browsers:
            logger.debug(f"Reusing existing {browser_type.value} browser")
            return self.browsers[browser_key]

        launch_args = list(args or [])
        if debugging_port is not None:
            if browser_type != BrowserType.CHROMIUM:
                raise LaunchError(
                    f"Remote debugging port requires chromium, got {browser_type.value}"
                )
            launch_args.append(f"--remote-debugging-port={debugging_port}")
        if launch_args:
            options["args"] = launch_args

        try:
            browser_launcher = getattr(self.playwright, browser_type.value)
            browser = await browser_launcher.launch(headless=headless, **options)

            self.browsers[browser_key] = browser
            logger.info(f"Launched {browser_type.value} browser (headless={headless})")

            return browser
        except Exception as e:
            logger.error(f"Failed to launch {browser_type.value} browser: {e}")
            raise LaunchError(f"Browser launch failed: {e}")

    async def create_context(
        self,
        browser: Browser,
        viewport: Optional[Viewport] = None,
        **options: Any,
    ) -> BrowserContext:
        """Create an isolated browser context.

        Args:
            browser: Browser instance to create context in
            viewport: Viewport configuration
            **options: Additional context options (user_agent, base_url, ...)

        Returns:
            Browser context

        Raises:
            LaunchError: If context creation fails
        """
        try:
            context_options: Dict[str, Any] = {}

            if viewport:
                context_options["viewport"] = {
                    "width": viewport.width,
                    "height": viewport.height,
                }
                context_options["device_scale_factor"] = viewport.device_scale_factor
                context_options["is_mobile"] = viewport.is_mobile
                context_options["has_touch"] = viewport.has_touch

            context_options.update({k: v for k, v in options.items() if v is not None})

            context = await browser.new_context(**context_options)

            context_id = f"context_{id(context)}"
            self.contexts[context_id] = context

            logger.debug(f"Created browser context: {context_id}")
            return context
        except Exception as e:
            logger.error(f"Failed to create browser context: {e}")
            raise LaunchError(f"Context creation failed: {e}")

    async def create_page(self, context: BrowserContext) -> Page:
        """Create a new page in the specified context.

        Raises:
            LaunchError: If page creation fails
        """
        try:
            page = await context.new_page()

            page_id = f"page_{id(page)}"
            self.pages[page_id] = page

            logger.debug(f"Created page: {page_id}")
            return page
        except Exception as e:
            logger.error(f"Failed to create page: {e}")
            raise LaunchError(f"Page creation failed: {e}")

    async def cleanup(self) -> None:
        """Close all pages, contexts and browsers, then stop Playwright.

        Errors are logged and collected; cleanup always runs to completion and
        never raises, so it is safe after a partial launch failure.
        """
        errors = []

        for page_id, page in list(self.pages.items()):
            try:
                await page.close()
                logger.debug(f"Closed page: {page_id}")
            except Exception as e:
                errors.append(f"Failed to close page {page_id}: {e}")
        self.pages.clear()

        for context_id, context in list(self.contexts.items()):
            try:
                await context.close()
                logger.debug(f"Closed context: {context_id}")
            except Exception as e:
                errors.append(f"Failed to close context {context_id}: {e}")
        self.contexts.clear()

        for browser_type, browser in list(self.browsers.items()):
            try:
                await browser.close()
                logger.debug(f"Closed browser: {browser_type}")
            except Exception as e:
                errors.append(f"Failed to close browser {browser_type}: {e}")
        self.browsers.clear()

        if self.playwright:
            try:
                await self.playwright.stop()
                logger.info("Playwright stopped successfully")
            except Exception as e:
                errors.append(f"Failed to stop Playwright: {e}")
            self.playwright = None

        self._initialized = False

        if errors:
            logger.warning(f"Cleanup completed with errors: {'; '.join(errors)}")
        else:
            logger.debug("Cleanup completed successfully")
