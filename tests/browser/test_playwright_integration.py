"""Tests for PlaywrightManager class.

This module covers browser launch (including the remote debugging port used
by the audit engine), context creation, and cleanup that never raises.
"""

import pytest
from unittest.mock import AsyncMock, patch
from playwright.async_api import Browser, BrowserContext, Page

from perf_harness.browser.playwright_integration import PlaywrightManager
from perf_harness.errors import LaunchError
from perf_harness.models.perf_models import BrowserType, Viewport


@pytest.fixture
def manager():
    """Create a PlaywrightManager instance for testing."""
    return PlaywrightManager()


@pytest.fixture
def mock_playwright():
    """Create a mock Playwright instance."""
    playwright = AsyncMock()
    playwright.chromium = AsyncMock()
    playwright.firefox = AsyncMock()
    playwright.webkit = AsyncMock()
    return playwright


@pytest.fixture
def mock_browser():
    """Create a mock Browser instance."""
    browser = AsyncMock(spec=Browser)
    browser.new_context = AsyncMock()
    browser.close = AsyncMock()
    return browser


@pytest.fixture
def mock_context():
    """Create a mock BrowserContext instance."""
    context = AsyncMock(spec=BrowserContext)
    context.new_page = AsyncMock()
    context.close = AsyncMock()
    return context


@pytest.fixture
def mock_page():
    """Create a mock Page instance."""
    page = AsyncMock(spec=Page)
    page.close = AsyncMock()
    return page


class TestPlaywrightManagerInitialization:
    """Tests for PlaywrightManager initialization."""

    def test_init(self):
        """Test PlaywrightManager initialization."""
        manager = PlaywrightManager()
        assert manager.playwright is None
        assert manager.browsers == {}
        assert manager.contexts == {}
        assert manager.pages == {}
        assert manager._initialized is False

    @pytest.mark.asyncio
    async def test_initialize_is_idempotent(self, manager):
        """Test that Playwright is only started once."""
        with patch("perf_harness.browser.playwright_integration.async_playwright") as mock_async_pw:
            mock_async_pw.return_value.start = AsyncMock(return_value=AsyncMock())

            await manager.initialize()
            await manager.initialize()

            assert manager._initialized is True
            mock_async_pw.return_value.start.assert_called_once()

    @pytest.mark.asyncio
    async def test_initialize_failure_raises_launch_error(self, manager):
        """Test initialization failure is reported as a launch failure."""
        with patch("perf_harness.browser.playwright_integration.async_playwright") as mock_async_pw:
            mock_async_pw.return_value.start = AsyncMock(
                side_effect=Exception("Initialization failed")
            )

            with pytest.raises(LaunchError, match="Playwright initialization failed"):
                await manager.initialize()

            assert manager._initialized is False


class TestBrowserLaunch:
    """Tests for browser launch functionality."""

    @pytest.mark.asyncio
    async def test_launch_chromium(self, manager, mock_playwright, mock_browser):
        """Test launching Chromium without extra flags."""
        manager.playwright = mock_playwright
        manager._initialized = True
        mock_playwright.chromium.launch = AsyncMock(return_value=mock_browser)

        browser = await manager.launch_browser(browser_type=BrowserType.CHROMIUM)

        assert browser is mock_browser
        assert "chromium" in manager.browsers
        mock_playwright.chromium.launch.assert_called_once_with(headless=True)

    @pytest.mark.asyncio
    async def test_launch_with_args_and_debugging_port(
        self, manager, mock_playwright, mock_browser
    ):
        """Test that the debugging port is appended to the launch flags."""
        manager.playwright = mock_playwright
        manager._initialized = True
        mock_playwright.chromium.launch = AsyncMock(return_value=mock_browser)

        await manager.launch_browser(
            browser_type=BrowserType.CHROMIUM,
            headless=False,
            args=["--no-sandbox"],
            debugging_port=9222,
        )

        mock_playwright.chromium.launch.assert_called_once_with(
            headless=False,
            args=["--no-sandbox", "--remote-debugging-port=9222"],
        )

    @pytest.mark.asyncio
    async def test_debugging_port_requires_chromium(self, manager, mock_playwright):
        """Test that a debugging port on Firefox is rejected."""
        manager.playwright = mock_playwright
        manager._initialized = True

        with pytest.raises(LaunchError, match="requires chromium"):
            await manager.launch_browser(
                browser_type=BrowserType.FIREFOX, debugging_port=9222
            )

    @pytest.mark.asyncio
    async def test_launch_browser_reuse(self, manager, mock_playwright, mock_browser):
        """Test that browsers are reused when already launched."""
        manager.playwright = mock_playwright
        manager._initialized = True
        manager.browsers["chromium"] = mock_browser
        mock_playwright.chromium.launch = AsyncMock()

        browser = await manager.launch_browser(browser_type=BrowserType.CHROMIUM)

        assert browser is mock_browser
        mock_playwright.chromium.launch.assert_not_called()

    @pytest.mark.asyncio
    async def test_launch_failure(self, manager, mock_playwright):
        """Test launch failure is reported as LaunchError."""
        manager.playwright = mock_playwright
        manager._initialized = True
        mock_playwright.chromium.launch = AsyncMock(side_effect=Exception("no binary"))

        with pytest.raises(LaunchError, match="Browser launch failed"):
            await manager.launch_browser()


class TestContextAndPage:
    """Tests for context and page creation."""

    @pytest.mark.asyncio
    async def test_create_context_with_viewport(self, manager, mock_browser, mock_context):
        """Test viewport and extra options are forwarded, None values dropped."""
        mock_browser.new_context = AsyncMock(return_value=mock_context)
        viewport = Viewport(width=1350, height=940)

        context = await manager.create_context(
            mock_browser, viewport=viewport, user_agent=None, ignore_https_errors=True
        )

        assert context is mock_context
        mock_browser.new_context.assert_called_once_with(
            viewport={"width": 1350, "height": 940},
            device_scale_factor=1.0,
            is_mobile=False,
            has_touch=False,
            ignore_https_errors=True,
        )
        assert len(manager.contexts) == 1

    @pytest.mark.asyncio
    async def test_create_page_failure(self, manager, mock_context):
        """Test page creation failure is reported as LaunchError."""
        mock_context.new_page = AsyncMock(side_effect=Exception("crashed"))

        with pytest.raises(LaunchError, match="Page creation failed"):
            await manager.create_page(mock_context)


class TestCleanup:
    """Tests for resource cleanup."""

    @pytest.mark.asyncio
    async def test_cleanup_closes_everything(
        self, manager, mock_playwright, mock_browser, mock_context, mock_page
    ):
        """Test that pages, contexts, browsers and Playwright are released."""
        manager.playwright = mock_playwright
        manager._initialized = True
        manager.browsers["chromium"] = mock_browser
        manager.contexts["context_1"] = mock_context
        manager.pages["page_1"] = mock_page

        await manager.cleanup()

        mock_page.close.assert_called_once()
        mock_context.close.assert_called_once()
        mock_browser.close.assert_called_once()
        mock_playwright.stop.assert_called_once()
        assert manager.pages == {}
        assert manager.contexts == {}
        assert manager.browsers == {}
        assert manager.playwright is None
        assert manager._initialized is False

    @pytest.mark.asyncio
    async def test_cleanup_continues_after_errors(
        self, manager, mock_playwright, mock_browser, mock_page
    ):
        """Test that a failing close does not stop the rest of cleanup."""
        manager.playwright = mock_playwright
        manager._initialized = True
        manager.browsers["chromium"] = mock_browser
        manager.pages["page_1"] = mock_page
        mock_page.close = AsyncMock(side_effect=Exception("already closed"))

        await manager.cleanup()

        mock_browser.close.assert_called_once()
        mock_playwright.stop.assert_called_once()

    @pytest.mark.asyncio
    async def test_cleanup_without_initialization(self, manager):
        """Test cleanup on a manager that never started."""
        await manager.cleanup()
        assert manager._initialized is False

    @pytest.mark.asyncio
    async def test_async_context_manager(self, mock_playwright):
        """Test that the manager cleans up when used as a context manager."""
        with patch("perf_harness.browser.playwright_integration.async_playwright") as mock_async_pw:
            mock_async_pw.return_value.start = AsyncMock(return_value=mock_playwright)

            async with PlaywrightManager() as manager:
                assert manager._initialized is True

            mock_playwright.stop.assert_called_once()
