"""Browser session and instrumentation for measurement runs.

This package provides:
- Playwright browser lifecycle management
- A scoped BrowserSession (browser, isolated context, page)
- The CDP heap instrumentation channel used to force garbage collection
"""

from perf_harness.browser.playwright_integration import PlaywrightManager
from perf_harness.browser.browser_session import BrowserSession, SessionOptions
from perf_harness.browser.instrumentation import (
    InstrumentationChannel,
    PageHandle,
    attach_instrumentation,
    try_attach_instrumentation,
)

__all__ = [
    "PlaywrightManager",
    "BrowserSession",
    "SessionOptions",
    "InstrumentationChannel",
    "PageHandle",
    "attach_instrumentation",
    "try_attach_instrumentation",
]
