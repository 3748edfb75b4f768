"""Scripted page-performance audits.

This module provides the PerformanceAuditor, which opens a fresh browser
session, optionally replays a caller-supplied pre-audit script against the
page, delegates scoring to an audit engine and extracts category scores,
Core Web Vitals and the top optimization opportunities.
"""

from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional
import logging

from perf_harness.audit.engine import AuditEngine, LighthouseEngine
from perf_harness.audit.thresholds import check_thresholds
from perf_harness.browser.browser_session import BrowserSession, SessionOptions
from perf_harness.browser.instrumentation import PageHandle
from perf_harness.config.harness_config import HarnessConfig
from perf_harness.errors import AuditError
from perf_harness.models.perf_models import (
    AuditResult,
    AuditSettings,
    CoreWebVital,
    FormFactor,
    Opportunity,
    Viewport,
)

logger = logging.getLogger(__name__)

PreAuditActions = Callable[[PageHandle], Awaitable[None]]
SessionFactory = Callable[[SessionOptions], Awaitable[BrowserSession]]

# Engine audit id -> metric name
CORE_WEB_VITALS = {
    "largest-contentful-paint": "LCP",
    "first-input-delay": "FID",
    "cumulative-layout-shift": "CLS",
    "first-contentful-paint": "FCP",
    "speed-index": "Speed Index",
    "total-blocking-time": "TBT",
    "interactive": "TTI",
}

MAX_OPPORTUNITIES = 5

DESKTOP_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


def _score_100(score: Optional[float]) -> int:
    return round(score * 100) if score else 0


def extract_category_scores(lhr: Mapping[str, Any]) -> Dict[str, int]:
    """Per-category scores on the 0-100 scale."""
    return {
        key: _score_100(category.get("score"))
        for key, category in (lhr.get("categories") or {}).items()
    }


def extract_core_web_vitals(lhr: Mapping[str, Any]) -> Dict[str, CoreWebVital]:
    """Named timing metrics with display value, numeric value and score."""
    audits = lhr.get("audits") or {}
    vitals = {}
    for audit_id, name in CORE_WEB_VITALS.items():
        audit = audits.get(audit_id)
        if not audit:
            continue
        vitals[name] = CoreWebVital(
            value=audit.get("displayValue"),
            numeric_value=audit.get("numericValue"),
            score=_score_100(audit.get("score")),
        )
    return vitals


def _savings(audit: Mapping[str, Any]) -> float:
    numeric = audit.get("numericValue")
    if numeric is None:
        numeric = (audit.get("details") or {}).get("overallSavingsMs")
    return float(numeric or 0)


def extract_opportunities(
    lhr: Mapping[str, Any], limit: int = MAX_OPPORTUNITIES
) -> List[Opportunity]:
    """Top opportunity audits by numeric savings, highest first."""
    candidates = [
        audit
        for audit in (lhr.get("audits") or {}).values()
        if (audit.get("details") or {}).get("type") == "opportunity"
        and _savings(audit) > 0
    ]
    candidates.sort(key=_savings, reverse=True)

    return [
        Opportunity(
            title=audit.get("title", audit.get("id", "")),
            description=audit.get("description", ""),
            savings_display=audit.get("displayValue") or f"{round(_savings(audit))}ms",
            numeric_savings=_savings(audit),
            score=_score_100(audit.get("score")),
        )
        for audit in candidates[:limit]
    ]


class PerformanceAuditor:
    """Run audits in isolated browser sessions.

    Each run owns its own browser session, so a failing audit cannot corrupt
    another scenario's state or artifacts.
    """

    def __init__(
        self,
        config: Optional[HarnessConfig] = None,
        engine: Optional[AuditEngine] = None,
        session_factory: Optional[SessionFactory] = None,
    ):
        """Initialize the auditor.

        Args:
            config: Harness configuration
            engine: Audit engine (Lighthouse CLI by default)
            session_factory: Coroutine opening a BrowserSession from options
        """
        self.config = config or HarnessConfig()
        self.engine = engine or LighthouseEngine(
            executable=self.config.lighthouse_path,
            timeout_s=self.config.audit_timeout_s,
        )
        self.session_factory = session_factory or BrowserSession.open

    def session_options(self, settings: AuditSettings) -> SessionOptions:
        """Session options matching the audit's screen emulation."""
        is_mobile = settings.form_factor == FormFactor.MOBILE
        return SessionOptions.from_config(
            self.config,
            debugging_port=self.config.debugging_port,
            viewport=Viewport(
                width=settings.screen_width,
                height=settings.screen_height,
                device_scale_factor=settings.device_scale_factor,
                is_mobile=is_mobile,
                has_touch=is_mobile,
            ),
            user_agent=None if is_mobile else DESKTOP_USER_AGENT,
        )

    async def run(
        self,
        url: str,
        pre_audit_actions: Optional[PreAuditActions] = None,
        audit_settings: Optional[AuditSettings] = None,
        thresholds: Optional[Mapping[str, float]] = None,
    ) -> AuditResult:
        """Audit a URL.

        Args:
            url: URL to audit
            pre_audit_actions: Script run against the page before the audit;
                when omitted the page is loaded and left to settle
            audit_settings: Engine settings (desktop preset by default)
            thresholds: Minimum category scores (configured thresholds by default)

        Returns:
            AuditResult with scores, vitals, opportunities and verdicts

        Raises:
            LaunchError: If the browser cannot start
            AuditError: If the engine fails or returns no categories
        """
        settings = audit_settings or AuditSettings()
        thresholds = dict(thresholds if thresholds is not None else self.config.thresholds)

        logger.info(f"Starting performance audit for: {url}")
        session = await self.session_factory(self.session_options(settings))
        try:
            if pre_audit_actions is not None:
                logger.info("Performing pre-audit actions")
                try:
                    await pre_audit_actions(session.page)
                except Exception as e:
                    logger.error(f"Pre-audit actions failed: {e}")
                    raise AuditError(f"Pre-audit actions failed: {e}")
            else:
                await session.page.goto(url, wait_until="networkidle")
                logger.debug("Page loaded successfully")

            try:
                engine_result = await self.engine.audit(
                    url, self.config.debugging_port, settings
                )
            except AuditError:
                raise
            except Exception as e:
                logger.error(f"Audit engine failed: {e}")
                raise AuditError(f"Audit engine failed: {e}")
        finally:
            await session.close()

        return self._build_result(url, engine_result.lhr, engine_result.report_html, thresholds)

    @staticmethod
    def _build_result(
        url: str,
        lhr: Dict[str, Any],
        report_html: Optional[str],
        thresholds: Dict[str, float],
    ) -> AuditResult:
        category_scores = extract_category_scores(lhr)
        if not category_scores:
            raise AuditError(f"Audit engine returned no categories for {url}")

        threshold_report = check_thresholds(category_scores, thresholds)
        for verdict in threshold_report.verdicts:
            status = "PASS" if verdict.passed else "FAIL"
            logger.info(
                f"{status} {verdict.category}: {verdict.score} (threshold: {verdict.threshold})"
            )

        result = AuditResult(
            url=lhr.get("finalDisplayedUrl") or lhr.get("finalUrl") or url,
            category_scores=category_scores,
            core_web_vitals=extract_core_web_vitals(lhr),
            opportunities=extract_opportunities(lhr),
            thresholds=thresholds,
            passed=threshold_report.all_passed,
            threshold_verdicts=threshold_report.verdicts,
            raw_report=report_html,
            raw_result=lhr,
        )
        logger.info(f"Audit completed for {result.url} (passed={result.passed})")
        return result


async def run_performance_audit(
    url: str,
    pre_audit_actions: Optional[PreAuditActions] = None,
    audit_settings: Optional[AuditSettings] = None,
    thresholds: Optional[Mapping[str, float]] = None,
    config: Optional[HarnessConfig] = None,
    engine: Optional[AuditEngine] = None,
) -> AuditResult:
    """Audit ``url`` in a fresh browser session."""
    auditor = PerformanceAuditor(config=config, engine=engine)
    return await auditor.run(url, pre_audit_actions, audit_settings, thresholds)
