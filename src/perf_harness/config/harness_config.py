"""Harness configuration with environment variable loading."""

import os
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field
from dotenv import load_dotenv

from perf_harness.models.perf_models import BrowserType

# Load environment variables from .env file
load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLDS: Dict[str, float] = {
    "performance": 70,
    "accessibility": 90,
    "best-practices": 80,
    "seo": 80,
}

# Chromium flags used for every measurement run. --expose-gc makes window.gc()
# available as a fallback when the CDP channel is missing.
DEFAULT_LAUNCH_ARGS: List[str] = [
    "--no-sandbox",
    "--disable-dev-shm-usage",
    "--disable-web-security",
    "--disable-features=TranslateUI",
    "--disable-ipc-flooding-protection",
    "--enable-precise-memory-info",
    "--js-flags=--expose-gc",
]

# Navigation growth limits in MB: total over the run, and first-to-last iteration.
MEMORY_THRESHOLDS: Dict[str, Dict[str, float]] = {
    "navigation": {
        "total_growth_mb": 50,
        "iteration_growth_mb": 20,
    },
}


def parse_thresholds(
    raw: Optional[str], base: Optional[Dict[str, float]] = None
) -> Dict[str, float]:
    """Parse ``category=score,category=score`` into a threshold map.

    Args:
        raw: Threshold string, typically from PERF_HARNESS_THRESHOLDS
        base: Thresholds to override (DEFAULT_THRESHOLDS when omitted)

    Returns:
        Base thresholds overridden by the parsed values

    Raises:
        ValueError: If an entry is not of the form ``name=number``
    """
    thresholds = dict(DEFAULT_THRESHOLDS if base is None else base)
    if not raw:
        return thresholds

    for entry in raw.split(","):
        entry = entry.strip()
        if not entry:
            continue
        name, sep, value = entry.partition("=")
        if not sep or not name.strip():
            raise ValueError(f"Invalid threshold entry: {entry!r}")
        thresholds[name.strip()] = float(value)

    return thresholds


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class HarnessConfig(BaseModel):
    """Configuration for browser sessions, audits and report output."""

    base_url: str = Field(
        default_factory=lambda: os.getenv("PERF_HARNESS_BASE_URL", "http://localhost:5173"),
        description="Base URL of the application under test",
    )
    reports_dir: str = Field(
        default_factory=lambda: os.getenv("PERF_HARNESS_REPORTS_DIR", "lighthouse-reports"),
        description="Directory for persisted report artifacts",
    )

    # Browser
    browser_type: BrowserType = Field(
        default_factory=lambda: BrowserType(
            os.getenv("PERF_HARNESS_BROWSER", BrowserType.CHROMIUM.value)
        ),
        description="Browser engine",
    )
    headless: bool = Field(
        default_factory=lambda: _env_bool("PERF_HARNESS_HEADLESS", "true"),
        description="Run the browser headless",
    )
    launch_args: List[str] = Field(
        default_factory=lambda: list(DEFAULT_LAUNCH_ARGS),
        description="Browser command-line flags",
    )
    debugging_port: int = Field(
        default_factory=lambda: int(os.getenv("PERF_HARNESS_DEBUGGING_PORT", "9222")),
        description="Remote debugging port the audit engine attaches to",
    )
    navigation_timeout_ms: int = Field(
        default_factory=lambda: int(os.getenv("PERF_HARNESS_NAVIGATION_TIMEOUT_MS", "30000")),
        description="Navigation and action timeout",
    )

    # Audit engine
    lighthouse_path: str = Field(
        default_factory=lambda: os.getenv("LIGHTHOUSE_PATH", "lighthouse"),
        description="Lighthouse CLI executable",
    )
    audit_timeout_s: float = Field(
        default_factory=lambda: float(os.getenv("PERF_HARNESS_AUDIT_TIMEOUT_S", "180")),
        description="Maximum duration of one audit run",
    )
    thresholds: Dict[str, float] = Field(
        default_factory=lambda: parse_thresholds(os.getenv("PERF_HARNESS_THRESHOLDS")),
        description="Minimum category scores (0-100)",
    )


def load_config(config_path: Optional[str] = None) -> HarnessConfig:
    """Load harness configuration.

    Values from the YAML file (if given) override environment variables,
    which override the defaults.

    Args:
        config_path: Optional YAML config file path

    Returns:
        HarnessConfig instance
    """
    file_config: Dict[str, Any] = {}
    if config_path:
        path = Path(config_path)
        with open(path, encoding="utf-8") as f:
            file_config = yaml.safe_load(f) or {}
        logger.debug(f"Loaded config from {path}")

    if "thresholds" in file_config:
        thresholds = dict(DEFAULT_THRESHOLDS)
        thresholds.update(file_config["thresholds"] or {})
        file_config["thresholds"] = thresholds

    return HarnessConfig(**file_config)


def ensure_directories(config: HarnessConfig) -> Path:
    """Create the reports directory if it does not exist.

    Args:
        config: Harness configuration

    Returns:
        Path to the reports directory
    """
    reports_dir = Path(config.reports_dir)
    if not reports_dir.exists():
        reports_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"Created directory: {reports_dir}")
    return reports_dir
