"""Configuration for the performance harness."""

from .harness_config import (
    DEFAULT_LAUNCH_ARGS,
    DEFAULT_THRESHOLDS,
    MEMORY_THRESHOLDS,
    HarnessConfig,
    ensure_directories,
    load_config,
    parse_thresholds,
)

__all__ = [
    "DEFAULT_LAUNCH_ARGS",
    "DEFAULT_THRESHOLDS",
    "MEMORY_THRESHOLDS",
    "HarnessConfig",
    "ensure_directories",
    "load_config",
    "parse_thresholds",
]
