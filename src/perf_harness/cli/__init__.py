"""Command-line interface for the performance harness."""

from perf_harness.cli.app import main

__all__ = ["main"]
