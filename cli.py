#!/usr/bin/env python
"""
Performance harness CLI entry point.

Usage:
    python cli.py audit https://example.com              # Lighthouse audit + reports
    python cli.py audit https://example.com --ci         # Never fail the pipeline
    python cli.py leaks https://example.com --route / --route /login
"""

from perf_harness.cli.app import main

if __name__ == "__main__":
    main()
