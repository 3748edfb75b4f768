"""Heap sampling, action monitoring and navigation leak detection."""

from perf_harness.memory.heap_sampler import HeapSampler, SampleOutcome
from perf_harness.memory.action_monitor import (
    ActionMemoryMonitor,
    monitor_memory_during_action,
)
from perf_harness.memory.navigation_leaks import (
    NavigationLeakDetector,
    average_memory_per_iteration,
    classify_severity,
    test_navigation_memory_leaks,
)
from perf_harness.memory.reporter import MemoryReporter

__all__ = [
    "HeapSampler",
    "SampleOutcome",
    "ActionMemoryMonitor",
    "monitor_memory_during_action",
    "NavigationLeakDetector",
    "average_memory_per_iteration",
    "classify_severity",
    "test_navigation_memory_leaks",
    "MemoryReporter",
]
