"""Utility functions and classes for flowperf"""

from .aio import maybe_await, PeriodicTask, SignalChannel, Subscription
from .memory import (
    MemoryProbe, ProcessMemoryProbe, TracemallocProbe, ForceMemoryReclaim, get_memory_usage
)

__all__ = [
    "maybe_await", "PeriodicTask", "SignalChannel", "Subscription",
    "MemoryProbe", "ProcessMemoryProbe", "TracemallocProbe", "ForceMemoryReclaim",
    "get_memory_usage",
]
