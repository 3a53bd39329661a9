"""Memory probes and reclaim hints"""

import gc
import time
import tracemalloc
from typing import Optional, Protocol

import psutil
import structlog

from flowperf.core.models import MemorySnapshot

logger = structlog.get_logger()


class MemoryProbe(Protocol):
    """Anything that can report current memory usage"""

    def snapshot(self) -> MemorySnapshot:
        ...


class ProcessMemoryProbe:
    """Read memory usage of the current process through psutil"""

    def __init__(self, pid: Optional[int] = None):
        self.process = psutil.Process(pid)

    def snapshot(self) -> MemorySnapshot:
        memory_info = self.process.memory_info()
        virtual_memory = psutil.virtual_memory()

        return MemorySnapshot(
            used_bytes=memory_info.rss,
            total_bytes=memory_info.vms,
            limit_bytes=virtual_memory.total,
            timestamp=time.time(),
        )


class TracemallocProbe:
    """Python heap growth as seen by tracemalloc

    Readings are the process RSS at construction plus the traced heap growth
    since then, so growth percentages compare against the whole process
    rather than against the few kilobytes traced right after ``start``.
    """

    def __init__(self, start: bool = True):
        self.started = False
        if start and not tracemalloc.is_tracing():
            tracemalloc.start()
            self.started = True
            logger.info("Memory tracing started")

        self.base_bytes = psutil.Process().memory_info().rss
        self.traced_at_start = tracemalloc.get_traced_memory()[0] if tracemalloc.is_tracing() else 0

    def snapshot(self) -> MemorySnapshot:
        if not tracemalloc.is_tracing():
            return MemorySnapshot(used_bytes=0, total_bytes=0, limit_bytes=0)

        current, peak = tracemalloc.get_traced_memory()
        return MemorySnapshot(
            used_bytes=max(0, self.base_bytes + current - self.traced_at_start),
            total_bytes=max(0, self.base_bytes + peak - self.traced_at_start),
            limit_bytes=psutil.virtual_memory().total,
            timestamp=time.time(),
        )

    def stop(self) -> None:
        """Stop tracing if this probe started it"""
        if self.started and tracemalloc.is_tracing():
            tracemalloc.stop()
            self.started = False
            logger.info("Memory tracing stopped")


class ForceMemoryReclaim:
    """Best-effort garbage collection hint

    Callers must not assume anything was actually freed. Pass ``enabled=False``
    to turn the hint into a no-op where collection is unwanted.
    """

    def __init__(self, enabled: bool = True):
        self.enabled = enabled

    def __call__(self) -> int:
        if not self.enabled:
            return 0

        before = len(gc.get_objects())
        collected = gc.collect()
        after = len(gc.get_objects())

        logger.debug("Garbage collection hint",
                     collected=collected,
                     objects_freed=before - after)
        return collected


def get_memory_usage() -> dict:
    """Current process memory usage in MB"""
    process = psutil.Process()
    memory_info = process.memory_info()
    virtual_memory = psutil.virtual_memory()

    return {
        "rss_mb": memory_info.rss / 1024 / 1024,
        "vms_mb": memory_info.vms / 1024 / 1024,
        "percent": process.memory_percent(),
        "available_mb": virtual_memory.available / 1024 / 1024,
        "total_mb": virtual_memory.total / 1024 / 1024,
    }
