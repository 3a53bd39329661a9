"""Memory leak detection through controlled repeated-action experiments"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence

import structlog

from flowperf.core.models import LeakDetection, LeakReport, LeakSeverity, MemorySnapshot
from flowperf.core.sample_store import RingBuffer
from flowperf.utils.aio import PeriodicTask, maybe_await
from flowperf.utils.memory import ForceMemoryReclaim, MemoryProbe, ProcessMemoryProbe

logger = structlog.get_logger()

MB = 1024 * 1024


class TestState(Enum):
    IDLE = "idle"
    SETUP = "setup"
    ITERATING = "iterating"
    CLEANUP = "cleanup"
    ANALYZED = "analyzed"


@dataclass
class LeakTest:
    """A repeated action whose memory footprint is measured

    ``setup``, ``action`` and ``cleanup`` may be plain or async callables.
    """
    name: str
    action: Callable[[], Any]
    iterations: int = 100
    setup: Optional[Callable[[], Any]] = None
    cleanup: Optional[Callable[[], Any]] = None
    memory_threshold_mb: float = 5.0
    component: str = "Generic Component"
    description: str = ""
    timeout_s: Optional[float] = None

    __test__ = False


def classify_severity(growth_percent: float, growth_mb: float, threshold_mb: float) -> LeakSeverity:
    if growth_percent > 50 or growth_mb > 2 * threshold_mb:
        return LeakSeverity.HIGH
    if growth_percent > 25 or growth_mb > threshold_mb:
        return LeakSeverity.MEDIUM
    if growth_percent > 10:
        return LeakSeverity.LOW
    return LeakSeverity.NONE


def is_consistent_growth(snapshots: Sequence[MemorySnapshot]) -> bool:
    """True when at least 70% of consecutive pairs do not shrink"""
    if len(snapshots) < 3:
        return False

    pairs = list(zip(snapshots, snapshots[1:]))
    non_decreasing = sum(1 for a, b in pairs if b.used_bytes >= a.used_bytes)
    return non_decreasing / len(pairs) >= 0.7


def growth_between(first: MemorySnapshot, last: MemorySnapshot) -> float:
    """Growth in percent from ``first`` to ``last``; 0 when there is no baseline"""
    if first.used_bytes <= 0:
        return 0.0
    return (last.used_bytes - first.used_bytes) / first.used_bytes * 100


def generate_recommendations(test: LeakTest,
                             growth_percent: float,
                             snapshots: Sequence[MemorySnapshot]) -> List[str]:
    recommendations = []

    if growth_percent > 50:
        recommendations.append("CRITICAL: Significant memory leak detected")
        recommendations.append("Check for callbacks and subscriptions that are never cancelled")
        recommendations.append("Verify that cleanup hooks release every resource they acquire")
        recommendations.append("Look for circular references or cached data not being cleared")
    elif growth_percent > 25:
        recommendations.append("WARNING: Moderate memory growth detected")
        recommendations.append("Review component teardown and cleanup functions")
        recommendations.append("Check for unnecessary data retention in global state")
    elif growth_percent > 10:
        recommendations.append("INFO: Minor memory growth detected")
        recommendations.append("Monitor this component for potential optimization opportunities")
    else:
        recommendations.append("Memory usage appears stable")

    if is_consistent_growth(snapshots) and growth_percent > 5:
        recommendations.append("Consistent memory growth pattern detected - likely a leak")
        recommendations.append("Use tracemalloc snapshots to identify the allocation source")

    component = test.component.lower()
    if "editor" in component or "monaco" in component:
        recommendations.append("Editor: Ensure editor instances are properly disposed")
        recommendations.append("Check that models and decorations are being cleaned up")

    if "list" in component or "table" in component:
        recommendations.append("List/Table: Consider virtualization for large datasets")
        recommendations.append("Ensure old list items are being properly released")

    return recommendations


class MemoryLeakDetector:
    """Run leak tests and watch memory for sustained growth

    Each test moves through idle -> setup -> iterating -> cleanup -> analyzed.
    Test failures are reported, never raised.
    """

    def __init__(self,
                 memory_probe: Optional[MemoryProbe] = None,
                 reclaim: Optional[Callable[[], Any]] = None,
                 snapshot_every: int = 10,
                 settle_delay_ms: float = 100,
                 pause_every: int = 50,
                 pause_delay_ms: float = 10,
                 growth_window: int = 5,
                 growth_threshold_percent: float = 20,
                 monitoring_interval_ms: float = 5000,
                 history_size: int = 100,
                 detection_history: int = 50):
        self.memory_probe = memory_probe or ProcessMemoryProbe()
        self.reclaim = reclaim if reclaim is not None else ForceMemoryReclaim()
        self.snapshot_every = snapshot_every
        self.settle_delay = settle_delay_ms / 1000.0
        self.pause_every = pause_every
        self.pause_delay = pause_delay_ms / 1000.0
        self.growth_window = growth_window
        self.growth_threshold_percent = growth_threshold_percent
        self.monitoring_interval_ms = monitoring_interval_ms

        self._snapshots: RingBuffer[MemorySnapshot] = RingBuffer(history_size)
        self._detections: RingBuffer[LeakDetection] = RingBuffer(detection_history)
        self._states: Dict[str, TestState] = {}
        self._reports: RingBuffer[LeakReport] = RingBuffer(history_size)
        self._monitor: Optional[PeriodicTask] = None

    @classmethod
    def from_config(cls, config, memory_probe: Optional[MemoryProbe] = None) -> "MemoryLeakDetector":
        section = config.get_section("leak_detection")
        return cls(
            memory_probe=memory_probe,
            snapshot_every=section.get("snapshot_every", 10),
            settle_delay_ms=section.get("settle_delay_ms", 100),
            growth_window=section.get("growth_window", 5),
            growth_threshold_percent=section.get("growth_threshold_percent", 20),
            monitoring_interval_ms=section.get("continuous_interval_ms", 5000),
        )

    def get_test_state(self, name: str) -> TestState:
        return self._states.get(name, TestState.IDLE)

    async def _reclaim(self) -> None:
        try:
            await maybe_await(self.reclaim)
        except Exception as e:
            logger.debug("Memory reclaim hint failed", error=str(e))
        await asyncio.sleep(0)

    def _capture(self) -> MemorySnapshot:
        return self.memory_probe.snapshot()

    async def _execute(self, test: LeakTest, snapshots: List[MemorySnapshot]) -> None:
        await self._reclaim()
        snapshots.append(self._capture())

        self._states[test.name] = TestState.SETUP
        await maybe_await(test.setup)

        self._states[test.name] = TestState.ITERATING
        last = test.iterations - 1
        for i in range(test.iterations):
            await maybe_await(test.action)

            if i % self.snapshot_every == 0 or i == last:
                await self._reclaim()
                await asyncio.sleep(self.settle_delay)
                snapshots.append(self._capture())

            if self.pause_every and i % self.pause_every == 0:
                await asyncio.sleep(self.pause_delay)

        self._states[test.name] = TestState.CLEANUP
        await maybe_await(test.cleanup)

        await self._reclaim()
        snapshots.append(self._capture())

    async def run_leak_test(self, test: LeakTest) -> LeakReport:
        logger.info(f"Running memory leak test: {test.name}", component=test.component,
                    iterations=test.iterations)

        snapshots: List[MemorySnapshot] = []
        self._states[test.name] = TestState.IDLE

        try:
            if test.timeout_s:
                await asyncio.wait_for(self._execute(test, snapshots), timeout=test.timeout_s)
            else:
                await self._execute(test, snapshots)
        except asyncio.TimeoutError:
            return await self._abort(test, snapshots, f"Test timed out after {test.timeout_s}s")
        except Exception as e:
            return await self._abort(test, snapshots, str(e))

        report = self.analyze_memory_growth(test, snapshots)
        self._states[test.name] = TestState.ANALYZED
        self._reports.append(report)

        status = "LEAK DETECTED" if report.is_leak_detected else "NO LEAK"
        logger.info(f"{status} {test.name}: {report.growth_percent:.1f}% growth",
                    severity=report.severity.value)
        return report

    async def _abort(self, test: LeakTest, snapshots: List[MemorySnapshot], error: str) -> LeakReport:
        state = self.get_test_state(test.name)
        logger.error(f"Memory leak test failed: {test.name}", error=error, state=state.value)

        if state in (TestState.SETUP, TestState.ITERATING):
            await self._cleanup_after_failure(test)

        self._states[test.name] = TestState.ANALYZED

        report = LeakReport(
            test_name=test.name,
            component=test.component,
            iterations=test.iterations,
            memory_growth_bytes=0,
            growth_percent=0.0,
            severity=LeakSeverity.NONE,
            snapshots=snapshots,
            recommendations=["Test failed to complete - check test implementation"],
            success=False,
            error=error,
        )
        self._reports.append(report)
        return report

    async def _cleanup_after_failure(self, test: LeakTest) -> None:
        """Best-effort cleanup; its own failure is logged and the first error kept"""
        if test.cleanup is None:
            return

        self._states[test.name] = TestState.CLEANUP
        try:
            if test.timeout_s:
                await asyncio.wait_for(maybe_await(test.cleanup), timeout=test.timeout_s)
            else:
                await maybe_await(test.cleanup)
        except Exception as e:
            logger.warning(f"Cleanup after failed leak test raised: {test.name}",
                           error=str(e) or type(e).__name__)

    def analyze_memory_growth(self, test: LeakTest, snapshots: List[MemorySnapshot]) -> LeakReport:
        if len(snapshots) < 2:
            return LeakReport(
                test_name=test.name,
                component=test.component,
                iterations=test.iterations,
                memory_growth_bytes=0,
                growth_percent=0.0,
                severity=LeakSeverity.NONE,
                snapshots=snapshots,
                recommendations=["Insufficient memory snapshots for analysis"],
            )

        first, last = snapshots[0], snapshots[-1]
        growth_bytes = last.used_bytes - first.used_bytes
        growth_percent = growth_between(first, last)
        severity = classify_severity(growth_percent, growth_bytes / MB, test.memory_threshold_mb)

        return LeakReport(
            test_name=test.name,
            component=test.component,
            iterations=test.iterations,
            memory_growth_bytes=growth_bytes,
            growth_percent=growth_percent,
            severity=severity,
            snapshots=snapshots,
            recommendations=generate_recommendations(test, growth_percent, snapshots),
        )

    async def run_leak_tests(self, tests: Sequence[LeakTest], pause_s: float = 0.5) -> List[LeakReport]:
        """Run tests one after another; a failing test never aborts the suite"""
        reports = []
        for index, test in enumerate(tests):
            reports.append(await self.run_leak_test(test))
            if pause_s and index < len(tests) - 1:
                await asyncio.sleep(pause_s)

        leaks = sum(1 for r in reports if r.is_leak_detected)
        success_rate = (len(reports) - leaks) / len(reports) * 100 if reports else 100.0
        logger.info("Memory leak test summary",
                    tests_run=len(reports),
                    leaks_detected=leaks,
                    success_rate=f"{success_rate:.1f}%")
        return reports

    # Continuous monitoring

    def start_continuous_monitoring(self, interval_ms: Optional[float] = None) -> PeriodicTask:
        """Sample memory in the background; the returned handle stops it"""
        self.stop_continuous_monitoring()
        interval_ms = interval_ms or self.monitoring_interval_ms
        self._monitor = PeriodicTask(self.check_once, interval_ms, name="leak-monitor").start()
        logger.info(f"Continuous leak monitoring started (interval: {interval_ms}ms)")
        return self._monitor

    def stop_continuous_monitoring(self) -> None:
        if self._monitor is not None:
            self._monitor.cancel()
            self._monitor = None

    def check_once(self) -> Optional[LeakDetection]:
        """Take one snapshot and evaluate the recent window"""
        snapshot = self._capture()
        self._snapshots.append(snapshot)
        return self._check_for_leaks(snapshot)

    def _check_for_leaks(self, current: MemorySnapshot) -> Optional[LeakDetection]:
        recent = self._snapshots.latest(self.growth_window)
        if len(recent) < self.growth_window or not is_consistent_growth(recent):
            return None

        growth_percent = growth_between(recent[0], current)
        if growth_percent <= self.growth_threshold_percent:
            return None

        detection = LeakDetection(
            component="unknown",
            memory_growth_bytes=current.used_bytes - recent[0].used_bytes,
            growth_percent=growth_percent,
            window_size=len(recent),
        )
        self._detections.append(detection)
        logger.warning("Potential memory leak detected during continuous monitoring",
                       growth_percent=round(growth_percent, 2),
                       memory_growth_bytes=detection.memory_growth_bytes)
        return detection

    def get_leak_detections(self) -> List[LeakDetection]:
        return self._detections.snapshot()

    def get_memory_snapshots(self) -> List[MemorySnapshot]:
        return self._snapshots.snapshot()

    def get_reports(self) -> List[LeakReport]:
        return self._reports.snapshot()

    def clear_history(self) -> None:
        self._snapshots.clear()
        self._detections.clear()
        self._reports.clear()
        self._states.clear()
