"""Timed benchmarks with timeout guards"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

import numpy as np
import structlog

from flowperf.core.models import BenchmarkResult
from flowperf.utils.aio import maybe_await

logger = structlog.get_logger()


@dataclass
class BenchmarkTest:
    """One benchmark body plus optional setup and cleanup

    ``test`` may return a BenchmarkResult, a dict of metrics, or nothing.
    When ``iterations`` is above one the body is repeated and duration
    statistics are added to the metrics.
    """
    name: str
    test: Callable[[], Any]
    setup: Optional[Callable[[], Any]] = None
    cleanup: Optional[Callable[[], Any]] = None
    timeout_s: float = 10.0
    expected_duration_ms: Optional[float] = None
    iterations: int = 1
    description: str = ""

    __test__ = False


@dataclass
class BenchmarkSuite:
    name: str
    benchmarks: List[BenchmarkTest] = field(default_factory=list)
    description: str = ""


class PerformanceBenchmark:
    """Runs benchmarks and keeps their results"""

    def __init__(self, pause_s: float = 0.1):
        self.pause_s = pause_s
        self.results: List[BenchmarkResult] = []

    async def _run_body(self, test: BenchmarkTest) -> BenchmarkResult:
        timings = []
        outcome: Any = None

        for _ in range(max(1, test.iterations)):
            start = time.perf_counter()
            outcome = await maybe_await(test.test)
            timings.append((time.perf_counter() - start) * 1000)

        measured = float(np.sum(timings))

        if isinstance(outcome, BenchmarkResult):
            result = outcome
            if not result.duration_ms:
                result.duration_ms = measured
        else:
            metrics = dict(outcome) if isinstance(outcome, dict) else {}
            result = BenchmarkResult(name=test.name, duration_ms=measured, success=True, metrics=metrics)

        if len(timings) > 1:
            result.metrics.update({
                "iterations": len(timings),
                "mean_ms": float(np.mean(timings)),
                "std_ms": float(np.std(timings)),
                "min_ms": float(np.min(timings)),
                "max_ms": float(np.max(timings)),
                "p95_ms": float(np.percentile(timings, 95)),
            })

        return result

    async def run_benchmark(self, test: BenchmarkTest) -> BenchmarkResult:
        logger.info(f"Running benchmark: {test.name}")
        start = time.perf_counter()

        try:
            await maybe_await(test.setup)
            result = await asyncio.wait_for(self._run_body(test), timeout=test.timeout_s)
        except asyncio.TimeoutError:
            result = self._failed(test, start, f"Benchmark timed out after {test.timeout_s}s")
        except Exception as e:
            result = self._failed(test, start, str(e))

        try:
            await maybe_await(test.cleanup)
        except Exception as e:
            if result.success:
                result = self._failed(test, start, f"Cleanup failed: {e}")
            else:
                logger.warning(f"Benchmark {test.name} cleanup failed", error=str(e))

        slow = test.expected_duration_ms is not None and result.duration_ms > test.expected_duration_ms
        if result.success and slow:
            logger.warning(f"Benchmark {test.name} slower than expected",
                           duration_ms=result.duration_ms,
                           expected_ms=test.expected_duration_ms)

        self.results.append(result)

        status = "passed" if result.success else "failed"
        logger.info(f"Benchmark {status}: {test.name}: {result.duration_ms:.2f}ms")
        return result

    def _failed(self, test: BenchmarkTest, start: float, error: str) -> BenchmarkResult:
        logger.error(f"Benchmark {test.name} failed", error=error)
        return BenchmarkResult(
            name=test.name,
            duration_ms=(time.perf_counter() - start) * 1000,
            success=False,
            metrics={"error": 1},
            error=error,
        )

    async def run_suite(self, suite: BenchmarkSuite) -> List[BenchmarkResult]:
        logger.info(f"Running benchmark suite: {suite.name}", description=suite.description)

        results = []
        for index, test in enumerate(suite.benchmarks):
            results.append(await self.run_benchmark(test))
            if self.pause_s and index < len(suite.benchmarks) - 1:
                await asyncio.sleep(self.pause_s)

        self._log_suite_report(suite.name, results)
        return results

    def _log_suite_report(self, suite_name: str, results: List[BenchmarkResult]) -> None:
        if not results:
            logger.info("Benchmark suite report", suite=suite_name, benchmarks=0)
            return

        success_count = sum(1 for r in results if r.success)
        total_ms = sum(r.duration_ms for r in results)

        logger.info("Benchmark suite report",
                    suite=suite_name,
                    success_rate=f"{success_count}/{len(results)} ({success_count / len(results) * 100:.1f}%)",
                    total_time=f"{total_ms:.2f}ms",
                    average_time=f"{total_ms / len(results):.2f}ms")

    def summary(self) -> Dict[str, Any]:
        if not self.results:
            return {"count": 0}

        durations = [r.duration_ms for r in self.results]
        return {
            "count": len(self.results),
            "passed": sum(1 for r in self.results if r.success),
            "failed": sum(1 for r in self.results if not r.success),
            "mean_ms": float(np.mean(durations)),
            "p95_ms": float(np.percentile(durations, 95)),
        }

    def get_results(self) -> List[BenchmarkResult]:
        return list(self.results)

    def clear_results(self) -> None:
        self.results.clear()
