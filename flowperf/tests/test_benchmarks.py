"""Tests for timed benchmarks"""

import asyncio

import pytest

from flowperf.core.models import BenchmarkResult
from flowperf.profiling.benchmarks import BenchmarkSuite, BenchmarkTest, PerformanceBenchmark


@pytest.mark.asyncio
class TestPerformanceBenchmark:
    """Test PerformanceBenchmark class"""

    async def test_successful_benchmark(self):
        benchmark = PerformanceBenchmark(pause_s=0)
        events = []

        result = await benchmark.run_benchmark(BenchmarkTest(
            name="render list",
            setup=lambda: events.append("setup"),
            test=lambda: {"items": 100},
            cleanup=lambda: events.append("cleanup"),
        ))

        assert result.success
        assert result.name == "render list"
        assert result.metrics == {"items": 100}
        assert result.duration_ms >= 0
        assert events == ["setup", "cleanup"]
        assert benchmark.get_results() == [result]

    async def test_timeout(self):
        benchmark = PerformanceBenchmark(pause_s=0)

        async def hang():
            await asyncio.sleep(10)

        result = await benchmark.run_benchmark(BenchmarkTest(name="hang", test=hang, timeout_s=0.05))

        assert not result.success
        assert result.metrics == {"error": 1}
        assert "timed out" in result.error

    async def test_error(self):
        benchmark = PerformanceBenchmark(pause_s=0)

        def broken():
            raise RuntimeError("query failed")

        result = await benchmark.run_benchmark(BenchmarkTest(name="broken", test=broken))

        assert not result.success
        assert result.error == "query failed"

    async def test_returned_result_is_kept(self):
        benchmark = PerformanceBenchmark(pause_s=0)

        async def body():
            return BenchmarkResult(name="custom", duration_ms=12.5, success=True, metrics={"rows": 3})

        result = await benchmark.run_benchmark(BenchmarkTest(name="custom", test=body))

        assert result.duration_ms == 12.5
        assert result.metrics == {"rows": 3}

    async def test_iterations_add_statistics(self):
        benchmark = PerformanceBenchmark(pause_s=0)

        result = await benchmark.run_benchmark(BenchmarkTest(name="loop", test=lambda: None, iterations=5))

        assert result.metrics["iterations"] == 5
        assert result.metrics["min_ms"] <= result.metrics["mean_ms"] <= result.metrics["max_ms"]

    async def test_suite_and_summary(self):
        benchmark = PerformanceBenchmark(pause_s=0)

        def broken():
            raise ValueError("bad")

        suite = BenchmarkSuite(name="core", benchmarks=[
            BenchmarkTest(name="ok", test=lambda: None),
            BenchmarkTest(name="bad", test=broken),
        ])
        results = await benchmark.run_suite(suite)

        assert [r.success for r in results] == [True, False]
        summary = benchmark.summary()
        assert summary["count"] == 2
        assert summary["passed"] == 1
        assert summary["failed"] == 1

        benchmark.clear_results()
        assert benchmark.summary() == {"count": 0}

    async def test_cleanup_runs_after_failure(self):
        benchmark = PerformanceBenchmark(pause_s=0)
        events = []

        def broken():
            raise RuntimeError("query failed")

        async def hang():
            await asyncio.sleep(10)

        failed = await benchmark.run_benchmark(BenchmarkTest(
            name="broken", test=broken, cleanup=lambda: events.append("broken")))
        timed_out = await benchmark.run_benchmark(BenchmarkTest(
            name="hang", test=hang, timeout_s=0.05, cleanup=lambda: events.append("hang")))

        assert not failed.success
        assert not timed_out.success
        assert events == ["broken", "hang"]

    async def test_cleanup_error_keeps_first_error(self):
        benchmark = PerformanceBenchmark(pause_s=0)

        def broken():
            raise RuntimeError("query failed")

        def bad_cleanup():
            raise OSError("temp dir missing")

        result = await benchmark.run_benchmark(BenchmarkTest(name="broken", test=broken, cleanup=bad_cleanup))

        assert result.error == "query failed"

    async def test_cleanup_error_fails_benchmark(self):
        benchmark = PerformanceBenchmark(pause_s=0)

        def bad_cleanup():
            raise OSError("temp dir missing")

        result = await benchmark.run_benchmark(BenchmarkTest(name="ok", test=lambda: None, cleanup=bad_cleanup))

        assert not result.success
        assert result.error == "Cleanup failed: temp dir missing"
