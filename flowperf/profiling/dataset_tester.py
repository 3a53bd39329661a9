"""Large dataset workloads

Generates synthetic records, runs filter/sort/search/paginate style
operations over them with a memory snapshot after each, and grades the run
against time and memory budgets.
"""

import asyncio
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence

import numpy as np
import structlog

from flowperf.core.logger import log_context
from flowperf.core.models import MemorySnapshot
from flowperf.core.sample_store import RingBuffer
from flowperf.profiling.calculator import format_bytes
from flowperf.utils.aio import maybe_await
from flowperf.utils.memory import ForceMemoryReclaim, MemoryProbe, ProcessMemoryProbe

logger = structlog.get_logger()

MB = 1024 * 1024

Item = Dict[str, Any]


class Complexity(Enum):
    SIMPLE = "simple"
    MEDIUM = "medium"
    COMPLEX = "complex"


class DatasetPerformance(Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    POOR = "poor"
    CRITICAL = "critical"


@dataclass
class OperationResult:
    duration_ms: float
    memory_delta_bytes: int
    items_processed: int
    success: bool = True
    error: Optional[str] = None


@dataclass
class DatasetOperation:
    """A workload step over the generated records

    ``execute`` receives the record list and returns how many items it
    processed; ``None`` counts the whole dataset. Plain or async callables.
    """
    type: str
    execute: Callable[[List[Item]], Any]
    description: str = ""


@dataclass
class DatasetTest:
    name: str
    data_size: int
    complexity: Complexity = Complexity.SIMPLE
    operations: List[DatasetOperation] = field(default_factory=list)
    memory_threshold_mb: float = 5.0
    time_threshold_ms: float = 1000.0
    description: str = ""
    seed: Optional[int] = None

    __test__ = False


@dataclass
class DatasetTestResult:
    test_name: str
    data_size: int
    operation_results: Dict[str, OperationResult]
    total_time_ms: float
    peak_memory_bytes: int
    memory_growth_bytes: int
    performance: DatasetPerformance
    recommendations: List[str]
    success: bool = True
    error: Optional[str] = None
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "test_name": self.test_name,
            "data_size": self.data_size,
            "operation_results": {name: asdict(result) for name, result in self.operation_results.items()},
            "total_time_ms": self.total_time_ms,
            "peak_memory_bytes": self.peak_memory_bytes,
            "memory_growth_bytes": self.memory_growth_bytes,
            "performance": self.performance.value,
            "recommendations": list(self.recommendations),
            "success": self.success,
            "error": self.error,
            "timestamp": self.timestamp,
        }


def generate_test_data(size: int, complexity: Complexity = Complexity.SIMPLE,
                       seed: Optional[int] = None) -> List[Item]:
    """Synthetic records; the same seed gives the same numeric fields"""
    rng = np.random.default_rng(seed)
    values = rng.random(size)
    priorities = rng.integers(1, 11, size)
    ages = rng.random(size)
    now = datetime.now()

    data = []
    for i in range(size):
        if complexity == Complexity.SIMPLE:
            item = {"id": i, "name": f"Item {i}", "value": float(values[i] * 100)}

        elif complexity == Complexity.MEDIUM:
            item = {
                "id": i,
                "name": f"Item {i}",
                "title": f"Title for item {i}",
                "description": f"This is a description for item {i}. " * 3,
                "category": f"Category {i % 10}",
                "tags": [f"tag-{i % 5}", f"tag-{i % 7}", f"tag-{i % 3}"],
                "value": float(values[i] * 100),
                "priority": int(priorities[i]) % 5 + 1,
                "created_at": (now - timedelta(seconds=float(ages[i]) * 1e7)).isoformat(),
            }

        else:
            item = {
                "id": i,
                "name": f"Complex Item {i}",
                "title": f"Complex Title for item {i}",
                "description": f"This is a very detailed description for complex item {i}. " * 10,
                "category": f"Category {i % 20}",
                "subcategory": f"Subcategory {i % 15}",
                "tags": [f"tag-{(i + j) % 25}" for j in range(10)],
                "metadata": {
                    "author": f"Author {i % 50}",
                    "version": f"v{i // 100}.{i % 100}",
                    "size": float(values[i] * 1e6),
                    "checksum": f"{int(values[i] * 2 ** 52):016x}",
                    "dependencies": [f"dep-{(i + j) % 30}" for j in range(5)],
                },
                "content": f"Content for item {i}. " * 20,
                "value": float(values[i] * 1000),
                "priority": int(priorities[i]),
                "status": ("active", "inactive", "pending", "archived")[i % 4],
                "created_at": (now - timedelta(seconds=float(ages[i]) * 1e8)).isoformat(),
                "updated_at": (now - timedelta(seconds=float(ages[i]) * 1e7)).isoformat(),
                "stats": {
                    "views": int(values[i] * 10000),
                    "likes": int(values[i] * 1000),
                    "downloads": int(values[i] * 5000),
                    "rating": float(values[i] * 5),
                },
            }

        data.append(item)

    return data


# Built-in operations

def filter_items(data: Sequence[Item], term: str = "Item 1") -> List[Item]:
    return [
        item for item in data
        if term in item.get("name", "") or term in item.get("title", "") or term in item.get("description", "")
    ]


def sort_items(data: Sequence[Item]) -> List[Item]:
    """Priority descending, then name"""
    return sorted(data, key=lambda item: (-item.get("priority", 0), item.get("name", "")))


def search_items(data: Sequence[Item]) -> List[Item]:
    """Multi-criteria match ranked by a simple relevance score"""
    def matches(item: Item) -> bool:
        return ("item" in item.get("name", "").lower()
                or "Category 1" in item.get("category", "")
                or any("tag-1" in tag for tag in item.get("tags", ()))
                or item.get("value", 0) > 50)

    def relevance(item: Item) -> int:
        return int("item" in item.get("name", "").lower()) + int(item.get("value", 0) > 75)

    return sorted((item for item in data if matches(item)), key=relevance, reverse=True)


def paginate_items(data: Sequence[Item], page_size: int = 50) -> int:
    """Walk every page; returns the number of items seen"""
    seen = 0
    for offset in range(0, len(data), page_size):
        seen += len(data[offset:offset + page_size])
    return seen


def create_dataset_operations() -> List[DatasetOperation]:
    return [
        DatasetOperation("filter", lambda data: len(filter_items(data)), "Filter items by search term"),
        DatasetOperation("sort", lambda data: len(sort_items(data)), "Sort items by multiple criteria"),
        DatasetOperation("search", lambda data: len(search_items(data)), "Complex search with multiple criteria"),
        DatasetOperation("paginate", paginate_items, "Page through the whole dataset"),
    ]


def create_large_dataset_tests(operations: Optional[List[DatasetOperation]] = None) -> List[DatasetTest]:
    operations = operations or create_dataset_operations()
    return [
        DatasetTest("Small Dataset Performance", 1000, Complexity.SIMPLE, operations,
                    memory_threshold_mb=5, time_threshold_ms=1000,
                    description="1,000 simple items"),
        DatasetTest("Medium Dataset Performance", 5000, Complexity.MEDIUM, operations,
                    memory_threshold_mb=15, time_threshold_ms=3000,
                    description="5,000 medium complexity items"),
        DatasetTest("Large Dataset Performance", 10000, Complexity.COMPLEX, operations,
                    memory_threshold_mb=30, time_threshold_ms=5000,
                    description="10,000 complex items"),
        DatasetTest("Extreme Dataset Stress Test", 50000, Complexity.COMPLEX, operations[:3],
                    memory_threshold_mb=100, time_threshold_ms=15000,
                    description="Stress test with 50,000 complex items"),
    ]


def evaluate_performance(test: DatasetTest, total_time_ms: float, memory_growth_bytes: int) -> DatasetPerformance:
    growth_mb = memory_growth_bytes / MB

    if growth_mb > test.memory_threshold_mb * 2 or total_time_ms > test.time_threshold_ms * 3:
        return DatasetPerformance.CRITICAL
    if growth_mb > test.memory_threshold_mb or total_time_ms > test.time_threshold_ms * 2:
        return DatasetPerformance.POOR
    if growth_mb > test.memory_threshold_mb * 0.5 or total_time_ms > test.time_threshold_ms:
        return DatasetPerformance.GOOD
    return DatasetPerformance.EXCELLENT


SLOW_OPERATIONS = {
    "filter": (500, "Slow filtering - implement debounced search or server-side filtering"),
    "sort": (300, "Slow sorting - consider server-side sorting for large datasets"),
    "paginate": (16, "Slow pagination - page through data lazily instead of materializing it"),
}


def generate_recommendations(results: Dict[str, OperationResult],
                             performance: DatasetPerformance,
                             memory_growth_bytes: int) -> List[str]:
    recommendations = []

    if performance == DatasetPerformance.CRITICAL:
        recommendations.append("CRITICAL: Performance is unacceptable for production use")
        recommendations.append("Process data in chunks instead of holding the whole dataset")
        recommendations.append("Consider server-side pagination and filtering")
    elif performance == DatasetPerformance.POOR:
        recommendations.append("WARNING: Performance issues detected")
        recommendations.append("Implement lazy loading or streaming of records")
        recommendations.append("Consider data pagination")

    for operation, (budget_ms, text) in SLOW_OPERATIONS.items():
        result = results.get(operation)
        if result is not None and result.duration_ms > budget_ms:
            recommendations.append(text)

    for operation, result in results.items():
        if not result.success:
            recommendations.append(f"{operation} operation failed: {result.error}")

    if memory_growth_bytes / MB > 50:
        recommendations.append("High memory usage - implement data cleanup and object pooling")

    if performance == DatasetPerformance.EXCELLENT:
        recommendations.append("Performance is excellent for this dataset size")

    return recommendations


class LargeDatasetTester:
    """Run dataset workloads and keep their results

    Pauses between operations are excluded from the measured total time.
    """

    def __init__(self,
                 memory_probe: Optional[MemoryProbe] = None,
                 reclaim: Optional[Callable[[], Any]] = None,
                 pause_ms: float = 100,
                 history_size: int = 100):
        self.memory_probe = memory_probe or ProcessMemoryProbe()
        self.reclaim = reclaim if reclaim is not None else ForceMemoryReclaim()
        self.pause = pause_ms / 1000.0
        self._results: RingBuffer[DatasetTestResult] = RingBuffer(history_size)

    async def _reclaim(self) -> None:
        try:
            await maybe_await(self.reclaim)
        except Exception as e:
            logger.debug("Memory reclaim hint failed", error=str(e))
        await asyncio.sleep(0)

    async def run_operation(self, operation: DatasetOperation, data: List[Item],
                            test_name: str = "") -> OperationResult:
        before = self.memory_probe.snapshot().used_bytes
        start = time.perf_counter()

        try:
            with log_context(logger, event="Dataset operation", operation=operation.type, test=test_name):
                processed = await maybe_await(lambda: operation.execute(data))
        except Exception as e:
            return OperationResult(
                duration_ms=(time.perf_counter() - start) * 1000,
                memory_delta_bytes=0,
                items_processed=0,
                success=False,
                error=str(e),
            )

        duration_ms = (time.perf_counter() - start) * 1000
        after = self.memory_probe.snapshot().used_bytes
        return OperationResult(
            duration_ms=duration_ms,
            memory_delta_bytes=after - before,
            items_processed=len(data) if processed is None else int(processed),
        )

    async def run_dataset_test(self, test: DatasetTest) -> DatasetTestResult:
        logger.info(f"Running large dataset test: {test.name}", items=test.data_size,
                    complexity=test.complexity.value)

        results: Dict[str, OperationResult] = {}
        snapshots: List[MemorySnapshot] = []
        start = time.perf_counter()
        paused = 0.0

        try:
            data = generate_test_data(test.data_size, test.complexity, test.seed)

            await self._reclaim()
            snapshots.append(self.memory_probe.snapshot())

            for index, operation in enumerate(test.operations):
                results[operation.type] = await self.run_operation(operation, data, test.name)

                await self._reclaim()
                snapshots.append(self.memory_probe.snapshot())

                if self.pause and index < len(test.operations) - 1:
                    pause_start = time.perf_counter()
                    await asyncio.sleep(self.pause)
                    paused += time.perf_counter() - pause_start
        except Exception as e:
            return self._failed(test, results, snapshots, (time.perf_counter() - start - paused) * 1000, str(e))

        total_time_ms = (time.perf_counter() - start - paused) * 1000
        growth = snapshots[-1].used_bytes - snapshots[0].used_bytes
        performance = evaluate_performance(test, total_time_ms, growth)

        result = DatasetTestResult(
            test_name=test.name,
            data_size=test.data_size,
            operation_results=results,
            total_time_ms=total_time_ms,
            peak_memory_bytes=max(s.used_bytes for s in snapshots),
            memory_growth_bytes=growth,
            performance=performance,
            recommendations=generate_recommendations(results, performance, growth),
        )
        self._results.append(result)

        logger.info(f"{test.name}: {performance.value} ({total_time_ms:.0f}ms, {format_bytes(growth)} growth)")
        return result

    def _failed(self, test: DatasetTest, results: Dict[str, OperationResult],
                snapshots: List[MemorySnapshot], total_time_ms: float, error: str) -> DatasetTestResult:
        logger.error(f"Dataset test failed: {test.name}", error=error)

        result = DatasetTestResult(
            test_name=test.name,
            data_size=test.data_size,
            operation_results=results,
            total_time_ms=total_time_ms,
            peak_memory_bytes=max((s.used_bytes for s in snapshots), default=0),
            memory_growth_bytes=0,
            performance=DatasetPerformance.CRITICAL,
            recommendations=["Dataset test failed to complete - check operation implementations"],
            success=False,
            error=error,
        )
        self._results.append(result)
        return result

    async def run_dataset_tests(self, tests: Optional[Sequence[DatasetTest]] = None,
                                pause_s: float = 1.0) -> List[DatasetTestResult]:
        """Run tests one after another; defaults to the built-in workloads"""
        tests = list(tests) if tests is not None else create_large_dataset_tests()

        results = []
        for index, test in enumerate(tests):
            results.append(await self.run_dataset_test(test))
            if pause_s and index < len(tests) - 1:
                await asyncio.sleep(pause_s)

        counts = {level.value: sum(1 for r in results if r.performance == level) for level in DatasetPerformance}
        logger.info("Large dataset test summary", tests_run=len(results), **counts)
        return results

    def get_results(self) -> List[DatasetTestResult]:
        return self._results.snapshot()

    def clear_results(self) -> None:
        self._results.clear()
