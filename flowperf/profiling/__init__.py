"""Signal collection, analysis and benchmarking"""

from flowperf.profiling.collector import MetricsCollector
from flowperf.profiling.leak_detector import (
    MemoryLeakDetector,
    LeakTest,
    TestState,
)
from flowperf.profiling.network_optimizer import (
    NetworkOptimizer,
    NetworkTest,
    TTLCache,
    RequestDeduplicator,
    HttpTransport,
    TransportResponse,
)
from flowperf.profiling.bundle_analyzer import BundleAnalyzer, BundleAnalysis
from flowperf.profiling.benchmarks import PerformanceBenchmark, BenchmarkTest, BenchmarkSuite
from flowperf.profiling.dataset_tester import (
    LargeDatasetTester,
    DatasetTest,
    DatasetOperation,
    DatasetTestResult,
)

__all__ = [
    "MetricsCollector",
    "MemoryLeakDetector",
    "LeakTest",
    "TestState",
    "NetworkOptimizer",
    "NetworkTest",
    "TTLCache",
    "RequestDeduplicator",
    "HttpTransport",
    "TransportResponse",
    "BundleAnalyzer",
    "BundleAnalysis",
    "PerformanceBenchmark",
    "BenchmarkTest",
    "BenchmarkSuite",
    "LargeDatasetTester",
    "DatasetTest",
    "DatasetOperation",
    "DatasetTestResult",
]
