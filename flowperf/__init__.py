"""
flowperf
Performance telemetry and analysis engine for asyncio applications
"""

from flowperf.core import (
    ConfigManager,
    PerformanceConfig,
    get_logger,
)

from flowperf.profiling import (
    MetricsCollector,
    MemoryLeakDetector,
    NetworkOptimizer,
    BundleAnalyzer,
    PerformanceBenchmark,
    LargeDatasetTester,
)

from flowperf.reporting import (
    PerformanceReporter,
    ReportConfig,
    ReportFormat,
)

__version__ = "0.1.0"

__all__ = [
    "ConfigManager",
    "PerformanceConfig",
    "get_logger",
    "MetricsCollector",
    "MemoryLeakDetector",
    "NetworkOptimizer",
    "BundleAnalyzer",
    "PerformanceBenchmark",
    "LargeDatasetTester",
    "PerformanceReporter",
    "ReportConfig",
    "ReportFormat",
]
