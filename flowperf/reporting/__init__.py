"""Reports, alerts and report sinks"""

from flowperf.reporting.serializers import ReportFormat, serialize
from flowperf.reporting.destinations import (
    ReportDestination,
    ConsoleDestination,
    FileDestination,
    HttpDestination,
)
from flowperf.reporting.reporter import PerformanceReporter, ReportConfig

__all__ = [
    "ReportFormat",
    "serialize",
    "ReportDestination",
    "ConsoleDestination",
    "FileDestination",
    "HttpDestination",
    "PerformanceReporter",
    "ReportConfig",
]
