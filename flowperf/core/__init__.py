from flowperf.core.config import ConfigManager, PerformanceConfig
from flowperf.core.logger import get_logger, log_context, setup_logging, setup_logging_from_config
from flowperf.core.sample_store import RingBuffer, SampleStore, StoreLimits
from flowperf.core.exceptions import (
    FlowPerfError, ConfigError, ValidationError, InstrumentationError,
    TransportError, HTTPStatusError, SinkError
)

__all__ = [
    "ConfigManager",
    "PerformanceConfig",
    "get_logger",
    "log_context",
    "setup_logging",
    "setup_logging_from_config",
    "RingBuffer",
    "SampleStore",
    "StoreLimits",
    # Exceptions
    "FlowPerfError", "ConfigError", "ValidationError", "InstrumentationError",
    "TransportError", "HTTPStatusError", "SinkError"
]
