"""Tests for memory probes and logging helpers"""

import json
import logging
import logging.handlers

import pytest
import structlog

from flowperf.core.logger import (
    LoggingSettings,
    PerformanceProcessor,
    build_processors,
    get_logger,
    log_context,
    setup_logging,
    setup_logging_from_config,
)
from flowperf.utils.memory import (
    ForceMemoryReclaim,
    ProcessMemoryProbe,
    TracemallocProbe,
    get_memory_usage,
)


class TestMemoryReadings:
    """Test memory probes"""

    def test_process_memory(self):
        snapshot = ProcessMemoryProbe().snapshot()

        assert snapshot.used_bytes > 0
        assert snapshot.limit_bytes > 0
        assert snapshot.used_mb > 0

    def test_tracemalloc_memory(self):
        probe = TracemallocProbe()
        try:
            data = [bytearray(1024) for _ in range(100)]
            snapshot = probe.snapshot()
            assert snapshot.used_bytes > 0
            assert len(data) == 100
        finally:
            probe.stop()

        assert probe.snapshot().used_bytes == 0

    def test_tracemalloc_baseline_is_process_rss(self):
        probe = TracemallocProbe()
        try:
            first = probe.snapshot()
            retained = [b"y" * 100_000 for _ in range(20)]
            second = probe.snapshot()
        finally:
            probe.stop()

        assert first.used_bytes >= probe.base_bytes * 0.9
        assert second.used_bytes - first.used_bytes >= 1_900_000
        assert len(retained) == 20

    def test_reclaim(self):
        assert ForceMemoryReclaim()() >= 0
        assert ForceMemoryReclaim(enabled=False)() == 0

    def test_memory_usage(self):
        usage = get_memory_usage()

        assert usage["rss_mb"] > 0
        assert set(usage) == {"rss_mb", "vms_mb", "percent", "available_mb", "total_mb"}


class TestLogging:
    """Test logging helpers"""

    def test_performance_processor(self):
        processor = PerformanceProcessor(window=2)

        processor(None, "info", {"event": "request", "duration_ms": 10})
        event = processor(None, "info", {"event": "request", "duration_ms": 20})
        assert event["avg_duration_ms"] == 15

        event = processor(None, "info", {"event": "request", "duration_ms": 40})
        assert event["avg_duration_ms"] == 30

        assert "avg_duration_ms" not in processor(None, "info", {"event": "other"})

    def test_log_context(self, mocker):
        logger = mocker.Mock()

        with log_context(logger, operation="report") as bound:
            assert bound is logger.bind.return_value

        logger.bind.assert_called_once_with(operation="report")
        args, kwargs = bound.info.call_args
        assert args == ("Context completed",)
        assert kwargs["duration_ms"] >= 0

    def test_log_context_failure(self, mocker):
        logger = mocker.Mock()

        with pytest.raises(RuntimeError):
            with log_context(logger, operation="report"):
                raise RuntimeError("boom")

        assert logger.bind.return_value.error.called

    def test_log_context_event_name(self, mocker):
        logger = mocker.Mock()

        with log_context(logger, event="Dataset operation", operation="sort"):
            pass

        args, kwargs = logger.bind.return_value.info.call_args
        assert args == ("Dataset operation completed",)


@pytest.fixture
def package_logger():
    yield logging.getLogger("flowperf")

    logger = logging.getLogger("flowperf")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


class TestLoggingSetup:
    """Test structlog configuration"""

    def test_processor_chain(self):
        json_chain = build_processors(json_format=True, performance=True)
        console_chain = build_processors(json_format=False, performance=False)

        assert isinstance(json_chain[-1], structlog.processors.JSONRenderer)
        assert any(isinstance(p, PerformanceProcessor) for p in json_chain)
        assert isinstance(console_chain[-1], structlog.dev.ConsoleRenderer)
        assert not any(isinstance(p, PerformanceProcessor) for p in console_chain)

    def test_json_file_output(self, temp_dir, package_logger):
        log_file = temp_dir / "logs" / "flowperf.log"

        configured = setup_logging(level="INFO", console=False, file=str(log_file))
        logger = get_logger("tests.logging")
        logger.info("Report generated", duration_ms=10)
        logger.info("Report generated", duration_ms=30)
        logger.debug("Filtered out")
        for handler in configured.handlers:
            handler.flush()

        lines = log_file.read_text().splitlines()
        assert len(lines) == 2
        event = json.loads(lines[1])
        assert event["event"] == "Report generated"
        assert event["level"] == "info"
        assert event["logger"] == "flowperf.tests.logging"
        assert event["avg_duration_ms"] == 20
        assert "timestamp" in event
        assert not configured.propagate

    def test_no_handlers_propagates(self, package_logger):
        configured = setup_logging(console=False)

        assert configured.handlers == []
        assert configured.propagate

    def test_from_config(self, config_manager, temp_dir, package_logger):
        config_manager.update_section("logging", {
            "level": "WARNING",
            "format": "console",
            "console": False,
            "file": str(temp_dir / "engine.log"),
        })

        settings = LoggingSettings.from_config(config_manager)
        configured = setup_logging_from_config(config_manager)

        assert settings.level == "WARNING"
        assert not settings.json_format
        assert configured.level == logging.WARNING
        assert len(configured.handlers) == 1
        assert isinstance(configured.handlers[0], logging.handlers.RotatingFileHandler)
