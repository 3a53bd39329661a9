"""Pytest configuration and fixtures"""

import pytest
import asyncio
import tempfile
import shutil
from pathlib import Path
from typing import Any, List, Optional
import os

from flowperf.core import ConfigManager, HTTPStatusError, TransportError
from flowperf.core.models import MemorySnapshot
from flowperf.profiling.network_optimizer import TransportResponse
from flowperf.tests import TEST_CONFIG

MB = 1024 * 1024


@pytest.fixture
def test_config():
    """Provide test configuration"""
    return TEST_CONFIG.copy()


@pytest.fixture
def config_manager(test_config):
    """Create a ConfigManager with test configuration"""
    with tempfile.NamedTemporaryFile(mode='w', suffix='.yaml', delete=False) as f:
        import yaml
        yaml.dump(test_config, f)
        config_path = f.name

    try:
        config = ConfigManager(config_path, auto_reload=False)
        yield config
    finally:
        # Cleanup
        if os.path.exists(config_path):
            os.unlink(config_path)


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests"""
    temp_path = Path(tempfile.mkdtemp())
    yield temp_path

    # Cleanup
    if temp_path.exists():
        shutil.rmtree(temp_path)


class FakeMemoryProbe:
    """Probe returning scripted readings; the last value repeats once exhausted"""

    def __init__(self, readings: Optional[List[int]] = None, step: int = 0, start: int = 10 * MB):
        self.readings = list(readings or [])
        self.step = step
        self.current = start
        self.calls = 0

    def snapshot(self) -> MemorySnapshot:
        if self.readings:
            index = min(self.calls, len(self.readings) - 1)
            used = self.readings[index]
        else:
            used = self.current
            self.current += self.step
        self.calls += 1
        return MemorySnapshot(used_bytes=used, total_bytes=used * 2, limit_bytes=1024 * MB,
                              timestamp=1000.0 + self.calls)


class BrokenMemoryProbe:

    def snapshot(self) -> MemorySnapshot:
        raise RuntimeError("memory API not available")


@pytest.fixture
def growing_probe():
    """Memory grows 1MB per snapshot from 10MB"""
    return FakeMemoryProbe(step=MB)


@pytest.fixture
def flat_probe():
    return FakeMemoryProbe(step=0)


class CountingTransport:
    """Transport answering every request after an optional delay"""

    def __init__(self, delay: float = 0.0, status_code: int = 200, size: int = 128):
        self.delay = delay
        self.status_code = status_code
        self.size = size
        self.calls = 0

    async def request(self, method: str, url: str, payload: Any = None) -> TransportResponse:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        return TransportResponse(status_code=self.status_code,
                                 payload={"url": url, "call": self.calls},
                                 size=self.size)


class FailingTransport:
    """Fails every ``fail_every``-th call (every call when 1)"""

    def __init__(self, status_code: int = 500, fail_every: int = 1):
        self.status_code = status_code
        self.fail_every = fail_every
        self.calls = 0

    async def request(self, method: str, url: str, payload: Any = None) -> TransportResponse:
        self.calls += 1
        if self.calls % self.fail_every == 0:
            if self.status_code == 0:
                raise TransportError(url, "connection refused")
            raise HTTPStatusError(url, self.status_code)
        return TransportResponse(status_code=200, payload={"ok": True}, size=64)


@pytest.fixture
def counting_transport():
    return CountingTransport()


@pytest.fixture
def slow_transport():
    return CountingTransport(delay=0.05)


class FakeClock:
    """Manually advanced monotonic clock"""

    def __init__(self, start: float = 100.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture(autouse=True)
def setup_test_logging():
    """Setup logging for tests"""
    import structlog

    # Configure structlog for testing
    structlog.configure(
        processors=[
            structlog.dev.ConsoleRenderer()
        ],
        wrapper_class=structlog.make_filtering_bound_logger(20),  # INFO level
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def pytest_configure(config):
    """Pytest configuration"""
    # Set test environment variable
    os.environ["FLOWPERF_TESTING"] = "1"


def pytest_unconfigure(config):
    """Cleanup after tests"""
    # Remove test environment variable
    os.environ.pop("FLOWPERF_TESTING", None)
