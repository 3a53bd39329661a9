"""Tests for runtime signal collection"""

import asyncio
from types import SimpleNamespace

import pytest

from flowperf.core.config import PerformanceConfig
from flowperf.core.exceptions import HTTPStatusError
from flowperf.core.models import InteractionType, RenderPhase
from flowperf.profiling.collector import MetricsCollector
from flowperf.tests.conftest import BrokenMemoryProbe, FakeMemoryProbe
from flowperf.utils.aio import SignalChannel

MB = 1024 * 1024


@pytest.fixture
def collector(flat_probe):
    return MetricsCollector(config=PerformanceConfig(enable_memory_monitoring=False), memory_probe=flat_probe)


class BrokenSource:

    def subscribe(self, callback):
        raise NotImplementedError("entry type not supported")


class TestTimingSignals:
    """Test Web-Vitals style timing collection"""

    def test_paint_timings(self, collector):
        collector.record_paint_timing("first-contentful-paint", 1200)
        collector.record_paint_timing("largest-contentful-paint", 2100)
        collector.record_paint_timing("first-paint", 900)

        metrics = collector.get_performance_metrics()
        assert metrics.first_contentful_paint == 1200
        assert metrics.largest_contentful_paint == 2100

    def test_first_input_delay(self, collector):
        collector.record_first_input(start_time=100, processing_start=130)

        assert collector.get_performance_metrics().first_input_delay == 30

    def test_layout_shift_accumulates(self, collector):
        collector.record_layout_shift(0.1)
        collector.record_layout_shift(0.5, had_recent_input=True)
        collector.record_layout_shift(0.15)

        assert collector.get_performance_metrics().cumulative_layout_shift == pytest.approx(0.25)

    def test_total_blocking_time(self, collector):
        collector.record_long_task(120)
        collector.record_long_task(40)
        collector.record_long_task(80)

        assert collector.get_performance_metrics().total_blocking_time == pytest.approx(100)

    def test_unobserved_metrics_are_zero(self, collector):
        metrics = collector.get_performance_metrics()

        assert metrics.time_to_interactive == 0
        assert metrics.first_contentful_paint == 0

    def test_clear_resets_accumulators(self, collector):
        collector.record_layout_shift(0.2)
        collector.clear()
        collector.record_layout_shift(0.05)

        assert collector.get_performance_metrics().cumulative_layout_shift == pytest.approx(0.05)


class TestObservers:
    """Test observer wiring"""

    def test_entries_from_channel(self, collector):
        channel = SignalChannel("layout-shift")

        assert collector.attach_observer("layout-shift", channel)
        channel.publish({"value": 0.2, "had_recent_input": False})
        channel.publish(SimpleNamespace(value=0.1, had_recent_input=False))

        assert collector.get_performance_metrics().cumulative_layout_shift == pytest.approx(0.3)

    def test_unsupported_source_disabled(self, collector):
        assert not collector.attach_observer("longtask", BrokenSource())
        assert not collector.attach_observer("longtask", SignalChannel())

        assert collector.get_disabled_signals() == ["longtask"]

    def test_unknown_entry_type(self, collector):
        assert not collector.attach_observer("element-timing", SignalChannel())
        assert "element-timing" in collector.get_disabled_signals()

    def test_bad_entry_disables_signal(self, collector):
        channel = SignalChannel("render")
        collector.attach_observer("render", channel)

        channel.publish({"component": "Grid", "duration_ms": 5, "phase": "not-a-phase"})

        assert "render" in collector.get_disabled_signals()
        assert channel.subscriber_count == 0

    def test_dispose_detaches_observers(self, collector):
        channel = SignalChannel("paint")
        collector.attach_observer("paint", channel)

        collector.dispose()

        assert channel.subscriber_count == 0
        assert not collector.attach_observer("paint", channel)


class TestRenders:

    def test_component_profile(self, collector):
        collector.record_render("Editor", 10)
        collector.record_render("Editor", 30, RenderPhase.UPDATE, props_changed=False)
        collector.record_render("Editor", 20, RenderPhase.UPDATE, props_changed=True)

        profile = collector.get_component_data("Editor")
        assert profile.render_count == 3
        assert profile.average_render_ms == pytest.approx(20)
        assert profile.slowest_render_ms == 30
        assert profile.fastest_render_ms == 10
        assert profile.unnecessary_rerenders == 1
        assert len(collector.get_render_metrics()) == 3

    def test_profiles_are_copies(self, collector):
        collector.record_render("List", 5)

        collector.get_component_data("List").render_count = 99

        assert collector.get_component_data("List").render_count == 1
        assert collector.get_component_data("Missing") is None

    def test_render_monitoring_disabled(self, flat_probe):
        collector = MetricsCollector(config=PerformanceConfig(enable_render_monitoring=False),
                                     memory_probe=flat_probe)
        collector.record_render("List", 5)

        assert collector.get_all_component_data() == []


class TestMemory:
    """Test memory polling"""

    def test_growth_suspicion(self, growing_probe):
        collector = MetricsCollector(config=PerformanceConfig(enable_memory_monitoring=False),
                                     memory_probe=growing_probe)

        for _ in range(4):
            collector.poll_memory()
        assert collector.get_leak_suspicions() == []

        collector.poll_memory()
        suspicions = collector.get_leak_suspicions()

        assert len(suspicions) == 1
        assert suspicions[0]["growth_rate"] == pytest.approx(0.4)
        assert suspicions[0]["window_size"] == 5

    def test_no_suspicion_when_flat(self, collector):
        for _ in range(6):
            collector.poll_memory()

        assert len(collector.get_memory_metrics()) == 6
        assert collector.get_leak_suspicions() == []

    def test_memory_api_failure_disables_polling(self):
        collector = MetricsCollector(memory_probe=BrokenMemoryProbe())

        assert collector.poll_memory() is None
        assert collector.poll_memory() is None
        assert collector.get_disabled_signals() == ["memory"]

    @pytest.mark.asyncio
    async def test_polling_lifecycle(self):
        probe = FakeMemoryProbe(step=MB)
        config = PerformanceConfig(enable_memory_monitoring=True, memory_check_interval_ms=10)

        async with MetricsCollector(config=config, memory_probe=probe) as collector:
            await asyncio.sleep(0.1)
            assert len(collector.get_memory_metrics()) >= 2

        count = len(collector.get_memory_metrics())
        await asyncio.sleep(0.05)

        assert collector.disposed
        assert len(collector.get_memory_metrics()) == count


@pytest.mark.asyncio
class TestNetworkInstrumentation:
    """Test wrapped requests"""

    async def test_successful_request(self, collector):
        async def executor():
            return SimpleNamespace(status_code=201, headers={"content-length": "42"}, content=b"")

        response = await collector.instrument_request("/api/items", "post", executor)

        assert response.status_code == 201
        record = collector.get_network_metrics()[-1]
        assert record.method == "POST"
        assert record.status_code == 201
        assert record.response_bytes == 42
        assert record.duration_ms >= 0

    async def test_size_from_content(self, collector):
        await collector.instrument_request("/api", "GET", lambda: SimpleNamespace(status=200, content=b"abcd"))

        assert collector.get_network_metrics()[-1].response_bytes == 4

    async def test_transport_failure_recorded_with_status_zero(self, collector):
        async def executor():
            raise ConnectionError("connection reset")

        with pytest.raises(ConnectionError):
            await collector.instrument_request("/api", "GET", executor)

        record = collector.get_network_metrics()[-1]
        assert record.status_code == 0
        assert record.failed

    async def test_http_error_status_recorded(self, collector):
        async def executor():
            raise HTTPStatusError("/api", 503)

        with pytest.raises(HTTPStatusError):
            await collector.instrument_request("/api", "GET", executor)

        assert collector.get_network_metrics()[-1].status_code == 503

    async def test_no_record_after_dispose(self, collector):
        collector.dispose()

        result = await collector.instrument_request("/api", "GET", lambda: "ok")

        assert result == "ok"
        assert collector.get_network_metrics() == []


class TestInteractions:

    def test_completion_fires_once(self, collector):
        complete = collector.record_interaction(InteractionType.CLICK, "#save")

        record = complete()

        assert record is not None
        assert record.target == "#save"
        assert record.type == InteractionType.CLICK
        assert complete() is None
        assert len(collector.get_interaction_metrics()) == 1


class TestDisposal:
    """After disposal every record call is a no-op"""

    def test_records_ignored_after_dispose(self, collector):
        collector.dispose()
        collector.dispose()

        collector.record_paint_timing("first-contentful-paint", 1000)
        collector.record_layout_shift(0.3)
        collector.record_long_task(500)
        collector.record_render("Editor", 50)
        complete = collector.record_interaction(InteractionType.INPUT, "#name")

        assert complete() is None
        assert collector.poll_memory() is None
        assert collector.get_performance_metrics().cumulative_layout_shift == 0
        assert collector.get_all_component_data() == []
        assert collector.get_interaction_metrics() == []
