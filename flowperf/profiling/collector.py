"""Runtime signal collection

The collector owns a SampleStore and turns raw observer entries, memory
probes, wrapped requests and interaction callbacks into stored records.
"""

import time
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

import structlog

from flowperf.core.config import PerformanceConfig
from flowperf.core.exceptions import InstrumentationError
from flowperf.core.models import (
    ComponentProfile,
    InteractionRecord,
    InteractionType,
    MemorySnapshot,
    MetricKind,
    NetworkRecord,
    PerformanceSample,
    RenderPhase,
    RenderRecord,
    WebVitals,
)
from flowperf.core.sample_store import RingBuffer, SampleStore
from flowperf.utils.aio import PeriodicTask, Subscription, maybe_await
from flowperf.utils.memory import MemoryProbe, ProcessMemoryProbe

logger = structlog.get_logger()

# Long tasks block input for everything above this budget
LONG_TASK_BUDGET_MS = 50.0

MEMORY_GROWTH_WINDOW = 5
MEMORY_GROWTH_WARNING = 0.10

PAINT_METRICS = {
    "first-contentful-paint": MetricKind.FCP,
    "largest-contentful-paint": MetricKind.LCP,
}


def _entry_field(entry: Any, name: str, default: Any = None) -> Any:
    if isinstance(entry, dict):
        return entry.get(name, default)
    return getattr(entry, name, default)


def _response_size(response: Any) -> int:
    headers = getattr(response, "headers", None)
    if headers is not None:
        length = headers.get("content-length") or headers.get("Content-Length")
        if length is not None:
            try:
                return int(length)
            except (TypeError, ValueError):
                pass

    content = getattr(response, "content", None)
    if isinstance(content, (bytes, bytearray, str)):
        return len(content)

    return 0


def _response_status(response: Any) -> int:
    status = getattr(response, "status_code", None)
    if status is None:
        status = getattr(response, "status", 200)
    return int(status)


def _error_status(error: BaseException) -> int:
    status = getattr(error, "status_code", None)
    if isinstance(status, int):
        return status
    response = getattr(error, "response", None)
    if response is not None and isinstance(getattr(response, "status_code", None), int):
        return response.status_code
    return 0


class MetricsCollector:
    """Collects timing, memory, network, interaction and render signals

    Lifecycle is owned by the host: ``start()`` begins background polling and
    ``dispose()`` stops everything. After disposal every ``record_*`` call is
    a no-op.
    """

    def __init__(self,
                 config: Optional[PerformanceConfig] = None,
                 store: Optional[SampleStore] = None,
                 memory_probe: Optional[MemoryProbe] = None,
                 suspicion_history: int = 50):
        self.config = config or PerformanceConfig()
        self.store = store or SampleStore()
        self.memory_probe = memory_probe or ProcessMemoryProbe()

        self._cls_total = 0.0
        self._tbt_total = 0.0
        self._profiles: Dict[str, ComponentProfile] = {}
        self._leak_suspicions: RingBuffer[Dict[str, Any]] = RingBuffer(suspicion_history)

        self._subscriptions: List[Subscription] = []
        self._observers: Dict[str, Subscription] = {}
        self._tasks: List[PeriodicTask] = []
        self._disabled: Set[str] = set()

        self._started = False
        self._disposed = False

    @property
    def disposed(self) -> bool:
        return self._disposed

    def start(self) -> "MetricsCollector":
        """Apply the configuration; must be called from a running event loop"""
        if self._disposed or self._started:
            return self

        self._started = True
        if self.config.enable_memory_monitoring:
            self.start_memory_polling(self.config.memory_check_interval_ms)

        logger.info("Metrics collector started",
                    memory=self.config.enable_memory_monitoring,
                    network=self.config.enable_network_monitoring,
                    render=self.config.enable_render_monitoring)
        return self

    def dispose(self) -> None:
        if self._disposed:
            return
        self._disposed = True

        for task in self._tasks:
            task.cancel()
        self._tasks.clear()

        for subscription in self._subscriptions:
            subscription.cancel()
        self._subscriptions.clear()
        self._observers.clear()

        logger.info("Metrics collector disposed")

    async def __aenter__(self) -> "MetricsCollector":
        return self.start()

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        self.dispose()
        return False

    def _disable(self, signal: str, error: Any) -> None:
        if signal in self._disabled:
            return
        self._disabled.add(signal)
        logger.warning(f"Signal source for {signal} not supported, continuing without it",
                       signal=signal, error=str(error))

    def _record_sample(self, kind: MetricKind, value: float) -> None:
        self.store.add_sample(PerformanceSample(kind=kind, value=float(value)))

    # Web-Vitals style timings

    def record_paint_timing(self, name: str, start_time: float) -> None:
        if self._disposed:
            return
        kind = PAINT_METRICS.get(name)
        if kind is not None:
            self._record_sample(kind, start_time)

    def record_first_input(self, start_time: float, processing_start: float) -> None:
        if self._disposed:
            return
        self._record_sample(MetricKind.FID, max(0.0, processing_start - start_time))

    def record_layout_shift(self, value: float, had_recent_input: bool = False) -> None:
        """Shifts caused by recent user input do not count towards CLS"""
        if self._disposed or had_recent_input:
            return
        self._cls_total += value
        self._record_sample(MetricKind.CLS, self._cls_total)

    def record_long_task(self, duration: float) -> None:
        if self._disposed:
            return
        blocking_time = max(0.0, duration - LONG_TASK_BUDGET_MS)
        self._tbt_total += blocking_time
        self._record_sample(MetricKind.TBT, self._tbt_total)

    def record_time_to_interactive(self, value: float) -> None:
        if self._disposed:
            return
        self._record_sample(MetricKind.TTI, value)

    # Renders

    def record_render(self,
                      component: str,
                      duration_ms: float,
                      phase: RenderPhase = RenderPhase.MOUNT,
                      props_changed: bool = True) -> None:
        if self._disposed or not self.config.enable_render_monitoring:
            return

        self.store.renders.append(RenderRecord(component=component, duration_ms=duration_ms, phase=phase))

        profile = self._profiles.get(component)
        if profile is None:
            profile = self._profiles[component] = ComponentProfile(component=component)
        profile.record(duration_ms)
        if phase == RenderPhase.UPDATE and not props_changed:
            profile.unnecessary_rerenders += 1

        if duration_ms > self.config.render_threshold_ms:
            logger.warning(f"Slow render detected in {component}: {duration_ms:.2f}ms",
                           component=component, duration_ms=duration_ms)

    # Observer wiring

    def _dispatch(self, entry_type: str, entry: Any) -> None:
        if entry_type == "paint":
            self.record_paint_timing(_entry_field(entry, "name", ""), _entry_field(entry, "start_time", 0.0))
        elif entry_type == "largest-contentful-paint":
            self.record_paint_timing(entry_type, _entry_field(entry, "start_time", 0.0))
        elif entry_type == "first-input":
            self.record_first_input(_entry_field(entry, "start_time", 0.0),
                                    _entry_field(entry, "processing_start", 0.0))
        elif entry_type == "layout-shift":
            self.record_layout_shift(_entry_field(entry, "value", 0.0),
                                     bool(_entry_field(entry, "had_recent_input", False)))
        elif entry_type == "longtask":
            self.record_long_task(_entry_field(entry, "duration", 0.0))
        elif entry_type == "navigation":
            self.record_time_to_interactive(_entry_field(entry, "dom_interactive", 0.0))
        elif entry_type == "render":
            self.record_render(_entry_field(entry, "component", "unknown"),
                               _entry_field(entry, "duration_ms", 0.0),
                               RenderPhase(_entry_field(entry, "phase", "mount")),
                               bool(_entry_field(entry, "props_changed", True)))

    OBSERVED_ENTRY_TYPES = (
        "paint", "largest-contentful-paint", "first-input",
        "layout-shift", "longtask", "navigation", "render",
    )

    def attach_observer(self, entry_type: str, source: Any) -> bool:
        """Subscribe to a signal source delivering entries of ``entry_type``

        Returns False when the source cannot be observed; the signal is then
        disabled and the failure is logged once.
        """
        if self._disposed:
            return False

        if entry_type not in self.OBSERVED_ENTRY_TYPES:
            self._disable(entry_type, InstrumentationError(entry_type, "unknown entry type"))
            return False

        if entry_type in self._disabled:
            return False

        def on_entry(entry: Any) -> None:
            if self._disposed or entry_type in self._disabled:
                return
            try:
                self._dispatch(entry_type, entry)
            except Exception as e:
                self._disable(entry_type, e)
                subscription = self._observers.pop(entry_type, None)
                if subscription:
                    subscription.cancel()

        try:
            subscription = source.subscribe(on_entry)
        except Exception as e:
            self._disable(entry_type, e)
            return False

        self._subscriptions.append(subscription)
        self._observers[entry_type] = subscription
        logger.debug("Observer attached", entry_type=entry_type)
        return True

    # Memory

    def start_memory_polling(self, interval_ms: Optional[float] = None) -> Callable[[], None]:
        """Sample memory every ``interval_ms``; returns a disposer"""
        interval_ms = interval_ms or self.config.memory_check_interval_ms
        if self._disposed:
            return lambda: None

        task = PeriodicTask(self.poll_memory, interval_ms, name="memory-polling").start()
        self._tasks.append(task)
        logger.info(f"Memory polling started (interval: {interval_ms}ms)")
        return task

    def poll_memory(self) -> Optional[MemorySnapshot]:
        """Take one memory sample and run the growth check"""
        if self._disposed or "memory" in self._disabled:
            return None

        try:
            snapshot = self.memory_probe.snapshot()
        except Exception as e:
            self._disable("memory", e)
            return None

        self.store.memory.append(snapshot)
        self._check_memory_growth(snapshot)
        return snapshot

    def _check_memory_growth(self, current: MemorySnapshot) -> None:
        recent = self.store.memory.latest(MEMORY_GROWTH_WINDOW)
        if len(recent) < MEMORY_GROWTH_WINDOW:
            return

        increasing = all(b.used_bytes > a.used_bytes for a, b in zip(recent, recent[1:]))
        if not increasing or recent[0].used_bytes <= 0:
            return

        growth_rate = (current.used_bytes - recent[0].used_bytes) / recent[0].used_bytes
        if growth_rate > MEMORY_GROWTH_WARNING:
            suspicion = {
                "growth_rate": growth_rate,
                "current_usage_mb": current.used_mb,
                "window_size": len(recent),
                "timestamp": current.timestamp,
            }
            self._leak_suspicions.append(suspicion)
            logger.warning("Potential memory leak detected",
                           growth_rate=f"{growth_rate * 100:.2f}%",
                           current_usage=f"{current.used_mb:.2f} MB")

    # Network

    async def instrument_request(self,
                                 url: str,
                                 method: str,
                                 executor: Callable[[], Awaitable[Any]]) -> Any:
        """Run ``executor`` and record a NetworkRecord for the outcome

        The executor's result is returned and its errors are re-raised
        unchanged.
        """
        if self._disposed or not self.config.enable_network_monitoring:
            return await maybe_await(executor)

        method = method.upper()
        start = time.perf_counter()
        try:
            response = await maybe_await(executor)
        except Exception as e:
            duration_ms = (time.perf_counter() - start) * 1000
            self._record_network(url, method, duration_ms, 0, _error_status(e))
            raise

        duration_ms = (time.perf_counter() - start) * 1000
        record = self._record_network(url, method, duration_ms,
                                      _response_size(response), _response_status(response))

        if record and record.duration_ms > self.config.network_threshold_ms:
            logger.warning("Slow network request detected", **record.to_dict())

        return response

    def _record_network(self, url: str, method: str, duration_ms: float,
                        size: int, status: int) -> Optional[NetworkRecord]:
        if self._disposed:
            return None
        record = NetworkRecord(url=url, method=method, duration_ms=duration_ms,
                               response_bytes=size, status_code=status)
        self.store.network.append(record)
        return record

    # Interactions

    def record_interaction(self, type: InteractionType, target: str) -> Callable[[], Optional[InteractionRecord]]:
        """Start timing an interaction; call the returned function when it completes"""
        start = time.perf_counter()
        done = False

        def complete() -> Optional[InteractionRecord]:
            nonlocal done
            if done or self._disposed:
                return None
            done = True

            record = InteractionRecord(type=InteractionType(type), target=target,
                                       duration_ms=(time.perf_counter() - start) * 1000)
            self.store.interactions.append(record)

            if record.is_slow:
                logger.warning(f"Slow {record.type.value} interaction on {target}: {record.duration_ms:.2f}ms")
            return record

        return complete

    # Read-only accessors

    def get_performance_metrics(self) -> WebVitals:
        values = {}
        for kind in MetricKind:
            sample = self.store.latest_sample(kind)
            values[kind] = sample.value if sample else 0.0
        return WebVitals.from_values(values)

    def get_memory_metrics(self) -> List[MemorySnapshot]:
        return self.store.get_memory()

    def get_network_metrics(self) -> List[NetworkRecord]:
        return self.store.get_network()

    def get_interaction_metrics(self) -> List[InteractionRecord]:
        return self.store.get_interactions()

    def get_render_metrics(self) -> List[RenderRecord]:
        return self.store.get_renders()

    def get_component_data(self, component: str) -> Optional[ComponentProfile]:
        profile = self._profiles.get(component)
        return profile.copy() if profile else None

    def get_all_component_data(self) -> List[ComponentProfile]:
        return [profile.copy() for profile in self._profiles.values()]

    def get_leak_suspicions(self) -> List[Dict[str, Any]]:
        return [dict(s) for s in self._leak_suspicions]

    def get_disabled_signals(self) -> List[str]:
        return sorted(self._disabled)

    def clear(self) -> None:
        self.store.clear()
        self._profiles.clear()
        self._leak_suspicions.clear()
        self._cls_total = 0.0
        self._tbt_total = 0.0
