"""Data model shared by the telemetry engine"""

import time
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from flowperf.core.exceptions import ValidationError


class MetricKind(Enum):
    """Web-Vitals style timing metrics"""
    FCP = "first_contentful_paint"
    LCP = "largest_contentful_paint"
    FID = "first_input_delay"
    CLS = "cumulative_layout_shift"
    TTI = "time_to_interactive"
    TBT = "total_blocking_time"


class InteractionType(Enum):
    CLICK = "click"
    INPUT = "input"
    SCROLL = "scroll"
    NAVIGATION = "navigation"


class RenderPhase(Enum):
    MOUNT = "mount"
    UPDATE = "update"


class LeakSeverity(Enum):
    NONE = "none"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class AlertType(Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class TrendDirection(Enum):
    IMPROVING = "improving"
    STABLE = "stable"
    DECLINING = "declining"


# Interactions slower than this are flagged
SLOW_INTERACTION_MS = 100.0


def _plain(value: Any) -> Any:
    """Convert enums nested in asdict() output to their values"""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return value


@dataclass(frozen=True)
class PerformanceSample:
    """Single timing sample"""
    kind: MetricKind
    value: float
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return _plain(asdict(self))


@dataclass(frozen=True)
class MemorySnapshot:
    """Memory usage snapshot"""
    used_bytes: int
    total_bytes: int
    limit_bytes: int
    timestamp: float = field(default_factory=time.time)

    @property
    def used_mb(self) -> float:
        return self.used_bytes / (1024 * 1024)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class NetworkRecord:
    """Outcome of one outbound request"""
    url: str
    method: str
    duration_ms: float
    response_bytes: int
    status_code: int
    timestamp: float = field(default_factory=time.time)

    @property
    def transport_failure(self) -> bool:
        return self.status_code == 0

    @property
    def failed(self) -> bool:
        return self.status_code >= 400 or self.status_code == 0

    @property
    def key(self) -> str:
        return f"{self.method}:{self.url}"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class InteractionRecord:
    type: InteractionType
    target: str
    duration_ms: float
    timestamp: float = field(default_factory=time.time)

    @property
    def is_slow(self) -> bool:
        return self.duration_ms > SLOW_INTERACTION_MS

    def to_dict(self) -> Dict[str, Any]:
        data = _plain(asdict(self))
        data["is_slow"] = self.is_slow
        return data


@dataclass(frozen=True)
class RenderRecord:
    component: str
    duration_ms: float
    phase: RenderPhase = RenderPhase.MOUNT
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return _plain(asdict(self))


@dataclass
class ComponentProfile:
    """Aggregated render statistics for one component"""
    component: str
    render_count: int = 0
    total_render_ms: float = 0.0
    slowest_render_ms: float = 0.0
    fastest_render_ms: float = float("inf")
    unnecessary_rerenders: int = 0

    @property
    def average_render_ms(self) -> float:
        if self.render_count == 0:
            return 0.0
        return self.total_render_ms / self.render_count

    def record(self, duration_ms: float) -> None:
        self.render_count += 1
        self.total_render_ms += duration_ms
        self.slowest_render_ms = max(self.slowest_render_ms, duration_ms)
        self.fastest_render_ms = min(self.fastest_render_ms, duration_ms)

    def copy(self) -> "ComponentProfile":
        return ComponentProfile(
            component=self.component,
            render_count=self.render_count,
            total_render_ms=self.total_render_ms,
            slowest_render_ms=self.slowest_render_ms,
            fastest_render_ms=self.fastest_render_ms,
            unnecessary_rerenders=self.unnecessary_rerenders,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "component": self.component,
            "render_count": self.render_count,
            "total_render_ms": self.total_render_ms,
            "average_render_ms": self.average_render_ms,
            "slowest_render_ms": self.slowest_render_ms,
            "fastest_render_ms": self.fastest_render_ms if self.render_count else 0.0,
            "unnecessary_rerenders": self.unnecessary_rerenders,
        }


@dataclass(frozen=True)
class Threshold:
    """Band boundaries for one metric; lower values are better"""
    good: float
    needs_improvement: float
    poor: float

    def __post_init__(self):
        if not self.good < self.needs_improvement <= self.poor:
            raise ValidationError(
                "threshold",
                (self.good, self.needs_improvement, self.poor),
                "expected good < needs_improvement <= poor",
            )


PERFORMANCE_THRESHOLDS: Dict[MetricKind, Threshold] = {
    MetricKind.FCP: Threshold(good=1800, needs_improvement=3000, poor=4000),
    MetricKind.LCP: Threshold(good=2500, needs_improvement=4000, poor=4000),
    MetricKind.FID: Threshold(good=100, needs_improvement=300, poor=300),
    MetricKind.CLS: Threshold(good=0.1, needs_improvement=0.25, poor=0.25),
    MetricKind.TTI: Threshold(good=3800, needs_improvement=7300, poor=7300),
    MetricKind.TBT: Threshold(good=200, needs_improvement=600, poor=600),
}


@dataclass(frozen=True)
class WebVitals:
    """Latest value of each timing metric (0 when not yet observed)"""
    first_contentful_paint: float = 0.0
    largest_contentful_paint: float = 0.0
    first_input_delay: float = 0.0
    cumulative_layout_shift: float = 0.0
    time_to_interactive: float = 0.0
    total_blocking_time: float = 0.0

    def value_for(self, kind: MetricKind) -> float:
        return getattr(self, kind.value)

    @classmethod
    def from_values(cls, values: Dict[MetricKind, float]) -> "WebVitals":
        return cls(**{kind.value: float(value) for kind, value in values.items()})

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


@dataclass
class CacheEntry:
    key: str
    payload: Any
    stored_at: float
    ttl_ms: float

    def is_valid(self, now: float) -> bool:
        return now <= self.stored_at + self.ttl_ms / 1000.0


@dataclass(frozen=True)
class Score:
    raw_value: float
    normalized_value: float

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


@dataclass
class LeakReport:
    """Outcome of one controlled repeated-action experiment"""
    test_name: str
    component: str
    iterations: int
    memory_growth_bytes: int
    growth_percent: float
    severity: LeakSeverity
    snapshots: List[MemorySnapshot]
    recommendations: List[str]
    success: bool = True
    error: Optional[str] = None
    timestamp: float = field(default_factory=time.time)

    @property
    def is_leak_detected(self) -> bool:
        return self.severity != LeakSeverity.NONE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "test_name": self.test_name,
            "component": self.component,
            "iterations": self.iterations,
            "memory_growth_bytes": self.memory_growth_bytes,
            "growth_percent": self.growth_percent,
            "severity": self.severity.value,
            "is_leak_detected": self.is_leak_detected,
            "success": self.success,
            "error": self.error,
            "snapshots": [s.to_dict() for s in self.snapshots],
            "recommendations": list(self.recommendations),
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class LeakDetection:
    """Leak suspicion raised by continuous monitoring"""
    component: str
    memory_growth_bytes: int
    growth_percent: float
    window_size: int
    timestamp: float = field(default_factory=time.time)


@dataclass
class NetworkReport:
    test_name: str
    url: str
    total_requests: int
    success_count: int
    failure_count: int
    avg_duration_ms: float
    median_duration_ms: float
    p95_duration_ms: float
    p99_duration_ms: float
    min_duration_ms: float
    max_duration_ms: float
    throughput_rps: float
    total_bytes: int
    cache_hit_rate: float
    estimated_cache_hit_rate: float
    deduplicated_requests: int = 0
    success: bool = True
    error: Optional[str] = None
    recommendations: List[str] = field(default_factory=list)
    records: List[NetworkRecord] = field(default_factory=list)
    timestamp: float = field(default_factory=time.time)

    @property
    def failure_rate(self) -> float:
        if self.total_requests == 0:
            return 0.0
        return self.failure_count / self.total_requests

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["failure_rate"] = self.failure_rate
        return data


@dataclass(frozen=True)
class Report:
    """Immutable snapshot of engine state"""
    timestamp: float
    metrics: WebVitals
    memory_snapshots: Tuple[MemorySnapshot, ...]
    network_records: Tuple[NetworkRecord, ...]
    render_profiles: Tuple[Dict[str, Any], ...]
    score: Score
    recommendations: Tuple[str, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "metrics": self.metrics.to_dict(),
            "memory_snapshots": [s.to_dict() for s in self.memory_snapshots],
            "network_records": [r.to_dict() for r in self.network_records],
            "render_profiles": [dict(p) for p in self.render_profiles],
            "score": self.score.to_dict(),
            "recommendations": list(self.recommendations),
        }


@dataclass
class Alert:
    type: AlertType
    metric: str
    value: float
    threshold: float
    message: str
    timestamp: float = field(default_factory=time.time)
    resolved: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return _plain(asdict(self))


@dataclass(frozen=True)
class Trend:
    metric: str
    direction: TrendDirection
    change_percent: float
    period: str = "last 10 reports"


@dataclass
class BenchmarkResult:
    name: str
    duration_ms: float
    success: bool
    metrics: Dict[str, float] = field(default_factory=dict)
    error: Optional[str] = None
    timestamp: float = field(default_factory=time.time)
