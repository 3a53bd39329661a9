"""Report generation, trends and threshold alerts"""

import time
from dataclasses import dataclass
from typing import Dict, List, Optional

import numpy as np
import structlog

from flowperf.core.models import (
    Alert,
    AlertType,
    MemorySnapshot,
    MetricKind,
    NetworkRecord,
    Report,
    Trend,
    TrendDirection,
    WebVitals,
)
from flowperf.core.sample_store import RingBuffer
from flowperf.profiling import calculator
from flowperf.profiling.bundle_analyzer import BundleAnalyzer
from flowperf.profiling.collector import MetricsCollector
from flowperf.profiling.leak_detector import MemoryLeakDetector
from flowperf.profiling.network_optimizer import NetworkOptimizer
from flowperf.reporting.destinations import (
    ConsoleDestination,
    FileDestination,
    HttpDestination,
    ReportDestination,
)
from flowperf.reporting.serializers import ReportFormat
from flowperf.utils.aio import PeriodicTask

logger = structlog.get_logger()

MB = 1024 * 1024

TREND_WINDOW = 10
STABLE_CHANGE_PERCENT = 5.0

MEMORY_USAGE = "memory_usage"
NETWORK_FAILURE_RATE = "network_failure_rate"

ALERT_THRESHOLDS: Dict[str, float] = {
    MetricKind.FCP.value: 3000,
    MetricKind.LCP.value: 4000,
    MetricKind.FID.value: 300,
    MetricKind.CLS.value: 0.25,
    MEMORY_USAGE: 100 * MB,
    NETWORK_FAILURE_RATE: 0.05,
}

ERROR_MULTIPLIER = 1.5


@dataclass
class ReportConfig:
    include_memory_metrics: bool = True
    include_network_metrics: bool = True
    include_render_metrics: bool = True
    timeframe_hours: Optional[float] = 24
    format: ReportFormat = ReportFormat.JSON
    destination: Optional[str] = "console"
    endpoint: Optional[str] = None
    output_dir: str = "reports"

    @classmethod
    def from_config(cls, config) -> "ReportConfig":
        """Defaults from the ``reporting`` section of a ConfigManager"""
        section = config.get_section("reporting")
        return cls(
            timeframe_hours=section.get("timeframe_hours", 24),
            format=ReportFormat(section.get("format", "json")),
            destination=section.get("destination", "console"),
            endpoint=section.get("endpoint"),
            output_dir=section.get("output_dir", "reports"),
        )


def format_metric_value(metric: str, value: float) -> str:
    if metric in (MetricKind.FCP.value, MetricKind.LCP.value, MetricKind.FID.value):
        return calculator.format_time(value)
    if metric == MetricKind.CLS.value:
        return f"{value:.3f}"
    if metric == MEMORY_USAGE:
        return calculator.format_bytes(value)
    if metric == NETWORK_FAILURE_RATE:
        return f"{value * 100:.1f}%"
    return str(value)


def _dedupe(items: List[str]) -> List[str]:
    return list(dict.fromkeys(items))


class PerformanceReporter:
    """Aggregates collector state into reports and raises alerts

    Upstream components are only read, through snapshot copies.
    """

    def __init__(self,
                 collector: MetricsCollector,
                 leak_detector: Optional[MemoryLeakDetector] = None,
                 network_optimizer: Optional[NetworkOptimizer] = None,
                 bundle_analyzer: Optional[BundleAnalyzer] = None,
                 history_size: int = 100,
                 alert_history_size: int = 50,
                 destinations: Optional[Dict[str, ReportDestination]] = None,
                 report_config: Optional[ReportConfig] = None,
                 report_interval_s: float = 60):
        self.collector = collector
        self.leak_detector = leak_detector
        self.network_optimizer = network_optimizer
        self.bundle_analyzer = bundle_analyzer
        self.report_config = report_config or ReportConfig()
        self.report_interval_s = report_interval_s

        self._reports: RingBuffer[Report] = RingBuffer(history_size)
        self._alerts: RingBuffer[Alert] = RingBuffer(alert_history_size)
        self._trends: List[Trend] = []
        self._destinations: Dict[str, ReportDestination] = dict(destinations or {})
        self._periodic: Optional[PeriodicTask] = None

    @classmethod
    def from_config(cls, config, collector: MetricsCollector, **components) -> "PerformanceReporter":
        section = config.get_section("reporting")
        return cls(
            collector,
            history_size=section.get("history_size", 100),
            alert_history_size=section.get("alert_history_size", 50),
            report_config=ReportConfig.from_config(config),
            report_interval_s=section.get("interval_s", 60),
            **components,
        )

    # Generation

    def build_report(self, config: Optional[ReportConfig] = None) -> Report:
        """Snapshot current state into an immutable Report"""
        config = config or self.report_config
        now = time.time()
        since = now - config.timeframe_hours * 3600 if config.timeframe_hours else None

        metrics = self.collector.get_performance_metrics()

        memory: List[MemorySnapshot] = []
        if config.include_memory_metrics:
            memory = [s for s in self.collector.get_memory_metrics() if since is None or s.timestamp >= since]

        network: List[NetworkRecord] = []
        if config.include_network_metrics:
            network = [r for r in self.collector.get_network_metrics() if since is None or r.timestamp >= since]

        renders = []
        if config.include_render_metrics:
            renders = [profile.to_dict() for profile in self.collector.get_all_component_data()]

        return Report(
            timestamp=now,
            metrics=metrics,
            memory_snapshots=tuple(memory),
            network_records=tuple(network),
            render_profiles=tuple(renders),
            score=calculator.score(metrics),
            recommendations=tuple(self.generate_recommendations(metrics, memory, network)),
        )

    async def generate_report(self, config: Optional[ReportConfig] = None) -> Report:
        config = config or self.report_config
        report = self.build_report(config)

        self.add_report(report)
        await self.output_report(report, config)
        return report

    def add_report(self, report: Report) -> None:
        """Append to history, then refresh trends and alerts"""
        self._reports.append(report)
        self.update_trends()
        self.check_alerts(report)

    def generate_recommendations(self,
                                 metrics: WebVitals,
                                 memory: List[MemorySnapshot],
                                 network: List[NetworkRecord]) -> List[str]:
        recommendations = []

        if metrics.first_contentful_paint > 1800:
            recommendations.append("Optimize First Contentful Paint - preload critical resources")
        if metrics.largest_contentful_paint > 2500:
            recommendations.append("Improve Largest Contentful Paint - optimize the critical render path")
        if metrics.first_input_delay > 100:
            recommendations.append("Reduce First Input Delay - minimize work on the main loop")
        if metrics.cumulative_layout_shift > 0.1:
            recommendations.append("Fix Layout Shift issues - reserve space for dynamic content")
        if metrics.total_blocking_time > 600:
            recommendations.append("Reduce Total Blocking Time - split long tasks")

        if memory:
            trend = calculator.analyze_memory_trend(memory)
            if trend["trend"] == "growing" and trend["growth_rate"] > 0.1:
                recommendations.append("Memory leak detected - review cleanup of components and subscriptions")
            if memory[-1].used_bytes > 50 * MB:
                recommendations.append("High memory usage - consider lazy loading and data pagination")

        if network:
            recommendations.extend(calculator.analyze_network_performance(network)["recommendations"])

        if self.leak_detector is not None:
            for leak in self.leak_detector.get_reports():
                if leak.is_leak_detected:
                    recommendations.append(
                        f"{leak.test_name}: {leak.severity.value} memory growth "
                        f"({leak.growth_percent:.1f}%) in {leak.component}")
            if self.leak_detector.get_leak_detections():
                recommendations.append("Continuous monitoring flagged sustained memory growth")

        if self.network_optimizer is not None:
            for network_report in self.network_optimizer.get_reports()[-5:]:
                for text in network_report.recommendations:
                    if text.startswith(("HIGH", "MEDIUM")):
                        recommendations.append(f"{network_report.test_name}: {text}")

        if self.bundle_analyzer is not None:
            recommendations.extend(self.bundle_analyzer.generate_optimization_recommendations())

        return _dedupe(recommendations)

    # Trends

    def update_trends(self) -> List[Trend]:
        """Compare the last 10 reports with the 10 before them"""
        reports = self._reports.snapshot()
        if len(reports) < 2 * TREND_WINDOW:
            return self.get_trends()

        recent = reports[-TREND_WINDOW:]
        older = reports[-2 * TREND_WINDOW:-TREND_WINDOW]

        trends = []
        for kind in MetricKind:
            recent_avg = float(np.mean([r.metrics.value_for(kind) for r in recent]))
            older_avg = float(np.mean([r.metrics.value_for(kind) for r in older]))

            if older_avg == 0:
                change = 0.0 if recent_avg == 0 else 100.0
            else:
                change = (recent_avg - older_avg) / older_avg * 100

            if abs(change) < STABLE_CHANGE_PERCENT:
                direction = TrendDirection.STABLE
            elif change < 0:
                direction = TrendDirection.IMPROVING
            else:
                direction = TrendDirection.DECLINING

            trends.append(Trend(metric=kind.value, direction=direction, change_percent=abs(change),
                                period=f"last {TREND_WINDOW} reports"))

        self._trends = trends
        return self.get_trends()

    # Alerts

    def _alert_values(self, report: Report) -> Dict[str, float]:
        values = {
            MetricKind.FCP.value: report.metrics.first_contentful_paint,
            MetricKind.LCP.value: report.metrics.largest_contentful_paint,
            MetricKind.FID.value: report.metrics.first_input_delay,
            MetricKind.CLS.value: report.metrics.cumulative_layout_shift,
        }
        if report.memory_snapshots:
            values[MEMORY_USAGE] = report.memory_snapshots[-1].used_bytes
        if report.network_records:
            failed = sum(1 for r in report.network_records if r.failed)
            values[NETWORK_FAILURE_RATE] = failed / len(report.network_records)
        return values

    def check_alerts(self, report: Report) -> List[Alert]:
        """Raise an alert for every value above its threshold"""
        alerts = []

        for metric, value in self._alert_values(report).items():
            threshold = ALERT_THRESHOLDS[metric]
            if value <= threshold:
                continue

            alert_type = AlertType.ERROR if value > threshold * ERROR_MULTIPLIER else AlertType.WARNING
            alerts.append(Alert(
                type=alert_type,
                metric=metric,
                value=value,
                threshold=threshold,
                message=(f"{metric} ({format_metric_value(metric, value)}) exceeds threshold "
                         f"({format_metric_value(metric, threshold)})"),
            ))

        for alert in alerts:
            self._alerts.append(alert)
            logger.warning(f"Performance alert: {alert.message}", severity=alert.type.value)

        return alerts

    # Output

    def _destination_for(self, config: ReportConfig) -> Optional[ReportDestination]:
        if config.destination is None:
            return None

        if config.destination in self._destinations:
            return self._destinations[config.destination]

        if config.destination == "console":
            destination = ConsoleDestination()
        elif config.destination == "download":
            destination = FileDestination(config.output_dir, config.format)
        elif config.destination == "api":
            if not config.endpoint:
                logger.warning("API destination requested without an endpoint")
                return None
            destination = HttpDestination(config.endpoint)
        else:
            logger.warning("Unknown report destination", destination=config.destination)
            return None

        self._destinations[config.destination] = destination
        return destination

    def register_destination(self, name: str, destination: ReportDestination) -> None:
        self._destinations[name] = destination

    async def output_report(self, report: Report, config: ReportConfig) -> None:
        """Deliver ``report``; delivery failures are logged and never raised"""
        destination = self._destination_for(config)
        if destination is None:
            return

        try:
            await destination.send(report)
        except Exception as e:
            logger.error("Failed to deliver performance report",
                         destination=config.destination, error=str(e))

    def start_periodic_reporting(self, interval_s: Optional[float] = None,
                                 config: Optional[ReportConfig] = None) -> PeriodicTask:
        """Generate a report every ``interval_s``; the returned handle stops it"""
        self.stop_periodic_reporting()
        interval_s = interval_s or self.report_interval_s
        config = config or self.report_config

        self._periodic = PeriodicTask(lambda: self.generate_report(config), interval_s * 1000,
                                      name="periodic-reporting").start()
        logger.info(f"Periodic reporting started (interval: {interval_s}s)")
        return self._periodic

    def stop_periodic_reporting(self) -> None:
        if self._periodic is not None:
            self._periodic.cancel()
            self._periodic = None

    # Accessors

    def get_reports(self, limit: Optional[int] = None) -> List[Report]:
        if limit:
            return self._reports.latest(limit)
        return self._reports.snapshot()

    def get_alerts(self, unresolved_only: bool = False) -> List[Alert]:
        """Alerts, newest first"""
        alerts = [a for a in self._alerts if not (unresolved_only and a.resolved)]
        return sorted(alerts, key=lambda a: a.timestamp, reverse=True)

    def get_trends(self) -> List[Trend]:
        return list(self._trends)

    def resolve_alert(self, index: int) -> bool:
        """Mark the alert at ``index`` (oldest first) resolved; out-of-range is ignored"""
        if not 0 <= index < len(self._alerts):
            return False
        self._alerts[index].resolved = True
        return True

    def clear_reports(self) -> None:
        self._reports.clear()
        self._trends = []

    def clear_alerts(self) -> None:
        self._alerts.clear()
