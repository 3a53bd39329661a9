"""Scoring and statistical analysis of collected metrics

Every function here is pure: results depend only on the arguments.
"""

import math
from collections import Counter
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Sequence

import numpy as np

from flowperf.core.models import (
    MemorySnapshot,
    MetricKind,
    NetworkRecord,
    PERFORMANCE_THRESHOLDS,
    Score,
    Threshold,
    WebVitals,
)

METRIC_WEIGHTS: Dict[MetricKind, float] = {
    MetricKind.FCP: 0.10,
    MetricKind.LCP: 0.25,
    MetricKind.FID: 0.25,
    MetricKind.CLS: 0.25,
    MetricKind.TTI: 0.10,
    MetricKind.TBT: 0.05,
}

MB = 1024 * 1024


def score_metric(value: float, threshold: Threshold) -> float:
    """Map a raw metric value onto 0-100 (higher is better)

    100 up to ``good``, 100->75 up to ``needs_improvement``, 75->50 up to
    ``poor``, then decays towards 0 relative to ``poor``.
    """
    if value <= threshold.good:
        return 100.0

    if value <= threshold.needs_improvement:
        band = threshold.needs_improvement - threshold.good
        position = value - threshold.good
        return 100.0 - (position / band) * 25.0

    if value <= threshold.poor:
        band = threshold.poor - threshold.needs_improvement
        position = value - threshold.needs_improvement
        return 75.0 - (position / band) * 25.0

    return max(0.0, 50.0 - ((value - threshold.poor) / threshold.poor) * 50.0)


def metric_scores(metrics: WebVitals) -> Dict[MetricKind, float]:
    return {
        kind: score_metric(metrics.value_for(kind), PERFORMANCE_THRESHOLDS[kind])
        for kind in MetricKind
    }


def composite_score(metrics: WebVitals) -> float:
    """Weighted sum of per-metric scores"""
    scores = metric_scores(metrics)
    return sum(scores[kind] * weight for kind, weight in METRIC_WEIGHTS.items())


def score(metrics: WebVitals) -> Score:
    raw = composite_score(metrics)
    return Score(raw_value=raw, normalized_value=min(100.0, max(0.0, raw)))


def analyze_memory_trend(snapshots: Sequence[MemorySnapshot]) -> Dict[str, Any]:
    """Classify memory usage as stable, growing or declining"""
    if len(snapshots) < 2:
        return {
            "trend": "stable",
            "growth_rate": 0.0,
            "average_usage": 0.0,
            "peak_usage": 0,
            "recommendations": ["Need more data points for analysis"],
        }

    usages = np.array([s.used_bytes for s in snapshots], dtype=float)
    average_usage = float(np.mean(usages))
    peak_usage = int(np.max(usages))

    middle = len(usages) // 2
    first_mean = float(np.mean(usages[:middle]))
    second_mean = float(np.mean(usages[middle:]))

    if first_mean == 0:
        growth_rate = 0.0 if second_mean == 0 else math.inf
    else:
        growth_rate = (second_mean - first_mean) / first_mean

    if abs(growth_rate) < 0.05:
        trend = "stable"
    elif growth_rate > 0:
        trend = "growing"
    else:
        trend = "declining"

    recommendations = []

    if trend == "growing" and growth_rate > 0.1:
        recommendations.append("Significant memory growth detected - check for memory leaks")
        recommendations.append("Review resource cleanup in teardown hooks")
        recommendations.append("Ensure callbacks and subscriptions are properly cancelled")

    if peak_usage > 50 * MB:
        recommendations.append("High memory usage detected - consider lazy loading")
        recommendations.append("Optimize large data structures and caching")

    if trend == "stable" and average_usage < 10 * MB:
        recommendations.append("Memory usage is optimal")

    return {
        "trend": trend,
        "growth_rate": growth_rate,
        "average_usage": average_usage,
        "peak_usage": peak_usage,
        "recommendations": recommendations,
    }


def find_duplicate_requests(records: Sequence[NetworkRecord]) -> List[str]:
    """URLs requested more than once, in first-seen order"""
    counts = Counter(record.url for record in records)
    return [url for url, count in counts.items() if count > 1]


def analyze_network_performance(records: Sequence[NetworkRecord]) -> Dict[str, Any]:
    if not records:
        return {
            "average_response_time": 0.0,
            "slowest_requests": [],
            "total_data_transferred": 0,
            "failure_rate": 0.0,
            "duplicate_urls": [],
            "recommendations": ["No network requests to analyze"],
        }

    durations = np.array([r.duration_ms for r in records], dtype=float)
    average_response_time = float(np.mean(durations))
    slowest_requests = sorted(records, key=lambda r: r.duration_ms, reverse=True)[:5]
    total_data_transferred = sum(r.response_bytes for r in records)
    failure_rate = sum(1 for r in records if r.failed) / len(records)

    recommendations = []

    if average_response_time > 1000:
        recommendations.append("Average response time is high - consider API optimization")
        recommendations.append("Implement request caching where appropriate")

    if total_data_transferred > MB:
        recommendations.append("High data transfer detected - consider response compression")
        recommendations.append("Implement pagination for large datasets")

    if failure_rate > 0.05:
        recommendations.append("High failure rate detected - implement retry logic")
        recommendations.append("Add better error handling for network requests")

    duplicate_urls = find_duplicate_requests(records)
    if duplicate_urls:
        recommendations.append("Duplicate requests detected - implement request deduplication")
        recommendations.append(f"Duplicate URLs: {', '.join(duplicate_urls)}")

    return {
        "average_response_time": average_response_time,
        "slowest_requests": slowest_requests,
        "total_data_transferred": total_data_transferred,
        "failure_rate": failure_rate,
        "duplicate_urls": duplicate_urls,
        "recommendations": recommendations,
    }


def calculate_resource_efficiency(metrics: WebVitals) -> Dict[str, Any]:
    bottlenecks = []
    optimizations = []

    if metrics.first_contentful_paint > 2000:
        bottlenecks.append("Slow First Contentful Paint")
        optimizations.append("Optimize critical rendering path")
        optimizations.append("Minimize render-blocking resources")

    if metrics.cumulative_layout_shift > 0.1:
        bottlenecks.append("Layout instability")
        optimizations.append("Reserve space for dynamic content")

    if metrics.first_input_delay > 100:
        bottlenecks.append("Poor input responsiveness")
        optimizations.append("Break up long tasks")
        optimizations.append("Move heavy computations off the main loop")

    scores = metric_scores(metrics)
    core = [MetricKind.FCP, MetricKind.LCP, MetricKind.FID, MetricKind.CLS]
    efficiency = sum(scores[kind] for kind in core) / len(core)

    return {
        "efficiency": efficiency,
        "bottlenecks": bottlenecks,
        "optimizations": optimizations,
    }


def percentile_index(n: int, q: float) -> int:
    """Index of the q-th percentile in a sorted list of length n"""
    if n <= 0:
        raise ValueError("percentile of an empty sample")
    return min(int(math.floor(n * q)), n - 1)


def format_bytes(num_bytes: float) -> str:
    """Human readable size using 1024-based units, e.g. ``1.5 KB``"""
    if num_bytes == 0:
        return "0 Bytes"

    sizes = ["Bytes", "KB", "MB", "GB"]
    i = int(math.floor(math.log(abs(num_bytes)) / math.log(1024)))
    i = max(0, min(i, len(sizes) - 1))

    value = round(num_bytes / (1024 ** i), 2)
    text = f"{value:.2f}".rstrip("0").rstrip(".")
    return f"{text} {sizes[i]}"


def format_time(milliseconds: float) -> str:
    """``1500`` -> ``1.50s``; below one second -> whole milliseconds"""
    if milliseconds < 1000:
        rounded = Decimal(str(milliseconds)).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
        return f"{int(rounded)}ms"
    return f"{milliseconds / 1000:.2f}s"
