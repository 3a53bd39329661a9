"""Report serialization: one serializer per ReportFormat"""

import csv
import json
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Dict, List

import pandas as pd
from jinja2 import Environment, select_autoescape

from flowperf.core.models import Report
from flowperf.profiling.calculator import format_bytes, format_time


class ReportFormat(Enum):
    JSON = "json"
    HTML = "html"
    CSV = "csv"

    @property
    def mime_type(self) -> str:
        return {
            ReportFormat.JSON: "application/json",
            ReportFormat.HTML: "text/html",
            ReportFormat.CSV: "text/csv",
        }[self]

    @property
    def extension(self) -> str:
        return self.value


HTML_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <title>Performance Report - {{ generated }}</title>
    <style>
        body { font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; margin: 40px; }
        .header { border-bottom: 2px solid #eee; padding-bottom: 20px; margin-bottom: 30px; }
        .score { font-size: 48px; font-weight: bold; color: {{ score_color }}; }
        .metric { margin: 10px 0; }
        .metric-label { font-weight: bold; }
        .recommendations { background: #f8f9fa; padding: 20px; border-radius: 6px; margin: 20px 0; }
        .recommendation { margin: 10px 0; padding-left: 20px; }
        table { width: 100%; border-collapse: collapse; margin: 20px 0; }
        th, td { padding: 10px; text-align: left; border-bottom: 1px solid #eee; }
        th { background: #f8f9fa; }
    </style>
</head>
<body>
    <div class="header">
        <h1>Performance Report</h1>
        <p>Generated on {{ generated }}</p>
        <div class="score">{{ report.score.normalized_value | round | int }}</div>
    </div>

    <h2>Web Vitals</h2>
    <div class="metric"><span class="metric-label">First Contentful Paint:</span> {{ report.metrics.first_contentful_paint | format_time }}</div>
    <div class="metric"><span class="metric-label">Largest Contentful Paint:</span> {{ report.metrics.largest_contentful_paint | format_time }}</div>
    <div class="metric"><span class="metric-label">First Input Delay:</span> {{ report.metrics.first_input_delay | format_time }}</div>
    <div class="metric"><span class="metric-label">Cumulative Layout Shift:</span> {{ "%.3f" | format(report.metrics.cumulative_layout_shift) }}</div>
    <div class="metric"><span class="metric-label">Time to Interactive:</span> {{ report.metrics.time_to_interactive | format_time }}</div>
    <div class="metric"><span class="metric-label">Total Blocking Time:</span> {{ report.metrics.total_blocking_time | format_time }}</div>

    <div class="recommendations">
        <h2>Recommendations</h2>
        {% for recommendation in report.recommendations %}
        <div class="recommendation">{{ recommendation }}</div>
        {% else %}
        <div class="recommendation">No recommendations</div>
        {% endfor %}
    </div>
{% if memory %}
    <h2>Memory Usage</h2>
    <table>
        <thead><tr><th>Timestamp</th><th>Used</th><th>Total</th></tr></thead>
        <tbody>
        {% for snapshot in memory %}
            <tr><td>{{ snapshot.timestamp | clock }}</td><td>{{ snapshot.used_bytes | format_bytes }}</td><td>{{ snapshot.total_bytes | format_bytes }}</td></tr>
        {% endfor %}
        </tbody>
    </table>
{% endif %}
{% if network %}
    <h2>Network Requests (Last 10)</h2>
    <table>
        <thead><tr><th>URL</th><th>Method</th><th>Duration</th><th>Status</th><th>Size</th></tr></thead>
        <tbody>
        {% for record in network %}
            <tr><td>{{ record.url }}</td><td>{{ record.method }}</td><td>{{ record.duration_ms | format_time }}</td><td>{{ record.status_code }}</td><td>{{ record.response_bytes | format_bytes }}</td></tr>
        {% endfor %}
        </tbody>
    </table>
{% endif %}
{% if report.render_profiles %}
    <h2>Components</h2>
    <table>
        <thead><tr><th>Component</th><th>Renders</th><th>Average</th><th>Slowest</th><th>Unnecessary</th></tr></thead>
        <tbody>
        {% for profile in report.render_profiles %}
            <tr><td>{{ profile.component }}</td><td>{{ profile.render_count }}</td><td>{{ profile.average_render_ms | format_time }}</td><td>{{ profile.slowest_render_ms | format_time }}</td><td>{{ profile.unnecessary_rerenders }}</td></tr>
        {% endfor %}
        </tbody>
    </table>
{% endif %}
</body>
</html>
"""


def _iso(timestamp: float) -> str:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()


def _clock(timestamp: float) -> str:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).strftime("%H:%M:%S")


_environment = Environment(autoescape=select_autoescape(default=True, default_for_string=True))
_environment.filters["format_time"] = format_time
_environment.filters["format_bytes"] = format_bytes
_environment.filters["clock"] = _clock
_html_template = _environment.from_string(HTML_TEMPLATE)


def score_color(score: float) -> str:
    if score >= 90:
        return "#4CAF50"
    if score >= 75:
        return "#FF9800"
    return "#F44336"


def serialize_json(report: Report) -> str:
    return json.dumps(report.to_dict(), indent=2, default=str)


def serialize_html(report: Report) -> str:
    return _html_template.render(
        report=report,
        generated=_iso(report.timestamp),
        score_color=score_color(report.score.normalized_value),
        memory=list(report.memory_snapshots)[-10:],
        network=list(report.network_records)[-10:],
    )


def csv_rows(report: Report) -> List[List[str]]:
    metrics = report.metrics
    rows = [
        ["Timestamp", _iso(report.timestamp)],
        ["Score", str(report.score.normalized_value)],
        ["First Contentful Paint", str(metrics.first_contentful_paint)],
        ["Largest Contentful Paint", str(metrics.largest_contentful_paint)],
        ["First Input Delay", str(metrics.first_input_delay)],
        ["Cumulative Layout Shift", str(metrics.cumulative_layout_shift)],
        ["Time to Interactive", str(metrics.time_to_interactive)],
        ["Total Blocking Time", str(metrics.total_blocking_time)],
    ]
    rows.extend([f"Recommendation {i}", text] for i, text in enumerate(report.recommendations, start=1))
    return rows


def serialize_csv(report: Report) -> str:
    """Two-column Metric/Value table with every cell quoted"""
    frame = pd.DataFrame(csv_rows(report), columns=["Metric", "Value"])
    return frame.to_csv(index=False, quoting=csv.QUOTE_ALL, lineterminator="\n")


SERIALIZERS: Dict[ReportFormat, Callable[[Report], str]] = {
    ReportFormat.JSON: serialize_json,
    ReportFormat.HTML: serialize_html,
    ReportFormat.CSV: serialize_csv,
}


def serialize(report: Report, format: ReportFormat) -> str:
    return SERIALIZERS[ReportFormat(format)](report)
