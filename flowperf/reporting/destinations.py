"""Report sinks"""

import asyncio
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional, Union

import requests
import structlog

from flowperf.core.exceptions import SinkError
from flowperf.core.models import Report
from flowperf.reporting.serializers import ReportFormat, serialize, serialize_json

logger = structlog.get_logger()


class ReportDestination(ABC):
    """Somewhere a finished report can be delivered"""

    name = "destination"

    @abstractmethod
    async def send(self, report: Report) -> Any:
        ...


class ConsoleDestination(ReportDestination):
    """Emit the report as a structured log event"""

    name = "console"

    def __init__(self, log=None):
        self.log = log or logger

    async def send(self, report: Report) -> None:
        self.log.info("Performance report",
                      score=round(report.score.normalized_value, 1),
                      metrics=report.metrics.to_dict(),
                      memory_samples=len(report.memory_snapshots),
                      network_requests=len(report.network_records),
                      recommendations=list(report.recommendations))


class FileDestination(ReportDestination):
    """Write the serialized report to ``output_dir``"""

    name = "download"

    def __init__(self, output_dir: Union[str, Path] = "reports",
                 format: Union[ReportFormat, str] = ReportFormat.JSON):
        self.output_dir = Path(output_dir)
        self.format = ReportFormat(format)

    def filename(self, report: Report) -> str:
        return f"performance-report-{int(report.timestamp * 1000)}.{self.format.extension}"

    async def send(self, report: Report) -> Path:
        content = serialize(report, self.format)
        path = self.output_dir / self.filename(report)

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "w", encoding="utf-8") as f:
                f.write(content)
        except OSError as e:
            raise SinkError(self.name, f"could not write {path}: {e}")

        logger.info(f"Performance report written to {path}", format=self.format.value)
        return path


class HttpDestination(ReportDestination):
    """POST the JSON report to a remote endpoint"""

    name = "api"

    def __init__(self, endpoint: str, timeout: float = 10.0,
                 session: Optional[requests.Session] = None):
        self.endpoint = endpoint
        self.timeout = timeout
        self.session = session or requests.Session()

    def _post(self, body: str) -> int:
        response = self.session.post(
            self.endpoint,
            data=body,
            headers={"Content-Type": "application/json"},
            timeout=self.timeout,
        )
        response.raise_for_status()
        return response.status_code

    async def send(self, report: Report) -> int:
        loop = asyncio.get_running_loop()
        try:
            status = await loop.run_in_executor(None, self._post, serialize_json(report))
        except requests.RequestException as e:
            raise SinkError(self.name, f"failed to send report to {self.endpoint}: {e}")

        logger.debug("Performance report sent", endpoint=self.endpoint, status=status)
        return status
