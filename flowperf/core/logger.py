"""Structured logging for the engine

Every module logs through ``structlog.get_logger()``. ``setup_logging``
routes those events through the ``flowperf`` stdlib logger so a host
application keeps control of its own root logger.
"""

import logging
import logging.handlers
import sys
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

import structlog

LOGGER_NAMESPACE = "flowperf"

LOG_FILE_MAX_BYTES = 10 * 1024 * 1024
LOG_FILE_BACKUPS = 5


class PerformanceProcessor:
    """Add a rolling ``avg_duration_ms`` to events that carry ``duration_ms``"""

    def __init__(self, window: int = 100):
        self.window = window
        self.timings: Dict[str, list] = {}

    def __call__(self, logger, log_method, event_dict):
        if "duration_ms" in event_dict:
            timings = self.timings.setdefault(event_dict.get("event", "unknown"), [])
            timings.append(event_dict["duration_ms"])
            if len(timings) > self.window:
                timings.pop(0)

            event_dict["avg_duration_ms"] = round(sum(timings) / len(timings), 2)

        return event_dict


@dataclass
class LoggingSettings:
    level: str = "INFO"
    console: bool = True
    file: Optional[str] = None
    json_format: bool = True
    performance: bool = True

    @classmethod
    def from_config(cls, config) -> "LoggingSettings":
        section = config.get_section("logging")
        return cls(
            level=section.get("level", "INFO"),
            console=section.get("console", True),
            file=section.get("file"),
            json_format=section.get("format", "json") == "json",
            performance=section.get("performance", True),
        )


def build_processors(json_format: bool = True, performance: bool = True) -> List[Any]:
    """Processor chain ending in a JSON or console renderer"""
    processors: List[Any] = [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if performance:
        processors.append(PerformanceProcessor())

    processors.extend([
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ])

    if json_format:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=False))

    return processors


def setup_logging(level: str = "INFO",
                  console: bool = True,
                  file: Optional[str] = None,
                  json_format: bool = True,
                  performance: bool = True) -> logging.Logger:
    """Configure structlog and the handlers of the ``flowperf`` logger"""
    structlog.configure(
        processors=build_processors(json_format, performance),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    log_level = getattr(logging, level.upper(), logging.INFO)
    package_logger = logging.getLogger(LOGGER_NAMESPACE)
    package_logger.setLevel(log_level)

    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
        handler.close()

    if console:
        package_logger.addHandler(logging.StreamHandler(sys.stdout))

    if file:
        file_path = Path(file)
        file_path.parent.mkdir(parents=True, exist_ok=True)
        package_logger.addHandler(logging.handlers.RotatingFileHandler(
            file_path,
            maxBytes=LOG_FILE_MAX_BYTES,
            backupCount=LOG_FILE_BACKUPS,
            encoding="utf-8",
        ))

    # Host root handlers would print every event a second time
    package_logger.propagate = not package_logger.handlers
    return package_logger


def setup_logging_from_config(config) -> logging.Logger:
    """Configure logging from the ``logging`` section of a ConfigManager"""
    settings = LoggingSettings.from_config(config)
    return setup_logging(
        level=settings.level,
        console=settings.console,
        file=settings.file,
        json_format=settings.json_format,
        performance=settings.performance,
    )


def get_logger(name: Optional[str] = None) -> Any:
    """Logger under the ``flowperf`` namespace"""
    if not name:
        name = LOGGER_NAMESPACE
    elif not name.startswith(LOGGER_NAMESPACE):
        name = f"{LOGGER_NAMESPACE}.{name}"
    return structlog.get_logger(name)


class LogContext:
    """Bind context to a logger and log how long the block took

    Emits ``"<event> completed"`` or ``"<event> failed"`` with ``duration_ms``.
    Exceptions are never suppressed.
    """

    def __init__(self, logger, event: str = "Context", **context):
        self.logger = logger
        self.event = event
        self.context = context
        self.start: Optional[float] = None
        self.duration_ms = 0.0

    def __enter__(self):
        self.start = time.perf_counter()
        self.logger = self.logger.bind(**self.context)
        return self.logger

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.duration_ms = (time.perf_counter() - self.start) * 1000

        if exc_type:
            self.logger.error(f"{self.event} failed", duration_ms=self.duration_ms, exception=str(exc_val))
        else:
            self.logger.info(f"{self.event} completed", duration_ms=self.duration_ms)

        return False


def log_context(logger, event: str = "Context", **context) -> LogContext:
    return LogContext(logger, event, **context)
