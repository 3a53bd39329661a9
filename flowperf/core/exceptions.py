"""Custom exception classes for the flowperf engine"""

from typing import Any, Optional, Dict
import traceback


class FlowPerfError(Exception):
    """Base exception for all flowperf errors"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.traceback_info = traceback.format_exc()


class ConfigError(FlowPerfError):
    """Exception raised when configuration is invalid"""

    def __init__(self, key: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.key = key
        super().__init__(f"Config '{key}': {message}", details)


class ValidationError(FlowPerfError):
    """Exception raised when data validation fails"""

    def __init__(self, field: str, value: Any, message: str, details: Optional[Dict[str, Any]] = None):
        self.field = field
        self.value = value
        super().__init__(f"Validation error for '{field}' with value '{value}': {message}", details)


class InstrumentationError(FlowPerfError):
    """Exception raised when a runtime signal source cannot be observed"""

    def __init__(self, entry_type: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.entry_type = entry_type
        super().__init__(f"Observer '{entry_type}': {message}", details)


class TransportError(FlowPerfError):
    """Exception raised when a request never produced an HTTP response"""

    status_code = 0

    def __init__(self, url: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.url = url
        super().__init__(f"Transport failure for '{url}': {message}", details)


class HTTPStatusError(FlowPerfError):
    """Exception raised when a request completed with an HTTP error status"""

    def __init__(self, url: str, status_code: int, details: Optional[Dict[str, Any]] = None):
        self.url = url
        self.status_code = status_code
        super().__init__(f"Request to '{url}' failed with HTTP {status_code}", details)


class SinkError(FlowPerfError):
    """Exception raised when a report destination fails to deliver"""

    def __init__(self, destination: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.destination = destination
        super().__init__(f"Destination '{destination}': {message}", details)
