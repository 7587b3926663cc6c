"""
Error taxonomy for the weather intel pipeline.

Adapter and per-property failures are contained by the pipeline and the
ingestion service; only ``InvalidLocationError`` reaches on-demand callers.
"No events" is never an error.
"""

from enum import Enum
from typing import Optional


class ErrorCode(str, Enum):
    SOURCE_UNAVAILABLE = "SOURCE_UNAVAILABLE"
    NO_EVENTS_FOUND = "NO_EVENTS_FOUND"
    INVALID_LOCATION = "INVALID_LOCATION"
    RATE_LIMITED = "RATE_LIMITED"
    TIMEOUT = "TIMEOUT"


class WeatherIntelError(Exception):
    """Base class for pipeline errors."""

    code: ErrorCode = ErrorCode.SOURCE_UNAVAILABLE

    def __init__(self, message: str, code: Optional[ErrorCode] = None):
        super().__init__(message)
        if code is not None:
            self.code = code


class SourceUnavailableError(WeatherIntelError):
    """Raised when a feed could not be read within its retry budget."""

    def __init__(self, source: str, message: str, code: ErrorCode = ErrorCode.SOURCE_UNAVAILABLE):
        super().__init__(f"{source}: {message}", code)
        self.source = source


class RateLimitedError(WeatherIntelError):
    """Raised when a feed throttles us or our own request budget is spent."""

    code = ErrorCode.RATE_LIMITED


class InvalidLocationError(WeatherIntelError):
    """Raised when property coordinates are missing or out of range."""

    code = ErrorCode.INVALID_LOCATION
