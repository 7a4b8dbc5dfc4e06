"""
Core module: Type definitions, error hierarchy, and configuration.

This module provides the foundational abstractions:
- Result/Either monads for zero-exception control flow
- Coded error hierarchy for upstream and request failures
- Configuration management with validation
"""

from logwindow.core.types import (
    Result,
    Ok,
    Err,
    LogEvent,
    CountPoint,
    to_utc,
    truncate_to_minute,
)
from logwindow.core.errors import (
    ErrorCode,
    LogWindowError,
    UpstreamFetchError,
    MalformedRequestError,
    ConfigurationError,
)
from logwindow.core.config import LogWindowConfig

__all__ = [
    "Result",
    "Ok",
    "Err",
    "LogEvent",
    "CountPoint",
    "to_utc",
    "truncate_to_minute",
    "ErrorCode",
    "LogWindowError",
    "UpstreamFetchError",
    "MalformedRequestError",
    "ConfigurationError",
    "LogWindowConfig",
]
