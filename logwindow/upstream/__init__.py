"""
Upstream module: Datadog Logs client and its retry policy.
"""

from logwindow.upstream.datadog import (
    DatadogLogSource,
    build_request_body,
    parse_page,
)
from logwindow.upstream.retry import (
    RetryPolicy,
    RetryStats,
    calculate_backoff,
    retry_with_backoff,
)

__all__ = [
    "DatadogLogSource",
    "build_request_body",
    "parse_page",
    "RetryPolicy",
    "RetryStats",
    "calculate_backoff",
    "retry_with_backoff",
]
