"""
Data-source module: multi-query handler, columnar frames, health check.
"""

from logwindow.datasource.handlers import (
    DataQuery,
    DataResponse,
    Field,
    Frame,
    HealthCheckResult,
    HealthStatus,
    LogCountDataSource,
    QueryDataResponse,
    TimeRange,
)

__all__ = [
    "DataQuery",
    "DataResponse",
    "Field",
    "Frame",
    "HealthCheckResult",
    "HealthStatus",
    "LogCountDataSource",
    "QueryDataResponse",
    "TimeRange",
]
