"""
Incremental Windowed Log-Count Cache

Answers repeated "events per minute matching query Q over [T1, T2)"
requests against a slow, paginated log source (Datadog Logs) while
fetching only what the cache does not already hold:

- Cache: per-fingerprint minute buckets with an asserted-complete window
- Resolver: picks the fetch start, re-fetching a 2-minute safety margin
- Merger: overwrites touched minutes, prunes everything before the new start
- Orchestrator: resolve -> fetch -> merge -> extract, locked per fingerprint
- Data source: multi-query handler producing columnar frames

License: MIT
"""

__version__ = "1.0.0"

# =============================================================================
# PUBLIC API EXPORTS
# =============================================================================
from logwindow.core.types import (
    Result,
    Ok,
    Err,
    LogEvent,
    CountPoint,
)
from logwindow.core.errors import (
    LogWindowError,
    UpstreamFetchError,
    MalformedRequestError,
    ConfigurationError,
)
from logwindow.core.config import LogWindowConfig

from logwindow.cache import (
    BucketedSeries,
    CacheEntry,
    CacheStore,
)

from logwindow.query import (
    QueryRequest,
    QueryOrchestrator,
    LogSource,
    InMemoryLogSource,
)

from logwindow.upstream import DatadogLogSource

from logwindow.datasource import (
    DataQuery,
    LogCountDataSource,
    TimeRange,
)

__all__ = [
    # Version
    "__version__",
    # Result monad
    "Result",
    "Ok",
    "Err",
    # Values
    "LogEvent",
    "CountPoint",
    # Errors
    "LogWindowError",
    "UpstreamFetchError",
    "MalformedRequestError",
    "ConfigurationError",
    # Config
    "LogWindowConfig",
    # Cache
    "BucketedSeries",
    "CacheEntry",
    "CacheStore",
    # Query
    "QueryRequest",
    "QueryOrchestrator",
    "LogSource",
    "InMemoryLogSource",
    # Upstream
    "DatadogLogSource",
    # Data source
    "DataQuery",
    "LogCountDataSource",
    "TimeRange",
]
