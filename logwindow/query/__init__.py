"""
Query module: request model, upstream source protocol and the
resolve/fetch/merge/extract orchestrator.
"""

from logwindow.query.request import QueryRequest, normalize_fingerprint
from logwindow.query.source import (
    FetchResult,
    InMemoryLogSource,
    LogPage,
    LogSource,
    collect_events,
)
from logwindow.query.orchestrator import (
    QueryOrchestrator,
    QueryOutcome,
    QueryState,
    extract_points,
)

__all__ = [
    "QueryRequest",
    "normalize_fingerprint",
    "FetchResult",
    "InMemoryLogSource",
    "LogPage",
    "LogSource",
    "collect_events",
    "QueryOrchestrator",
    "QueryOutcome",
    "QueryState",
    "extract_points",
]
