"""
Data-Source Handlers: Multi-Query Frames and Health Check

Implements:
- DataQuery: one panel query (refId, queryText, format) over a time range
- LogCountDataSource.query_data: run a batch of queries, one frame each
- LogCountDataSource.check_health: verify the upstream is reachable

Frame layout per successful query:

    name = "response"
    time    -> numpy datetime64[ns]  (minute buckets, ascending)
    entries -> numpy int64           (events in that minute)

A failing query reports its error in its own DataResponse; the rest of
the batch still runs.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Mapping, Optional, Sequence, Union

import numpy as np

from logwindow.cache.store import CacheStore
from logwindow.core import constants as C
from logwindow.core.config import LogWindowConfig, UpstreamConfig
from logwindow.core.errors import ConfigurationError, LogWindowError, MalformedRequestError
from logwindow.core.types import Result, Ok, Err, CountPoint, to_utc
from logwindow.observability.logging import StructuredLogger
from logwindow.query.orchestrator import QueryOrchestrator
from logwindow.query.request import QueryRequest
from logwindow.query.source import LogSource
from logwindow.upstream.datadog import DatadogLogSource

logger = StructuredLogger(__name__)

SourceFactory = Callable[[LogWindowConfig], LogSource]


# =============================================================================
# QUERY MODEL
# =============================================================================
@dataclass(frozen=True, slots=True)
class TimeRange:
    """Panel time range, [start, end)."""
    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        object.__setattr__(self, "start", to_utc(self.start))
        object.__setattr__(self, "end", to_utc(self.end))


@dataclass(frozen=True, slots=True)
class DataQuery:
    """One query from a data request."""
    ref_id: str
    query_text: str
    time_range: TimeRange
    interval_ms: int = 0
    max_data_points: int = 0
    format: str = ""

    @classmethod
    def from_json(
        cls,
        payload: Union[str, bytes, Mapping[str, Any]],
        time_range: TimeRange,
    ) -> Result[DataQuery, MalformedRequestError]:
        """
        Parse the stored query model.

        Request:
            {
                "refId": "A",
                "queryText": "service:web status:error",
                "intervalMs": 60000,
                "maxDataPoints": 1000,
                "format": "time_series"
            }
        """
        if isinstance(payload, (str, bytes)):
            try:
                data = json.loads(payload or "{}")
            except json.JSONDecodeError as e:
                return Err(MalformedRequestError.invalid_field("json", payload, f"not valid JSON: {e}"))
        else:
            data = payload

        if not isinstance(data, Mapping):
            return Err(MalformedRequestError.invalid_field("json", data, "must be an object"))

        query_text = data.get("queryText", "")
        if not isinstance(query_text, str):
            return Err(MalformedRequestError.invalid_field("queryText", query_text, "must be a string"))

        fmt = data.get("format") or ""
        if not isinstance(fmt, str):
            return Err(MalformedRequestError.invalid_field("format", fmt, "must be a string"))

        try:
            interval_ms = int(data.get("intervalMs") or 0)
            max_data_points = int(data.get("maxDataPoints") or 0)
        except (TypeError, ValueError) as e:
            return Err(MalformedRequestError.invalid_field("intervalMs/maxDataPoints", data, str(e)))

        return Ok(cls(
            ref_id=str(data.get("refId") or "A"),
            query_text=query_text,
            time_range=time_range,
            interval_ms=interval_ms,
            max_data_points=max_data_points,
            format=fmt,
        ))

    def to_request(self) -> QueryRequest:
        return QueryRequest(
            query_text=self.query_text,
            start=self.time_range.start,
            end=self.time_range.end,
            ref_id=self.ref_id,
        )


# =============================================================================
# FRAMES
# =============================================================================
@dataclass(slots=True)
class Field:
    """Named column."""
    name: str
    values: np.ndarray

    def __len__(self) -> int:
        return len(self.values)


@dataclass(slots=True)
class Frame:
    """Columnar result table."""
    name: str
    fields: list[Field] = field(default_factory=list)
    ref_id: Optional[str] = None

    @classmethod
    def from_points(cls, points: Sequence[CountPoint], ref_id: Optional[str] = None) -> Frame:
        # numpy stores naive datetimes; every point is already UTC
        times = np.array(
            [p.timestamp.replace(tzinfo=None) for p in points],
            dtype="datetime64[ns]",
        )
        counts = np.array([p.count for p in points], dtype=np.int64)
        return cls(
            name=C.FRAME_NAME,
            fields=[Field(C.TIME_FIELD, times), Field(C.COUNT_FIELD, counts)],
            ref_id=ref_id,
        )

    def get_field(self, name: str) -> Field:
        for f in self.fields:
            if f.name == name:
                return f
        raise KeyError(name)

    @property
    def rows(self) -> int:
        return len(self.fields[0]) if self.fields else 0

    def to_dict(self) -> dict[str, Any]:
        columns: dict[str, list[Any]] = {}
        for f in self.fields:
            if np.issubdtype(f.values.dtype, np.datetime64):
                columns[f.name] = [
                    s + "Z" for s in np.datetime_as_string(f.values, unit="ms")
                ]
            else:
                columns[f.name] = f.values.tolist()
        return {"name": self.name, "refId": self.ref_id, "fields": columns}


@dataclass(slots=True)
class DataResponse:
    """Frames for one query, or its error."""
    frames: list[Frame] = field(default_factory=list)
    error: Optional[LogWindowError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict[str, Any]:
        if self.error is not None:
            return {"error": self.error.to_dict()}
        return {"frames": [f.to_dict() for f in self.frames]}


@dataclass(slots=True)
class QueryDataResponse:
    """Responses keyed by refId."""
    responses: dict[str, DataResponse] = field(default_factory=dict)

    def __getitem__(self, ref_id: str) -> DataResponse:
        return self.responses[ref_id]

    def __len__(self) -> int:
        return len(self.responses)

    def to_dict(self) -> dict[str, Any]:
        return {ref_id: r.to_dict() for ref_id, r in self.responses.items()}


# =============================================================================
# HEALTH
# =============================================================================
class HealthStatus(Enum):
    OK = "OK"
    ERROR = "ERROR"


@dataclass(frozen=True, slots=True)
class HealthCheckResult:
    status: HealthStatus
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def healthy(self) -> bool:
        return self.status is HealthStatus.OK


# =============================================================================
# HANDLER
# =============================================================================
def _datadog_factory(config: LogWindowConfig) -> LogSource:
    return DatadogLogSource(config.upstream, config.reliability)


class LogCountDataSource:
    """
    Data-source instance backed by one cache.

    The upstream client is built on first use from the instance settings
    (``datadogApiKey`` / ``datadogAppKey``) and reused while those settings
    stay the same. Changed upstream settings close the old client, build a
    new one and clear the cache, since the new keys may see another org.
    Settings that fail validation leave the current client in place.

    Usage:
        ds = LogCountDataSource()
        response = await ds.query_data([query], settings_json)
        frame = response["A"].frames[0]
    """

    __slots__ = (
        "_source_factory", "_store", "_config", "_orchestrator",
        "_source", "_upstream", "_init_lock",
    )

    def __init__(
        self,
        source_factory: Optional[SourceFactory] = None,
        store: Optional[CacheStore] = None,
        config: Optional[LogWindowConfig] = None,
    ) -> None:
        self._source_factory = source_factory or _datadog_factory
        self._store = store if store is not None else CacheStore()
        self._config = config
        self._orchestrator: Optional[QueryOrchestrator] = None
        self._source: Optional[LogSource] = None
        self._upstream: Optional[UpstreamConfig] = None
        self._init_lock = asyncio.Lock()

    @property
    def store(self) -> CacheStore:
        return self._store

    async def _ensure_orchestrator(
        self,
        plugin_settings: Any,
    ) -> Result[QueryOrchestrator, ConfigurationError]:
        if plugin_settings is None and self._orchestrator is not None:
            return Ok(self._orchestrator)

        config_result = LogWindowConfig.from_plugin_settings(plugin_settings, self._config)
        if config_result.is_err():
            return config_result
        config = config_result.unwrap()

        if self._orchestrator is not None and config.upstream == self._upstream:
            return Ok(self._orchestrator)

        validation = config.validate()
        if validation.is_err():
            return validation

        async with self._init_lock:
            if self._orchestrator is None or config.upstream != self._upstream:
                await self._rebuild(config)

        return Ok(self._orchestrator)

    async def _rebuild(self, config: LogWindowConfig) -> None:
        if self._orchestrator is not None:
            logger.info("Settings changed, rebuilding upstream client", upstream=repr(config.upstream))
            await self._close_source()
            self._store.clear()
        else:
            logger.info("Initialized upstream client", upstream=repr(config.upstream))

        self._source = self._source_factory(config)
        self._orchestrator = QueryOrchestrator(self._source, self._store, config.cache)
        self._upstream = config.upstream

    async def _close_source(self) -> None:
        if isinstance(self._source, DatadogLogSource):
            await self._source.close()
        self._source = None
        self._orchestrator = None
        self._upstream = None

    async def query_data(
        self,
        queries: Sequence[DataQuery],
        plugin_settings: Any = None,
    ) -> QueryDataResponse:
        """Run every query; each refId gets frames or its own error."""
        response = QueryDataResponse()

        orchestrator_result = await self._ensure_orchestrator(plugin_settings)
        if orchestrator_result.is_err():
            error = orchestrator_result.error
            logger.error("Data source not configured", error=str(error))
            for q in queries:
                response.responses[q.ref_id] = DataResponse(error=error)
            return response

        orchestrator = orchestrator_result.unwrap()
        results = await asyncio.gather(*(self._query(orchestrator, q) for q in queries))
        for q, data_response in zip(queries, results):
            response.responses[q.ref_id] = data_response
        return response

    async def _query(self, orchestrator: QueryOrchestrator, query: DataQuery) -> DataResponse:
        if not query.format:
            logger.warning("format is empty, defaulting to time series", ref_id=query.ref_id)

        result = await orchestrator.execute(query.to_request())
        if result.is_err():
            return DataResponse(error=result.error)
        return DataResponse(frames=[Frame.from_points(result.unwrap(), ref_id=query.ref_id)])

    async def check_health(self, plugin_settings: Any = None) -> HealthCheckResult:
        """Empty query over [now, now) against the upstream."""
        orchestrator_result = await self._ensure_orchestrator(plugin_settings)
        if orchestrator_result.is_err():
            error = orchestrator_result.error
            return HealthCheckResult(HealthStatus.ERROR, C.HEALTH_ERROR_MESSAGE, error.to_dict())

        source = orchestrator_result.unwrap().source
        now = datetime.now(timezone.utc)
        result = await source.fetch_page("", now, now)
        if result.is_err():
            logger.warning("Health check failed", error=str(result.error))
            return HealthCheckResult(HealthStatus.ERROR, C.HEALTH_ERROR_MESSAGE, result.error.to_dict())
        return HealthCheckResult(HealthStatus.OK, C.HEALTH_OK_MESSAGE)

    async def close(self) -> None:
        """Close the upstream client if it holds resources."""
        await self._close_source()
