"""
Datadog Logs Client

LogSource implementation over the Datadog v1 log list endpoint:

    POST {base_url}/api/v1/logs-queries/list
    DD-API-KEY / DD-APPLICATION-KEY headers
    {"query", "time": {"from", "to"}, "limit", "sort": "asc", "startAt"?}

The response's ``nextLogId`` is the continuation cursor. Transient
failures are retried per page (upstream/retry.py); anything else is
mapped to an UpstreamFetchError and returned unchanged.
"""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Any, Optional

import aiohttp

from logwindow.core import constants as C
from logwindow.core.config import ReliabilityConfig, UpstreamConfig
from logwindow.core.errors import UpstreamFetchError
from logwindow.core.types import Result, Ok, Err, LogEvent, format_timestamp, parse_timestamp
from logwindow.query.source import LogPage
from logwindow.upstream.retry import RetryPolicy, RetryStats, retry_with_backoff

logger = logging.getLogger(__name__)


def build_request_body(
    query_text: str,
    start: datetime,
    end: datetime,
    limit: int,
    cursor: Optional[str] = None,
) -> dict[str, Any]:
    """JSON body for one page request."""
    body: dict[str, Any] = {
        "query": query_text,
        "time": {
            "from": format_timestamp(start),
            "to": format_timestamp(end),
        },
        "limit": limit,
        "sort": "asc",
    }
    if cursor:
        body["startAt"] = cursor
    return body


def parse_page(payload: str) -> Result[LogPage, UpstreamFetchError]:
    """
    Decode a log list response body.

    Returns:
        Ok(LogPage) with events in upstream order
        Err(UpstreamFetchError) for an error status or an undecodable body
    """
    try:
        data = json.loads(payload)
    except json.JSONDecodeError as e:
        return Err(UpstreamFetchError.malformed_payload("body is not valid JSON", e))

    if not isinstance(data, dict):
        return Err(UpstreamFetchError.malformed_payload("body is not a JSON object"))

    status = data.get("status")
    if status == C.DATADOG_STATUS_ERROR:
        detail = data.get("error") or data.get("errors") or ""
        return Err(UpstreamFetchError.upstream_status(str(status), str(detail)))

    logs = data.get("logs") or []
    if not isinstance(logs, list):
        return Err(UpstreamFetchError.malformed_payload("'logs' is not a list"))

    events: list[LogEvent] = []
    for raw in logs:
        try:
            content = raw["content"]
            events.append(LogEvent(
                timestamp=parse_timestamp(content["timestamp"]),
                id=raw.get("id"),
                message=content.get("message") or "",
                attributes=content.get("attributes") or {},
            ))
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            return Err(UpstreamFetchError.malformed_payload(f"bad log entry: {e}", e))

    next_cursor = data.get("nextLogId") or None
    return Ok(LogPage(events=tuple(events), next_cursor=next_cursor))


class DatadogLogSource:
    """
    Async Datadog log listing with retry.

    Usage:
        async with DatadogLogSource(config.upstream, config.reliability) as source:
            orchestrator = QueryOrchestrator(source)
            ...

    A session passed in is borrowed and not closed; otherwise one is
    created on first use and closed by close().
    """

    __slots__ = ("_config", "_policy", "_session", "_owns_session", "_retry_stats")

    def __init__(
        self,
        config: UpstreamConfig,
        reliability: Optional[ReliabilityConfig] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self._config = config
        self._policy = RetryPolicy.from_config(reliability or ReliabilityConfig())
        self._session = session
        self._owns_session = session is None
        self._retry_stats = RetryStats()

    @property
    def config(self) -> UpstreamConfig:
        return self._config

    @property
    def retry_stats(self) -> RetryStats:
        return self._retry_stats

    async def __aenter__(self) -> DatadogLogSource:
        self._ensure_session()
        return self

    async def __aexit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        await self.close()

    async def close(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
        self._session = None

    def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self._config.request_timeout_s)
            self._session = aiohttp.ClientSession(timeout=timeout)
            self._owns_session = True
        return self._session

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "DD-API-KEY": self._config.api_key,
            "DD-APPLICATION-KEY": self._config.app_key,
        }

    async def fetch_page(
        self,
        query_text: str,
        start: datetime,
        end: datetime,
        cursor: Optional[str] = None,
    ) -> Result[LogPage, UpstreamFetchError]:
        body = build_request_body(query_text, start, end, self._config.page_limit, cursor)
        result = await retry_with_backoff(
            lambda: self._post(body),
            policy=self._policy,
            stats=self._retry_stats,
        )
        if result.is_ok():
            page = result.unwrap()
            logger.debug(
                f"Fetched {len(page.events)} events "
                f"[{body['time']['from']}, {body['time']['to']}) more={page.has_more}"
            )
        return result

    async def _post(self, body: dict[str, Any]) -> Result[LogPage, UpstreamFetchError]:
        url = self._config.logs_list_url
        session = self._ensure_session()
        try:
            async with session.post(url, json=body, headers=self._headers()) as response:
                status = response.status
                payload = await response.text()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(f"Transport failure calling {url}: {e!r}")
            return Err(UpstreamFetchError.transport(url, e))

        if status in (401, 403):
            return Err(UpstreamFetchError.unauthorized(url, status))
        if not 200 <= status < 300:
            return Err(UpstreamFetchError.http_status(url, status, payload))

        return parse_page(payload)

    async def ping(self) -> Result[None, UpstreamFetchError]:
        """Issue an empty query over a zero-length range."""
        now = datetime.now(timezone.utc)
        result = await self.fetch_page("", now, now)
        if result.is_err():
            return result
        return Ok(None)

    def __repr__(self) -> str:
        return f"DatadogLogSource({self._config!r})"
