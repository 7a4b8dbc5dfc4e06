"""
Configuration Management for the Windowed Log-Count Cache

Provides validated configuration with sensible defaults.
Supports environment variable overrides and the JSON settings blob the
data-source host stores for each configured instance.

Design:
- Immutable after validation
- Fail-fast on invalid configuration
- Type-safe with dataclasses
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field, replace
from typing import Any, Mapping, Optional, Union

from logwindow.core.types import Result, Ok, Err
from logwindow.core.errors import ConfigurationError
from logwindow.core import constants as C


@dataclass(frozen=True)
class UpstreamConfig:
    """Datadog Logs API configuration."""

    api_key: str = ""
    app_key: str = ""
    base_url: str = C.DATADOG_BASE_URL
    page_limit: int = C.DATADOG_PAGE_LIMIT
    request_timeout_s: float = C.REQUEST_TIMEOUT_S

    @property
    def logs_list_url(self) -> str:
        """Endpoint for paginated log listing."""
        return self.base_url.rstrip("/") + C.DATADOG_LOGS_LIST_PATH

    @property
    def has_credentials(self) -> bool:
        return bool(self.api_key and self.app_key)

    def __repr__(self) -> str:
        # Keep keys out of logs
        return (
            f"UpstreamConfig(base_url={self.base_url!r}, "
            f"page_limit={self.page_limit}, "
            f"has_credentials={self.has_credentials})"
        )


@dataclass(frozen=True)
class CacheConfig:
    """Windowed cache behaviour."""

    safety_margin_minutes: int = C.SAFETY_MARGIN_MINUTES
    serialize_fetches: bool = C.SERIALIZE_FETCHES


@dataclass(frozen=True)
class ReliabilityConfig:
    """Retry policy for the upstream client."""

    retry_max_attempts: int = C.RETRY_MAX_ATTEMPTS
    retry_base_ms: int = C.RETRY_BASE_MS
    retry_max_delay_ms: int = C.RETRY_MAX_DELAY_MS


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration."""

    log_level: str = "INFO"
    log_json: bool = True


@dataclass(frozen=True)
class LogWindowConfig:
    """Root configuration."""

    upstream: UpstreamConfig = field(default_factory=UpstreamConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    reliability: ReliabilityConfig = field(default_factory=ReliabilityConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> Result[LogWindowConfig, str]:
        """
        Load configuration from environment variables.

        Environment variables are prefixed with LOGWINDOW_.
        Example: LOGWINDOW_DD_API_KEY, LOGWINDOW_SAFETY_MARGIN_MINUTES
        """
        try:
            upstream = UpstreamConfig(
                api_key=os.getenv("LOGWINDOW_DD_API_KEY", ""),
                app_key=os.getenv("LOGWINDOW_DD_APP_KEY", ""),
                base_url=os.getenv("LOGWINDOW_DD_BASE_URL", C.DATADOG_BASE_URL),
                page_limit=int(os.getenv("LOGWINDOW_DD_PAGE_LIMIT", str(C.DATADOG_PAGE_LIMIT))),
                request_timeout_s=float(
                    os.getenv("LOGWINDOW_DD_TIMEOUT_S", str(C.REQUEST_TIMEOUT_S))
                ),
            )

            cache = CacheConfig(
                safety_margin_minutes=int(
                    os.getenv("LOGWINDOW_SAFETY_MARGIN_MINUTES", str(C.SAFETY_MARGIN_MINUTES))
                ),
                serialize_fetches=_parse_bool(
                    os.getenv("LOGWINDOW_SERIALIZE_FETCHES", str(C.SERIALIZE_FETCHES))
                ),
            )

            reliability = ReliabilityConfig(
                retry_max_attempts=int(
                    os.getenv("LOGWINDOW_RETRY_MAX_ATTEMPTS", str(C.RETRY_MAX_ATTEMPTS))
                ),
            )

            observability = ObservabilityConfig(
                log_level=os.getenv("LOGWINDOW_LOG_LEVEL", "INFO").upper(),
                log_json=_parse_bool(os.getenv("LOGWINDOW_LOG_JSON", "true")),
            )

            return Ok(cls(
                upstream=upstream,
                cache=cache,
                reliability=reliability,
                observability=observability,
            ))
        except (ValueError, TypeError) as e:
            return Err(f"Configuration error: {e}")

    @classmethod
    def from_plugin_settings(
        cls,
        json_data: Union[str, bytes, Mapping[str, Any], None],
        base: Optional[LogWindowConfig] = None,
    ) -> Result[LogWindowConfig, ConfigurationError]:
        """
        Build configuration from the data-source instance JSON settings.

        The host stores the keys as ``datadogApiKey`` / ``datadogAppKey``.
        Everything not present in the blob is taken from ``base``.
        """
        base = base or cls()
        if json_data is None:
            data: Mapping[str, Any] = {}
        elif isinstance(json_data, (str, bytes)):
            try:
                data = json.loads(json_data or "{}")
            except json.JSONDecodeError as e:
                return Err(ConfigurationError.invalid(f"settings are not valid JSON: {e}"))
        else:
            data = json_data

        if not isinstance(data, Mapping):
            return Err(ConfigurationError.invalid("settings must be a JSON object"))

        upstream = replace(
            base.upstream,
            api_key=str(data.get("datadogApiKey", base.upstream.api_key) or ""),
            app_key=str(data.get("datadogAppKey", base.upstream.app_key) or ""),
            base_url=str(data.get("datadogBaseUrl", base.upstream.base_url)),
        )
        return Ok(replace(base, upstream=upstream))

    def validate(self) -> Result[None, ConfigurationError]:
        """Validate configuration invariants."""
        if self.cache.safety_margin_minutes < 0:
            return Err(ConfigurationError.invalid("safety_margin_minutes must be >= 0"))
        if self.upstream.page_limit < 1:
            return Err(ConfigurationError.invalid("page_limit must be >= 1"))
        if self.reliability.retry_max_attempts < 1:
            return Err(ConfigurationError.invalid("retry_max_attempts must be >= 1"))
        missing = [
            name for name, value in (
                ("api_key", self.upstream.api_key),
                ("app_key", self.upstream.app_key),
            )
            if not value
        ]
        if missing:
            return Err(ConfigurationError.missing_credentials(*missing))
        return Ok(None)


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}
