"""
Error Hierarchy for the Windowed Log-Count Cache

Design Principles:
- Forbid exceptions for control flow (use Result types)
- Never swallow errors or substitute an empty result for a failure
- Carry full error context for debugging

Each error type includes:
- Unique error code for programmatic handling
- Human-readable message for logging
- Optional cause for root cause analysis
- Creation time for correlation with logs

Usage:
    result = await orchestrator.execute(request)
    match result:
        case Ok(points):
            render(points)
        case Err(UpstreamFetchError() as error):
            report(error)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import uuid4


# =============================================================================
# ERROR CODE ENUMERATION
# =============================================================================
class ErrorCode(Enum):
    """
    Unique error codes for programmatic error handling.

    Codes are grouped by subsystem:
    - 1xxx: Upstream fetch errors
    - 2xxx: Request validation errors
    - 9xxx: Configuration/internal errors
    """

    # Upstream errors (1xxx)
    UPSTREAM_TRANSPORT = 1001
    UPSTREAM_HTTP_STATUS = 1002
    UPSTREAM_UNAUTHORIZED = 1003
    UPSTREAM_STATUS_ERROR = 1004
    UPSTREAM_MALFORMED_PAYLOAD = 1005

    # Request errors (2xxx)
    REQUEST_EMPTY_FINGERPRINT = 2001
    REQUEST_INVERTED_RANGE = 2002
    REQUEST_INVALID_FIELD = 2003

    # Configuration errors (9xxx)
    CONFIGURATION_INVALID = 9001
    CONFIGURATION_MISSING_CREDENTIALS = 9002


# =============================================================================
# BASE ERROR CLASS
# =============================================================================
@dataclass
class LogWindowError(Exception):
    """
    Base class for all errors raised or returned by this package.

    Provides:
    - Unique error ID for correlating a failure across log lines
    - Error code for programmatic handling
    - Cause for root cause analysis
    """

    code: ErrorCode
    message: str
    error_id: str = field(default_factory=lambda: str(uuid4()))
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    cause: Optional[Exception] = None
    context: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Serialize error to dictionary for logging/API responses."""
        return {
            "error_id": self.error_id,
            "code": self.code.name,
            "code_value": self.code.value,
            "message": self.message,
            "created_at": self.created_at.isoformat(),
            "context": self.context,
        }

    def __str__(self) -> str:
        return f"[{self.code.name}] {self.message} (id={self.error_id[:8]})"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"code={self.code.name}, "
            f"message={self.message!r}, "
            f"error_id={self.error_id!r})"
        )


# =============================================================================
# UPSTREAM ERRORS (FETCH PATH)
# =============================================================================
@dataclass
class UpstreamFetchError(LogWindowError):
    """
    Errors from the upstream log source.

    Covers network failures, non-success HTTP statuses, rejected
    credentials and payloads that cannot be decoded. These are handed
    back to the caller unchanged; the cache is never touched.
    """

    retryable: bool = False

    @classmethod
    def transport(
        cls,
        url: str,
        cause: Optional[Exception] = None,
    ) -> UpstreamFetchError:
        """Connection, DNS or timeout failure talking to the upstream."""
        return cls(
            code=ErrorCode.UPSTREAM_TRANSPORT,
            message=f"Transport failure calling {url}: {cause}",
            cause=cause,
            context={"url": url},
            retryable=True,
        )

    @classmethod
    def http_status(
        cls,
        url: str,
        status: int,
        body: str = "",
    ) -> UpstreamFetchError:
        """Upstream answered with a non-success HTTP status."""
        return cls(
            code=ErrorCode.UPSTREAM_HTTP_STATUS,
            message=f"Upstream returned HTTP {status} for {url}",
            context={"url": url, "status": status, "body": body[:200]},
            retryable=status == 429 or status >= 500,
        )

    @classmethod
    def unauthorized(
        cls,
        url: str,
        status: int,
    ) -> UpstreamFetchError:
        """API or application key rejected."""
        return cls(
            code=ErrorCode.UPSTREAM_UNAUTHORIZED,
            message=f"Upstream rejected credentials (HTTP {status})",
            context={"url": url, "status": status},
        )

    @classmethod
    def upstream_status(
        cls,
        status: str,
        detail: str = "",
    ) -> UpstreamFetchError:
        """Upstream body reported an error status despite HTTP success."""
        return cls(
            code=ErrorCode.UPSTREAM_STATUS_ERROR,
            message=f"Upstream reported status '{status}': {detail}".rstrip(": "),
            context={"status": status, "detail": detail[:200]},
        )

    @classmethod
    def malformed_payload(
        cls,
        reason: str,
        cause: Optional[Exception] = None,
    ) -> UpstreamFetchError:
        """Response body could not be decoded into log events."""
        return cls(
            code=ErrorCode.UPSTREAM_MALFORMED_PAYLOAD,
            message=f"Malformed upstream payload: {reason}",
            cause=cause,
            context={"reason": reason},
        )


# =============================================================================
# REQUEST ERRORS (VALIDATION)
# =============================================================================
@dataclass
class MalformedRequestError(LogWindowError):
    """
    Request rejected before any cache interaction.
    """

    @classmethod
    def empty_fingerprint(cls) -> MalformedRequestError:
        return cls(
            code=ErrorCode.REQUEST_EMPTY_FINGERPRINT,
            message="Query text must not be empty",
        )

    @classmethod
    def inverted_range(
        cls,
        start: datetime,
        end: datetime,
    ) -> MalformedRequestError:
        """End time not after start time."""
        return cls(
            code=ErrorCode.REQUEST_INVERTED_RANGE,
            message=f"End time {end.isoformat()} is not after start time {start.isoformat()}",
            context={"start": start.isoformat(), "end": end.isoformat()},
        )

    @classmethod
    def invalid_field(
        cls,
        field_name: str,
        value: Any,
        reason: str,
    ) -> MalformedRequestError:
        return cls(
            code=ErrorCode.REQUEST_INVALID_FIELD,
            message=f"Invalid value for field '{field_name}': {reason}",
            context={"field": field_name, "value": str(value)[:100], "reason": reason},
        )


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================
@dataclass
class ConfigurationError(LogWindowError):
    """Invalid or incomplete configuration."""

    @classmethod
    def invalid(cls, reason: str) -> ConfigurationError:
        return cls(
            code=ErrorCode.CONFIGURATION_INVALID,
            message=f"Configuration error: {reason}",
            context={"reason": reason},
        )

    @classmethod
    def missing_credentials(cls, *names: str) -> ConfigurationError:
        return cls(
            code=ErrorCode.CONFIGURATION_MISSING_CREDENTIALS,
            message=f"Missing credentials: {', '.join(names)}",
            context={"missing": list(names)},
        )
