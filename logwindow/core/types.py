"""
Core Type Definitions for the Windowed Log-Count Cache

Implements Result/Either monads for zero-exception control flow and the
small value types that flow between the upstream source, the cache and
the caller.

Design Principles:
- Never use null for absence of a failure (use Result)
- All timestamps are timezone-aware UTC
- Minute alignment is enforced at the edges (truncate_to_minute)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import (
    Any,
    Callable,
    Generic,
    Literal,
    Optional,
    TypeVar,
    Union,
)

# =============================================================================
# TYPE VARIABLES FOR GENERIC CONTAINERS
# =============================================================================
T = TypeVar("T")  # Success type
E = TypeVar("E")  # Error type
U = TypeVar("U")  # Transform result type


# =============================================================================
# RESULT MONAD: ZERO-EXCEPTION CONTROL FLOW
# =============================================================================
@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    """
    Success variant of Result monad.

    Immutable container for successful computation results.
    """

    value: T

    def is_ok(self) -> Literal[True]:
        return True

    def is_err(self) -> Literal[False]:
        return False

    def unwrap(self) -> T:
        """Extract value. Safe to call after is_ok() check."""
        return self.value

    def unwrap_or(self, default: T) -> T:
        """Return value, ignoring default."""
        return self.value

    def map(self, fn: Callable[[T], U]) -> Ok[U]:
        """Apply transformation to success value."""
        return Ok(fn(self.value))

    def flat_map(self, fn: Callable[[T], Result[U, E]]) -> Result[U, E]:
        """Monadic bind for chaining fallible operations."""
        return fn(self.value)

    def __repr__(self) -> str:
        return f"Ok({self.value!r})"


@dataclass(frozen=True, slots=True)
class Err(Generic[E]):
    """
    Failure variant of Result monad.

    Carries the error object unchanged so callers can surface it verbatim.
    """

    error: E

    def is_ok(self) -> Literal[False]:
        return False

    def is_err(self) -> Literal[True]:
        return True

    def unwrap(self) -> Any:
        """
        Attempting to unwrap an error is a programming error.

        Raises:
            RuntimeError: Always, with error context
        """
        raise RuntimeError(f"Called unwrap() on Err: {self.error}")

    def unwrap_or(self, default: T) -> T:
        """Return default value on error."""
        return default

    def map(self, fn: Callable[[Any], U]) -> Err[E]:
        """No-op on error variant - propagates error unchanged."""
        return self

    def flat_map(self, fn: Callable[[Any], Result[U, E]]) -> Err[E]:
        """Propagate error through monadic chain."""
        return self

    def __repr__(self) -> str:
        return f"Err({self.error!r})"


# Union type for pattern matching
Result = Union[Ok[T], Err[E]]


# =============================================================================
# TIME HELPERS
# =============================================================================
def to_utc(ts: datetime) -> datetime:
    """
    Normalize a datetime to timezone-aware UTC.

    Naive datetimes are interpreted as UTC (upstream timestamps are UTC).
    """
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def truncate_to_minute(ts: datetime) -> datetime:
    """Floor a timestamp to the start of its UTC minute."""
    return to_utc(ts).replace(second=0, microsecond=0)


def parse_timestamp(value: str) -> datetime:
    """
    Parse an ISO-8601 timestamp (with optional trailing 'Z') into UTC.

    Raises:
        ValueError: If the string is not a valid ISO-8601 timestamp
    """
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return to_utc(datetime.fromisoformat(text))


def format_timestamp(ts: datetime) -> str:
    """Render a timestamp as UTC ISO-8601 with a 'Z' suffix."""
    utc = to_utc(ts)
    return utc.strftime("%Y-%m-%dT%H:%M:%S") + f".{utc.microsecond // 1000:03d}Z"


# =============================================================================
# UPSTREAM EVENT
# =============================================================================
@dataclass(frozen=True, slots=True)
class LogEvent:
    """
    Single log record returned by the upstream source.

    Only the timestamp matters for counting; id and message are kept
    for diagnostics.
    """

    timestamp: datetime
    id: Optional[str] = None
    message: str = ""
    attributes: dict[str, Any] = field(default_factory=dict, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "timestamp", to_utc(self.timestamp))

    @property
    def minute(self) -> datetime:
        """Containing minute bucket."""
        return truncate_to_minute(self.timestamp)


# =============================================================================
# CALLER-FACING POINT
# =============================================================================
@dataclass(frozen=True, slots=True, order=True)
class CountPoint:
    """
    One minute-aligned bucket of the answer series.

    Invariant: timestamp has zero seconds/microseconds, count >= 0
    """

    timestamp: datetime
    count: int

    def to_dict(self) -> dict[str, Any]:
        return {"timestamp": format_timestamp(self.timestamp), "count": self.count}

    def __repr__(self) -> str:
        return f"CountPoint({self.timestamp:%Y-%m-%dT%H:%M}Z, {self.count})"
