"""
Query Request: Caller-Facing Input and Fingerprinting

A request names a log query and a half-open window [start, end).
The cache key is the case-folded query text, so two queries that
differ only in case share one entry; the upstream still receives the
text as written.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from logwindow.core.errors import MalformedRequestError
from logwindow.core.types import Result, Ok, Err, to_utc


def normalize_fingerprint(query_text: str) -> str:
    """Cache key for a query: case-insensitive fold of the raw text."""
    return query_text.casefold()


@dataclass(frozen=True, slots=True)
class QueryRequest:
    """
    One aggregation request.

    Use QueryRequest.create() to get validation; direct construction
    only normalizes timestamps.
    """
    query_text: str
    start: datetime
    end: datetime
    ref_id: Optional[str] = field(default=None, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "start", to_utc(self.start))
        object.__setattr__(self, "end", to_utc(self.end))

    @property
    def fingerprint(self) -> str:
        return normalize_fingerprint(self.query_text)

    @classmethod
    def create(
        cls,
        query_text: str,
        start: datetime,
        end: datetime,
        ref_id: Optional[str] = None,
    ) -> Result[QueryRequest, MalformedRequestError]:
        """Build and validate a request."""
        request = cls(query_text=query_text, start=start, end=end, ref_id=ref_id)
        return request.validate()

    def validate(self) -> Result[QueryRequest, MalformedRequestError]:
        """
        Reject requests that must never reach the cache.

        Returns:
            Ok(self) when valid
            Err(MalformedRequestError) for an empty query or end <= start
        """
        if not self.query_text or not self.query_text.strip():
            return Err(MalformedRequestError.empty_fingerprint())
        if self.end <= self.start:
            return Err(MalformedRequestError.inverted_range(self.start, self.end))
        return Ok(self)
