"""Pydantic schemas for captured queries, stored profiles and report responses.

Field names follow the on-disk format:
  - QueryEvent     → one entry of ``sql_queries``
  - ProfileRecord  → one element of a ``<slug>.json`` array
"""

from __future__ import annotations
from typing import List, Optional
from pydantic import BaseModel, Field, field_validator

class QueryEvent(BaseModel):
    """One SQL statement observed while a request was in flight."""
    sql: str = Field(..., description="Statement text as sent to the driver")
    duration: float = Field(..., ge=0, description="Execution time in ms (2 dp)")

class ProfileRecord(BaseModel):
    """One measured request.

    Every field is optional on read so that partial or legacy records still
    load; the capture middleware always fills all of them.
    """
    url: Optional[str] = Field(None, description="Request path")
    method: Optional[str] = Field(None, description="HTTP method, e.g. GET")
    total_time: Optional[float] = Field(None, description="Wall-clock time in ms")
    sql_time: Optional[float] = Field(None, description="Sum of query durations in ms")
    sql_queries: List[QueryEvent] = Field(default_factory=list)
    timestamp: Optional[str] = Field(None, description="ISO-8601, millisecond precision")
    request_id: Optional[str] = Field(None, description="Correlation id, if any")

    @field_validator("sql_queries", mode="before")
    @classmethod
    def _null_queries(cls, value):
        return [] if value is None else value

# ── Report: page list  (/dev/performance_profiles) ───────────────────────

class AggregatedPageStats(BaseModel):
    """Aggregate statistics for one page slug, recomputed on every read."""
    page_slug: str
    url: Optional[str] = Field(None, description="URL of the newest record")
    profile_count: int
    mean_load_time: float
    median_load_time: float
    p95_load_time: float
    mean_sql_time: float
    mean_sql_queries: float
    latest_timestamp: Optional[str] = None

class PageListResponse(BaseModel):
    pages: List[AggregatedPageStats] = Field(default_factory=list)
    message: Optional[str] = Field(None, description="Informational notice, e.g. nothing recorded yet")
    error: Optional[str] = Field(None, description="Failure text shown in place of missing data")

# ── Report: page detail  (/dev/performance_profiles/{slug}) ──────────────

class PageDetailResponse(BaseModel):
    page_slug: str
    url: Optional[str] = None
    profiles: List[ProfileRecord] = Field(default_factory=list)
    profile_count: int = 0
    message: Optional[str] = None
    error: Optional[str] = None
