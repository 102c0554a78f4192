"""
Pydantic response models for the SpaceNexus cache API.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

from spacenexus.cache import CacheStats


class Status(str, Enum):
    ok = "ok"
    stale = "stale"
    error = "error"


class ErrorCode(str, Enum):
    upstream_unreachable = "upstream_unreachable"
    upstream_rate_limited = "upstream_rate_limited"


class ErrorDetail(BaseModel):
    """Error information when status is 'error'."""

    code: ErrorCode
    message: str


class SourceResponse(BaseModel):
    """One configured upstream source and its (possibly cached) data."""

    key: str
    label: str
    status: Status
    cached: bool = Field(
        default=False, description="True when served from cache instead of upstream"
    )
    data: Any = None
    stale_as_of: Optional[datetime] = Field(
        default=None, description="When the served data was stored, for stale responses"
    )
    error: Optional[ErrorDetail] = None


class SourcesResponse(BaseModel):
    """Top-level response for GET /v1/sources."""

    as_of: datetime
    items: list[SourceResponse]


class CacheEntryInfo(BaseModel):
    key: str
    is_stale: bool
    age_ms: int


class CacheStatsResponse(BaseModel):
    size: int
    hits: int
    misses: int
    hit_rate: str = Field(description='Percentage with one decimal, or "N/A"')
    entries: list[CacheEntryInfo]

    @classmethod
    def from_stats(cls, stats: CacheStats) -> "CacheStatsResponse":
        return cls(
            size=stats.size,
            hits=stats.hits,
            misses=stats.misses,
            hit_rate=stats.hit_rate,
            entries=[
                CacheEntryInfo(key=e.key, is_stale=e.is_stale, age_ms=e.age_ms)
                for e in stats.entries
            ],
        )


class DeleteResponse(BaseModel):
    key: str
    deleted: bool


class CleanupResponse(BaseModel):
    removed: int
    size: int
