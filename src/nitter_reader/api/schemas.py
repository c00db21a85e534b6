"""Pydantic response schemas for the HTTP service."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class ScrapeMetadata(BaseModel):
    """Outcome details attached to every /x-data response."""

    status: str
    reason: Optional[str] = None
    attempts: int = 0
    instance: Optional[str] = None
    collected: int = 0
    requested: int = 0
    stop_reason: Optional[str] = None


class XDataResponse(BaseModel):
    data: Dict[str, Any]
    metadata: ScrapeMetadata


class ErrorResponse(BaseModel):
    error: str
    metadata: Optional[ScrapeMetadata] = None


class XDataQuery(BaseModel):
    """Validated query parameters for a scrape request."""

    username: str = Field(pattern=r"^[A-Za-z0-9_]{1,15}$")
    tweets_limit: int = Field(ge=1)
    delay_between_pages_ms: int = Field(ge=0)
    max_retries: int = Field(ge=0, le=10)


class InstancesSummary(BaseModel):
    total: int
    healthy: int
    unhealthy: int
    rate_limited: int
    unknown: int
    instances: List[Dict[str, Any]] = Field(default_factory=list)


class HealthResponse(BaseModel):
    status: str
    instances: InstancesSummary
    browser_pool: Dict[str, Any]
    limiters: Dict[str, Dict[str, Any]]
