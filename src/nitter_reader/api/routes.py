"""
HTTP endpoints for scraping profiles and inspecting service health.

Provides endpoints for:
- Liveness and health (instances, browser pool, limiters)
- Limiter metrics
- Scraping one profile timeline into a JSON document
"""
import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from nitter_reader.errors import BrowserPoolError, QueueClearedError, StoreError
from nitter_reader.models import ScrapeOutcome, ScrapeStatus
from nitter_reader.orchestrator import ScrapeRequest
from nitter_reader.render.jsonout import document_to_dict
from nitter_reader.resources import AppResources
from nitter_reader.store.files import write_document

from .schemas import (
    ErrorResponse,
    HealthResponse,
    InstancesSummary,
    ScrapeMetadata,
    XDataQuery,
    XDataResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()

UNAVAILABLE_REASONS = {"not_found", "suspended", "protected"}


def get_resources(request: Request) -> AppResources:
    return request.app.state.resources


@router.get("/livez")
async def liveness():
    """Liveness probe - zero dependencies, confirms process is responsive."""
    return {"status": "ok"}


@router.get("/health", response_model=HealthResponse)
async def health(request: Request):
    """
    Report instance health, browser pool state and limiter metrics.

    "ok" when every instance is healthy, "degraded" when at least one can
    still serve, "unhealthy" (HTTP 503) when none can or the pool is down.
    """
    resources = get_resources(request)
    instances = resources.registry.get_health_status()
    pool = resources.browser_pool.get_status()

    usable = instances.healthy + instances.unknown
    if not pool.initialized or usable == 0:
        status_label = "unhealthy"
    elif instances.healthy == instances.total:
        status_label = "ok"
    else:
        status_label = "degraded"

    body = HealthResponse(
        status=status_label,
        instances=InstancesSummary(**instances.to_dict()),
        browser_pool=pool.to_dict(),
        limiters={
            "jobs": resources.job_limiter.get_metrics().to_dict(),
            "requests": resources.request_limiter.get_metrics().to_dict(),
        },
    )
    return JSONResponse(
        content=body.model_dump(),
        status_code=503 if status_label == "unhealthy" else 200,
    )


@router.get("/metrics")
async def metrics(request: Request):
    """Limiter counters for both the job and request limiters."""
    resources = get_resources(request)
    return {
        "jobs": resources.job_limiter.get_metrics().to_dict(),
        "requests": resources.request_limiter.get_metrics().to_dict(),
        "browser_pool": resources.browser_pool.get_status().to_dict(),
    }


@router.get(
    "/x-data/{username}",
    response_model=XDataResponse,
    responses={206: {"model": XDataResponse}, 400: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
)
async def get_x_data(
    request: Request,
    username: str,
    tweetsLimit: Optional[int] = None,
    delayBetweenPages: Optional[int] = None,
    maxRetries: Optional[int] = None,
):
    """
    Scrape a profile timeline through the instance pool.

    Returns 200 with the full document, 206 when only part of the requested
    tweets could be collected, 502 when every attempt failed.
    """
    resources = get_resources(request)
    scrape_config = resources.config.scrape

    try:
        query = XDataQuery(
            username=username,
            tweets_limit=scrape_config.posts_limit if tweetsLimit is None else tweetsLimit,
            delay_between_pages_ms=(
                scrape_config.delay_between_pages_ms if delayBetweenPages is None else delayBetweenPages
            ),
            max_retries=scrape_config.max_retries if maxRetries is None else maxRetries,
        )
    except ValidationError as e:
        field = ".".join(str(part) for part in e.errors()[0]["loc"])
        return _error(400, f"Invalid parameter '{field}': {e.errors()[0]['msg']}")

    if query.tweets_limit > scrape_config.max_posts_limit:
        return _error(400, f"tweetsLimit must be between 1 and {scrape_config.max_posts_limit}.")
    if query.delay_between_pages_ms < scrape_config.min_delay_between_pages_ms:
        return _error(
            400,
            f"delayBetweenPages must be at least {scrape_config.min_delay_between_pages_ms} ms.",
        )

    try:
        outcome = await resources.orchestrator.get_x_data(
            ScrapeRequest(
                username=query.username,
                tweets_limit=query.tweets_limit,
                delay_between_pages_ms=query.delay_between_pages_ms,
                max_retries=query.max_retries,
            )
        )
    except (BrowserPoolError, QueueClearedError) as e:
        logger.error("x_data_unavailable username=%s error=%s", query.username, e)
        return _error(503, f"Scraper is not available: {e}")

    metadata = _metadata(outcome)
    if outcome.status is ScrapeStatus.FAILED or outcome.document is None:
        status_code = 404 if outcome.reason in UNAVAILABLE_REASONS else 502
        return _error(status_code, outcome.error or "Scrape failed", metadata)

    try:
        await asyncio.to_thread(
            write_document, resources.config.app.out_dir, query.username, outcome.document
        )
    except StoreError as e:
        logger.warning("x_data_store_failed username=%s error=%s", query.username, e)

    body = XDataResponse(data=document_to_dict(outcome.document), metadata=metadata)
    return JSONResponse(
        content=body.model_dump(),
        status_code=206 if outcome.status is ScrapeStatus.PARTIAL else 200,
    )


def _metadata(outcome: ScrapeOutcome) -> ScrapeMetadata:
    return ScrapeMetadata(
        status=outcome.status.value,
        reason=outcome.reason,
        attempts=outcome.attempts,
        instance=outcome.instance,
        collected=outcome.collected,
        requested=outcome.requested,
        stop_reason=outcome.stop_reason,
    )


def _error(status_code: int, message: str, metadata: Optional[ScrapeMetadata] = None) -> JSONResponse:
    body = ErrorResponse(error=message, metadata=metadata)
    return JSONResponse(content=body.model_dump(), status_code=status_code)
