"""Performance profile report endpoints:
    GET  /dev/performance_profiles
    GET  /dev/performance_profiles/{slug}

Both are plain ``def`` endpoints so file reads and repairs run in the
threadpool, off the event loop.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, Request

from devprofiler.config import Settings, settings
from devprofiler.errors import DisabledError
from devprofiler.models.schemas import PageDetailResponse, PageListResponse
from devprofiler.services import report_service

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix=settings.REPORT_PREFIX,
    tags=["Performance Profiles"],
)


def _config(request: Request) -> Settings:
    return getattr(request.app.state, "profiler_config", settings)


def _not_found(exc: DisabledError) -> HTTPException:
    logger.debug("Profile report requested while disabled: %s", exc)
    return HTTPException(status_code=404, detail="Not Found")


# ── Endpoints ─────────────────────────────────────────────────────────────

@router.get(
    "",
    response_model=PageListResponse,
    summary="Aggregate statistics for every profiled page",
)
def list_pages(
    request: Request,
    sort: Optional[str] = Query(None, description="url | count | mean_asc | sql_time"),
) -> PageListResponse:
    """Pages with mean/median/p95 load time; slowest first by default."""
    try:
        return report_service.list_pages(sort, config=_config(request))
    except DisabledError as exc:
        raise _not_found(exc)


@router.get(
    "/{slug}",
    response_model=PageDetailResponse,
    summary="Stored profiles for one page",
)
def page_detail(slug: str, request: Request) -> PageDetailResponse:
    try:
        return report_service.page_detail(slug, config=_config(request))
    except DisabledError as exc:
        raise _not_found(exc)
