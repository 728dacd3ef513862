"""Reporting surface consumed by the profile endpoints.

Read failures never escape as exceptions (except ``DisabledError``): they come
back as an ``error`` message next to an empty data set.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, List, Optional, Tuple

from devprofiler.config import Settings, settings as default_settings
from devprofiler.errors import CorruptionError, DisabledError, ProfilerError, ValidationError
from devprofiler.models.schemas import AggregatedPageStats, PageDetailResponse, PageListResponse
from devprofiler.services.repository_service import ProfileRepository

logger = logging.getLogger(__name__)

NO_PROFILES_MESSAGE = "No performance profiles found. Visit some pages to generate profiles."
NO_PAGE_PROFILES_MESSAGE = "No profiles found for this page"

# sort key → (key function, descending)
_SORTS: Dict[str, Tuple[Callable[[AggregatedPageStats], object], bool]] = {
    "url": (lambda p: p.url or "", False),
    "count": (lambda p: p.profile_count, True),
    "mean_asc": (lambda p: p.mean_load_time, False),
    "sql_time": (lambda p: p.mean_sql_time, True),
}
_DEFAULT_SORT = (lambda p: p.mean_load_time, True)  # slowest first


def sort_pages(pages: List[AggregatedPageStats], sort: Optional[str] = None) -> List[AggregatedPageStats]:
    """Order pages for display; unknown keys fall back to slowest-first."""
    key, descending = _SORTS.get(sort or "", _DEFAULT_SORT)
    return sorted(pages, key=key, reverse=descending)


def _ensure_active(config: Settings) -> None:
    if not config.profiler_active:
        raise DisabledError("Performance profiles are only available in development")


def list_pages(sort: Optional[str] = None, *, config: Settings = default_settings) -> PageListResponse:
    """All pages with aggregate statistics."""
    _ensure_active(config)
    repository = ProfileRepository(config.PROFILER_STORAGE_PATH)
    if not repository.exists():
        return PageListResponse(message=NO_PROFILES_MESSAGE)

    failures: List[CorruptionError] = []
    try:
        pages = repository.load_all(failures=failures)
    except ProfilerError as exc:
        logger.error("Failed to load performance profiles: %s", exc)
        return PageListResponse(error=f"Failed to load performance profiles: {exc.message}")

    error = None
    if failures:
        error = "; ".join(f"Failed to load {f.path.name if f.path else 'profile'}: {f.message}" for f in failures)
    message = None if pages else NO_PROFILES_MESSAGE
    return PageListResponse(pages=sort_pages(pages, sort), message=message, error=error)


def page_detail(slug: str, *, config: Settings = default_settings) -> PageDetailResponse:
    """Every stored profile of one page, newest first."""
    _ensure_active(config)
    repository = ProfileRepository(config.PROFILER_STORAGE_PATH)
    try:
        url, profiles = repository.load_one(slug)
    except ValidationError as exc:
        logger.warning("Rejected page slug: %s", exc)
        return PageDetailResponse(page_slug=slug, message=NO_PAGE_PROFILES_MESSAGE)
    except ProfilerError as exc:
        logger.error("Failed to load profiles for %s: %s", slug, exc)
        return PageDetailResponse(
            page_slug=slug, error=f"Failed to load performance profiles: {exc.message}"
        )

    if not profiles:
        return PageDetailResponse(page_slug=slug, message=NO_PAGE_PROFILES_MESSAGE)
    return PageDetailResponse(page_slug=slug, url=url, profiles=profiles, profile_count=len(profiles))
