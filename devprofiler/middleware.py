"""Capture middleware — times each request and stores its SQL profile.

Per request:  IDLE → CAPTURING → FINALIZING → IDLE

    CAPTURING   recorder context open, downstream app running
    FINALIZING  durations computed, profile handed to the store

The recorder context is released in ``finally`` on every path, so nothing
leaks into the next request served by the same worker.
"""

from __future__ import annotations

import logging
import re
import time
from types import TracebackType
from typing import Iterable, List, Optional

from fastapi import FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response
from starlette.types import ASGIApp

from devprofiler.config import Settings, settings as default_settings
from devprofiler.models.schemas import ProfileRecord, QueryEvent
from devprofiler.routers import profiles
from devprofiler.services.recorder_service import QueryRecorder, install_query_listener, query_recorder
from devprofiler.services.storage_service import ProfileStore
from devprofiler.utils.helpers import now_timestamp, round_ms, slugify_path

logger = logging.getLogger(__name__)

_STATIC_ASSET = re.compile(r"\.(css|js|png|jpg|jpeg|gif|ico|svg|woff|woff2|ttf|eot)$", re.IGNORECASE)
_INFRASTRUCTURE_PREFIXES = ("/assets", "/static", "/health", "/docs", "/redoc", "/openapi.json")

REQUEST_ID_HEADER = "X-Request-ID"
RESPONSE_TIME_HEADER = "X-Response-Time-Ms"


def _under(path: str, prefix: str) -> bool:
    """True for *prefix* itself and anything below it (segment boundary)."""
    prefix = prefix.rstrip("/")
    return path == prefix or path.startswith(prefix + "/")


def should_skip(path: str, extra_prefixes: Iterable[str] = ()) -> bool:
    """Static assets, infrastructure endpoints and configured prefixes are never profiled."""
    prefixes = _INFRASTRUCTURE_PREFIXES + tuple(extra_prefixes)
    return any(_under(path, prefix) for prefix in prefixes) or bool(_STATIC_ASSET.search(path))


def _strip_own_frames(tb: Optional[TracebackType]) -> Optional[TracebackType]:
    """Rebuild *tb* without the frames that belong to this module."""
    kept: List[TracebackType] = []
    while tb is not None:
        if tb.tb_frame.f_code.co_filename != __file__:
            kept.append(tb)
        tb = tb.tb_next
    cleaned = None
    for entry in reversed(kept):
        cleaned = TracebackType(cleaned, entry.tb_frame, entry.tb_lasti, entry.tb_lineno)
    return cleaned


class ProfilerMiddleware(BaseHTTPMiddleware):
    """Records wall-clock and SQL time per request into per-page log files."""

    def __init__(
        self,
        app: ASGIApp,
        config: Settings = default_settings,
        store: Optional[ProfileStore] = None,
        recorder: Optional[QueryRecorder] = None,
    ) -> None:
        super().__init__(app)
        self.enabled = config.profiler_active
        self.retention_count = config.PROFILER_RETENTION_COUNT
        self.skip_prefixes = (config.REPORT_PREFIX, *config.PROFILER_SKIP_PATHS)
        self.store = store or ProfileStore(config.PROFILER_STORAGE_PATH, self.retention_count)
        self.recorder = recorder or query_recorder
        install_query_listener()

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if not self.enabled or should_skip(request.url.path, self.skip_prefixes):
            return await call_next(request)

        token = self.recorder.begin()
        start = time.perf_counter()
        try:
            response = await call_next(request)
            total_ms = round_ms((time.perf_counter() - start) * 1000)
        except Exception as exc:
            raise exc.with_traceback(_strip_own_frames(exc.__traceback__))
        finally:
            queries = self.recorder.end(token)

        response.headers[RESPONSE_TIME_HEADER] = f"{total_ms:.2f}"
        await self._store_profile(request, total_ms, queries)
        return response

    async def _store_profile(self, request: Request, total_ms: float, queries: List[QueryEvent]) -> None:
        """Persist the profile; failures are logged and never reach the client."""
        record = ProfileRecord(
            url=request.url.path,
            method=request.method,
            total_time=total_ms,
            sql_time=round_ms(sum(q.duration for q in queries)),
            sql_queries=queries,
            timestamp=now_timestamp(),
            request_id=_request_id(request),
        )
        try:
            await run_in_threadpool(self.store.append, slugify_path(record.url), record, self.retention_count)
        except Exception as exc:
            logger.error("Profiler Error: %s", exc)


def _request_id(request: Request) -> Optional[str]:
    return request.headers.get(REQUEST_ID_HEADER) or getattr(request.state, "request_id", None)


def install_profiler(app: FastAPI, config: Settings = default_settings) -> bool:
    """Wire the query listener, middleware and report endpoints into *app*.

    Does nothing outside development; returns whether the profiler was installed.
    """
    if not config.profiler_active:
        logger.info("Performance profiler disabled (APP_ENV=%s).", config.APP_ENV)
        return False

    install_query_listener()
    app.state.profiler_config = config
    app.add_middleware(ProfilerMiddleware, config=config)
    app.include_router(profiles.router)
    logger.info("Performance profiler enabled; profiles stored in %s", config.PROFILER_STORAGE_PATH)
    return True
