"""FastAPI application entry point.

Hosts the development profiler on port 5477: every request is timed, its SQL
queries captured, and the results browsable under /dev/performance_profiles.

Usage:
    uvicorn devprofiler.main:app --host 0.0.0.0 --port 5477 --reload
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from devprofiler.config import Settings, settings
from devprofiler.middleware import install_profiler

# ── Logging ──────────────────────────────────────────────────────────────
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)-7s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)


# ── Lifespan (startup + shutdown) ────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting devprofiler host on port %s …", settings.APP_PORT)
    yield
    logger.info("Application shutdown complete.")


# ── Application factory ──────────────────────────────────────────────────

def create_app(config: Settings = settings) -> FastAPI:
    app = FastAPI(
        title="Development Request Profiler",
        description=(
            "Measures per-request wall-clock and SQL latency, keeps a bounded "
            "history per endpoint on disk, and reports mean, median and p95 "
            "load times over that history."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )

    # ── Global exception handler ─────────────────────────────────────────

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error("Unhandled exception on %s: %s", request.url.path, exc, exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error. Please check the logs."},
        )

    # ── Health check ─────────────────────────────────────────────────────

    @app.get("/health", tags=["Health"])
    async def health_check():
        return {"status": "healthy", "port": config.APP_PORT, "profiler": config.profiler_active}

    install_profiler(app, config)
    return app


app = create_app()


# ── Dev entry point ──────────────────────────────────────────────────────

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "devprofiler.main:app",
        host=settings.APP_HOST,
        port=settings.APP_PORT,
        reload=True,
    )
