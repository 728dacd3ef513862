# Test type: Configuration
# Validation to be executed: Shared fixtures for all test modules
# Command: pytest test/ -v (this file is auto-loaded by pytest)

"""Shared pytest fixtures for the devprofiler test suite."""

from __future__ import annotations

import pytest
from httpx import ASGITransport, AsyncClient

from devprofiler.config import Settings
from devprofiler.main import create_app
from devprofiler.models.schemas import ProfileRecord, QueryEvent


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def storage_dir(tmp_path):
    """Profile directory inside pytest's tmp dir (not created up front)."""
    return tmp_path / "performance_profiles"


@pytest.fixture
def profiler_settings(storage_dir):
    """Development settings pointing at the temporary storage directory."""
    config = Settings()
    config.APP_ENV = "development"
    config.PROFILER_ENABLED = True
    config.PROFILER_STORAGE_PATH = str(storage_dir)
    config.PROFILER_RETENTION_COUNT = 20
    config.PROFILER_SKIP_PATHS = ["/internal"]
    return config


@pytest.fixture
def production_settings(storage_dir):
    config = Settings()
    config.APP_ENV = "production"
    config.PROFILER_ENABLED = True
    config.PROFILER_STORAGE_PATH = str(storage_dir)
    config.PROFILER_SKIP_PATHS = []
    return config


@pytest.fixture
def app(profiler_settings):
    return create_app(profiler_settings)


@pytest.fixture
async def client(app):
    """Async HTTP client bound to the FastAPI app (no real server needed)."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac


# ── Sample data fixtures ─────────────────────────────────────────────────

def make_record(
    timestamp: str,
    total_time: float = 100.0,
    durations: tuple = (),
    url: str = "/contacts",
) -> ProfileRecord:
    """A profile record whose sql_time sums its query durations."""
    queries = [QueryEvent(sql=f"SELECT {i}", duration=d) for i, d in enumerate(durations)]
    return ProfileRecord(
        url=url,
        method="GET",
        total_time=total_time,
        sql_time=round(sum(durations), 2),
        sql_queries=queries,
        timestamp=timestamp,
        request_id=None,
    )


@pytest.fixture
def record_factory():
    return make_record
