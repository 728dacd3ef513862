"""Profiler configuration loaded from environment variables."""

import os
from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str) -> list[str]:
    raw = os.getenv(name, "")
    return [item.strip() for item in raw.split(",") if item.strip()]


class Settings:
    """Centralized profiler settings, read once at startup."""

    # Server
    APP_HOST: str = os.getenv("APP_HOST", "0.0.0.0")
    APP_PORT: int = int(os.getenv("APP_PORT", "5477"))

    # Profiling only ever runs in this environment
    APP_ENV: str = os.getenv("APP_ENV", "development")
    DEVELOPMENT_ENV: str = "development"

    # Profiler
    PROFILER_ENABLED: bool = _env_bool("PROFILER_ENABLED", "true")
    PROFILER_STORAGE_PATH: str = os.getenv("PROFILER_STORAGE_PATH", "tmp/performance_profiles")
    PROFILER_RETENTION_COUNT: int = int(os.getenv("PROFILER_RETENTION_COUNT", "20"))
    PROFILER_SKIP_PATHS: list[str] = _env_list("PROFILER_SKIP_PATHS")

    # Report endpoints are mounted here and never profiled themselves
    REPORT_PREFIX: str = "/dev/performance_profiles"

    @property
    def is_development(self) -> bool:
        return self.APP_ENV == self.DEVELOPMENT_ENV

    @property
    def profiler_active(self) -> bool:
        """Profiling needs both the development environment and the switch."""
        return self.is_development and self.PROFILER_ENABLED


settings = Settings()
