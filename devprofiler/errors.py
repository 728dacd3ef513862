"""Profiler error taxonomy.

Capture-path errors are logged and never reach the instrumented request;
read-path errors are turned into a message on the report response.
"""

from __future__ import annotations

from pathlib import Path


class ProfilerError(Exception):
    """Base class carrying a human-readable message."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class DisabledError(ProfilerError):
    """Profiling is inactive (not a development environment, or switched off)."""


class StorageError(ProfilerError):
    """The storage directory or a profile file could not be read or written."""


class CorruptionError(ProfilerError):
    """A stored profile file is unparsable even after the repair heuristics."""

    def __init__(self, message: str, path: Path | None = None) -> None:
        super().__init__(message)
        self.path = path


class ValidationError(ProfilerError):
    """A page slug or path that cannot name a profile file."""
