"""Profile Store — appends finished request profiles to per-page log files.

Each page slug owns one ``<slug>.json`` file holding a JSON array of profile
records.  An append is a read-modify-write of the whole file:

    load (tolerant)  →  append  →  sort newest-first  →  keep N  →  atomic write
"""

from __future__ import annotations

import json
import logging
import threading
from collections import defaultdict
from pathlib import Path
from typing import Dict, Optional, Union

from devprofiler.config import settings
from devprofiler.errors import CorruptionError, StorageError
from devprofiler.models.schemas import ProfileRecord
from devprofiler.utils.helpers import newest_first, write_text_atomic
from devprofiler.utils.json_repair import load_profile_file

logger = logging.getLogger(__name__)


class ProfileStore:
    """Writes bounded page logs under *storage_dir*."""

    def __init__(
        self,
        storage_dir: Union[str, Path, None] = None,
        retention_count: Optional[int] = None,
    ) -> None:
        self.storage_dir = Path(storage_dir or settings.PROFILER_STORAGE_PATH)
        self.retention_count = (
            retention_count if retention_count is not None else settings.PROFILER_RETENTION_COUNT
        )
        self._locks_guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = defaultdict(threading.Lock)

    def path_for(self, slug: str) -> Path:
        return self.storage_dir / f"{slug}.json"

    def _lock_for(self, slug: str) -> threading.Lock:
        with self._locks_guard:
            return self._locks[slug]

    def append(self, slug: str, record: ProfileRecord, retention_count: Optional[int] = None) -> int:
        """Add *record* to the page log for *slug*; return the new log length.

        Raises ``StorageError`` if the directory or file cannot be written.
        """
        keep = retention_count if retention_count is not None else self.retention_count
        if keep < 1:
            raise ValueError(f"retention_count must be at least 1, got {keep}")

        try:
            self.storage_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageError(f"Failed to create {self.storage_dir}: {exc}") from exc

        file_path = self.path_for(slug)
        with self._lock_for(slug):
            profiles = self._load_existing(file_path)
            profiles.append(record.model_dump(mode="json"))
            profiles = newest_first(profiles)[:keep]

            try:
                write_text_atomic(file_path, json.dumps(profiles, indent=2) + "\n")
            except OSError as exc:
                raise StorageError(f"Failed to store performance profile: {exc}") from exc

        logger.debug("Stored profile for %s (%d kept)", slug, len(profiles))
        return len(profiles)

    def _load_existing(self, file_path: Path) -> list:
        if not file_path.exists():
            return []
        try:
            return [p for p in load_profile_file(file_path) if isinstance(p, dict)]
        except CorruptionError as exc:
            logger.error("Failed to parse existing profiles in %s: %s", file_path, exc)
            return []
