"""Profile Repository — reads page logs back and aggregates them."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, Tuple, Union

from pydantic import ValidationError as SchemaError

from devprofiler.config import settings
from devprofiler.errors import CorruptionError, ValidationError
from devprofiler.models.schemas import AggregatedPageStats, ProfileRecord
from devprofiler.services.stats_service import aggregate_page
from devprofiler.utils.helpers import timestamp_sort_key
from devprofiler.utils.json_repair import load_profile_file

logger = logging.getLogger(__name__)

_EXTENSION = ".json"


class ProfileRepository:
    """Read side of the page logs stored under *storage_dir*."""

    def __init__(self, storage_dir: Union[str, Path, None] = None) -> None:
        self.storage_dir = Path(storage_dir or settings.PROFILER_STORAGE_PATH)

    def exists(self) -> bool:
        return self.storage_dir.is_dir()

    def load_all(self, failures: Optional[List[CorruptionError]] = None) -> List[AggregatedPageStats]:
        """Aggregate every stored page, newest activity first.

        A corrupt file raises ``CorruptionError``; when *failures* is given
        the file is skipped instead and its error collected there.
        """
        if not self.exists():
            return []

        pages: List[AggregatedPageStats] = []
        for file_path in sorted(self.storage_dir.glob(f"*{_EXTENSION}")):
            try:
                records = self._load_records(file_path)
            except CorruptionError as exc:
                if failures is None:
                    raise
                logger.error("Skipping corrupt profile file %s: %s", file_path, exc)
                failures.append(exc)
                continue
            if not records:
                continue
            pages.append(aggregate_page(file_path.name[: -len(_EXTENSION)], records))

        pages.sort(key=lambda page: timestamp_sort_key(page.latest_timestamp), reverse=True)
        return pages

    def load_one(self, slug: str) -> Tuple[Optional[str], List[ProfileRecord]]:
        """Return ``(url, records)`` for one page, or ``(None, [])`` if absent."""
        file_path = self.resolve(slug)
        if file_path is None:
            return None, []
        records = self._load_records(file_path)
        url = records[0].url if records else None
        return url, records

    def resolve(self, slug: str) -> Optional[Path]:
        """Find the file for *slug*, tolerating the historical ``.json.json`` names."""
        _check_slug(slug)
        candidates = [
            f"{slug}{_EXTENSION}{_EXTENSION}",
            f"{slug}{_EXTENSION}",
            slug,
        ]
        for name in candidates:
            path = self.storage_dir / name
            if path.is_file():
                return path
        return None

    def _load_records(self, file_path: Path) -> List[ProfileRecord]:
        raw = load_profile_file(file_path)
        try:
            records = [ProfileRecord.model_validate(item) for item in raw]
        except SchemaError as exc:
            raise CorruptionError(f"Invalid profile record in {file_path}: {exc}", path=file_path) from exc
        records.sort(key=lambda r: timestamp_sort_key(r.timestamp), reverse=True)
        return records


def _check_slug(slug: str) -> None:
    if not slug or slug in (".", "..") or any(ch in slug for ch in ("/", "\\", "\x00")):
        raise ValidationError(f"Invalid page slug: {slug!r}")
